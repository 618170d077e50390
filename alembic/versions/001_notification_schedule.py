"""Notification scheduling tables

Revision ID: 001
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = '001'
down_revision = None  # This is the first migration
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'user',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('time_zone', sa.String(length=64), nullable=False, server_default='UTC'),
        sa.Column('preferred_time', sa.String(length=5), nullable=False, server_default='08:00'),
        sa.Column('messaging_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('webhook_url', sa.String(length=500), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_user_email', 'user', ['email'], unique=True)

    op.create_table(
        'task',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.String(), sa.ForeignKey('user.id', ondelete='CASCADE')),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('description', sa.String(length=1000), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='active'),
        sa.Column('scheduled_time', sa.String(length=5), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_task_user_id', 'task', ['user_id'])

    op.create_table(
        'notification',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.String(length=100), nullable=False),
        sa.Column('type', sa.String(length=40), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False, server_default=''),
        sa.Column('content', sa.Text(), nullable=True),
        sa.Column('scheduled_for', sa.DateTime(), nullable=False),
        sa.Column('sent_at', sa.DateTime(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('tone', sa.String(length=30), nullable=True),
        sa.Column('channel', sa.String(length=20), nullable=False, server_default='in_app'),
        sa.Column('slug', sa.String(length=120), nullable=True),
        sa.Column('task_id', sa.Integer(), nullable=True),
        sa.Column('rescheduled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('snoozed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('duplicated_from', sa.Integer(), nullable=True),
        sa.Column('retry_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('extra', sa.JSON(), nullable=False),
        sa.Column('claimed_at', sa.DateTime(), nullable=True),
        sa.Column('provider_message_id', sa.String(length=200), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint(
            "status IN ('pending','delivering','sent','failed','cancelled')",
            name='ck_notification_status',
        ),
        sa.CheckConstraint(
            "(status = 'sent') = (sent_at IS NOT NULL)",
            name='ck_notification_sent_at',
        ),
    )
    op.create_index('ix_notification_user_id', 'notification', ['user_id'])
    op.create_index('ix_notification_task_id', 'notification', ['task_id'])
    op.create_index('idx_notification_status_scheduled_for', 'notification', ['status', 'scheduled_for'])
    op.create_index('idx_notification_user_scheduled_for', 'notification', ['user_id', 'scheduled_for'])
    # A slug is only reserved while its row is alive
    op.create_index(
        'uq_notification_user_slug_active',
        'notification',
        ['user_id', 'slug'],
        unique=True,
        postgresql_where=sa.text('deleted_at IS NULL AND slug IS NOT NULL'),
        sqlite_where=sa.text('deleted_at IS NULL AND slug IS NOT NULL'),
    )

    op.create_table(
        'in_app_message',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.String(length=100), nullable=False),
        sa.Column('notification_id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False, server_default=''),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('read_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_in_app_message_user_id', 'in_app_message', ['user_id'])
    op.create_index('ix_in_app_message_notification_id', 'in_app_message', ['notification_id'])
    op.create_index('ix_in_app_message_created_at', 'in_app_message', ['created_at'])


def downgrade():
    op.drop_table('in_app_message')
    op.drop_index('uq_notification_user_slug_active', table_name='notification')
    op.drop_table('notification')
    op.drop_table('task')
    op.drop_table('user')
