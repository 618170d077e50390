"""Read-only lookups into the task/goal registry and user profiles."""
from dataclasses import dataclass
from typing import List, Optional
import logging

from sqlalchemy.engine import Engine
from sqlmodel import Session, col, select

from coach_app.models.task import Task
from coach_app.models.user import User

logger = logging.getLogger(__name__)


@dataclass
class TaskInfo:
    """What a notification needs to know about the task it references."""
    id: int
    title: str
    description: Optional[str] = None
    scheduled_time: Optional[str] = None


class TaskRegistry:
    """
    Lookups against the task and user tables.

    Task references on notifications are weak: a task that was removed or
    soft-deleted simply resolves to None and callers fall back to the
    notification's own title.
    """

    def __init__(self, engine: Engine):
        self.engine = engine

    def lookup(self, task_id: Optional[int]) -> Optional[TaskInfo]:
        if task_id is None:
            return None
        with Session(self.engine) as session:
            task = session.get(Task, task_id)
            if task is None or task.deleted_at is not None:
                logger.debug(f"Task {task_id} not found in registry")
                return None
            return TaskInfo(
                id=task.id,
                title=task.title,
                description=task.description,
                scheduled_time=task.scheduled_time,
            )

    def get_user(self, user_id: str) -> Optional[User]:
        with Session(self.engine) as session:
            return session.get(User, user_id)

    def user_time_zone(self, user_id: str, default: str = "UTC") -> str:
        user = self.get_user(user_id)
        if user is None or not user.time_zone:
            return default
        return user.time_zone

    def messaging_users(self) -> List[User]:
        """Users who opted in to coach messages."""
        with Session(self.engine) as session:
            statement = select(User).where(User.messaging_enabled == True)  # noqa: E712
            return list(session.exec(statement).all())

    def scheduled_tasks(self, user_id: str) -> List[TaskInfo]:
        """Active, non-deleted tasks of a user that carry a daily time slot."""
        with Session(self.engine) as session:
            statement = select(Task).where(
                Task.user_id == user_id,
                Task.status == "active",
                col(Task.deleted_at).is_(None),
                col(Task.scheduled_time).is_not(None),
            ).order_by(col(Task.id).asc())
            return [
                TaskInfo(id=task.id, title=task.title, description=task.description, scheduled_time=task.scheduled_time)
                for task in session.exec(statement).all()
            ]
