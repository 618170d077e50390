"""Notification router: direct UI actions on a user's notifications."""
from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response, status

from coach_app.errors import NotFoundError, SchedulerError
from coach_app.middleware.auth import CurrentUser, ensure_same_user, get_current_user
from coach_app.models.notification import Notification, NotificationStatus, NotificationType
from coach_app.routers.errors import http_error
from coach_app.schemas.notification import (
    DuplicateRequest,
    NotificationCreate,
    NotificationListResponse,
    NotificationResponse,
    NotificationUpdate,
    RescheduleRequest,
    SnoozeRequest,
)
from coach_app.services.notification_store import NotificationFilter
from coach_app.services.subsystem import NotificationSubsystem
from coach_app.utils.time import local_day_bounds, to_naive_utc

router = APIRouter(tags=["Notifications"])  # No prefix since main.py adds /api prefix


def get_subsystem(request: Request) -> NotificationSubsystem:
    """Dependency returning the app's notification subsystem."""
    return request.app.state.subsystem


def _owned(subsystem: NotificationSubsystem, user_id: str, notification_id: int) -> Notification:
    """The notification, soft-deleted included, if it belongs to ``user_id``."""
    notification = subsystem.store.get(notification_id)
    if notification.user_id != user_id:
        raise NotFoundError(f"Notification {notification_id} not found", {"id": notification_id})
    return notification


def _listing(notifications) -> NotificationListResponse:
    items = [NotificationResponse.from_model(n) for n in notifications]
    return NotificationListResponse(notifications=items, count=len(items))


@router.get("/{user_id}/notifications", response_model=NotificationListResponse)
async def list_notifications(
    user_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    subsystem: NotificationSubsystem = Depends(get_subsystem),
    on_date: Optional[date] = Query(None, alias="date", description="Local calendar day in the user's time zone"),
    date_from: Optional[datetime] = Query(None, description="Scheduled at or after this instant (ISO format)"),
    date_to: Optional[datetime] = Query(None, description="Scheduled before this instant (ISO format)"),
    type: Optional[NotificationType] = Query(None, description="Filter by notification type"),
    status_filter: Optional[NotificationStatus] = Query(None, alias="status", description="Filter by status"),
):
    """List the user's non-deleted notifications, ascending by scheduled time."""
    ensure_same_user(user_id, current_user)

    filters = NotificationFilter(
        start=to_naive_utc(date_from) if date_from else None,
        end=to_naive_utc(date_to) if date_to else None,
        type=type.value if type else None,
        status=status_filter.value if status_filter else None,
    )
    if on_date is not None:
        filters.start, filters.end = local_day_bounds(on_date, subsystem.resolver.zone_for(user_id))

    return _listing(subsystem.store.list_active(user_id, filters))


@router.get("/{user_id}/notifications/today", response_model=NotificationListResponse)
async def list_today(
    user_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    subsystem: NotificationSubsystem = Depends(get_subsystem),
    on_date: Optional[date] = Query(None, alias="date", description="Local day, defaults to the user's today"),
    include_all: bool = Query(False, description="Include sent, failed and cancelled notifications"),
):
    """The day's notifications (pending only unless include_all)."""
    ensure_same_user(user_id, current_user)
    return _listing(subsystem.commands.list_today(user_id, on_date, include_all=include_all))


@router.get("/{user_id}/message-schedules", response_model=NotificationListResponse)
async def list_message_schedules(
    user_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    subsystem: NotificationSubsystem = Depends(get_subsystem),
    on_date: Optional[date] = Query(None, alias="date", description="Local day, defaults to the user's today"),
):
    """Coach-initiated (tone-bearing) messages for one day."""
    ensure_same_user(user_id, current_user)
    day = on_date or subsystem.commands.user_today(user_id)
    start, end = local_day_bounds(day, subsystem.resolver.zone_for(user_id))
    filters = NotificationFilter(start=start, end=end, message_schedules_only=True)
    return _listing(subsystem.store.list_active(user_id, filters))


@router.post("/{user_id}/notifications", response_model=NotificationResponse, status_code=status.HTTP_201_CREATED)
async def create_notification(
    user_id: str,
    payload: NotificationCreate,
    current_user: CurrentUser = Depends(get_current_user),
    subsystem: NotificationSubsystem = Depends(get_subsystem),
):
    """Schedule a new notification."""
    ensure_same_user(user_id, current_user)
    try:
        notification = subsystem.service.create(
            user_id=user_id,
            type=payload.type.value,
            scheduled_for=payload.scheduled_for,
            title=payload.title,
            content=payload.content,
            metadata=payload.metadata,
            tone=payload.tone,
            channel=payload.channel.value if payload.channel else None,
            slug=payload.slug,
        )
    except SchedulerError as e:
        raise http_error(e)
    return NotificationResponse.from_model(notification)


@router.get("/{user_id}/notifications/{notification_id}", response_model=NotificationResponse)
async def get_notification(
    user_id: str,
    notification_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    subsystem: NotificationSubsystem = Depends(get_subsystem),
):
    """A single notification; 410 once deleted."""
    ensure_same_user(user_id, current_user)
    try:
        notification = _owned(subsystem, user_id, notification_id)
        if notification.deleted_at is not None:
            notification = subsystem.store.get_active(notification_id)
    except SchedulerError as e:
        raise http_error(e)
    return NotificationResponse.from_model(notification)


@router.put("/{user_id}/notifications/{notification_id}", response_model=NotificationResponse)
async def update_notification(
    user_id: str,
    notification_id: int,
    payload: NotificationUpdate,
    current_user: CurrentUser = Depends(get_current_user),
    subsystem: NotificationSubsystem = Depends(get_subsystem),
):
    """Edit title, content, metadata or tone of a pending notification."""
    ensure_same_user(user_id, current_user)
    try:
        _owned(subsystem, user_id, notification_id)
        notification = subsystem.service.edit(
            notification_id,
            title=payload.title,
            content=payload.content,
            metadata=payload.metadata,
            tone=payload.tone,
        )
    except SchedulerError as e:
        raise http_error(e)
    return NotificationResponse.from_model(notification)


@router.delete("/{user_id}/notifications/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_notification(
    user_id: str,
    notification_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    subsystem: NotificationSubsystem = Depends(get_subsystem),
):
    """Soft delete; deleting twice is not an error."""
    ensure_same_user(user_id, current_user)
    try:
        _owned(subsystem, user_id, notification_id)
        subsystem.service.delete(notification_id)
    except SchedulerError as e:
        raise http_error(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{user_id}/notifications/{notification_id}/reschedule", response_model=NotificationResponse)
async def reschedule_notification(
    user_id: str,
    notification_id: int,
    payload: RescheduleRequest,
    current_user: CurrentUser = Depends(get_current_user),
    subsystem: NotificationSubsystem = Depends(get_subsystem),
):
    ensure_same_user(user_id, current_user)
    try:
        _owned(subsystem, user_id, notification_id)
        notification = subsystem.service.reschedule(notification_id, payload.scheduled_for)
    except SchedulerError as e:
        raise http_error(e)
    return NotificationResponse.from_model(notification)


@router.post("/{user_id}/notifications/{notification_id}/snooze", response_model=NotificationResponse)
async def snooze_notification(
    user_id: str,
    notification_id: int,
    payload: SnoozeRequest,
    current_user: CurrentUser = Depends(get_current_user),
    subsystem: NotificationSubsystem = Depends(get_subsystem),
):
    ensure_same_user(user_id, current_user)
    try:
        _owned(subsystem, user_id, notification_id)
        notification = subsystem.service.snooze(notification_id, payload.minutes)
    except SchedulerError as e:
        raise http_error(e)
    return NotificationResponse.from_model(notification)


@router.post(
    "/{user_id}/notifications/{notification_id}/duplicate",
    response_model=NotificationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def duplicate_notification(
    user_id: str,
    notification_id: int,
    payload: Optional[DuplicateRequest] = None,
    current_user: CurrentUser = Depends(get_current_user),
    subsystem: NotificationSubsystem = Depends(get_subsystem),
):
    """Copy a notification; the copy is independent of the source."""
    ensure_same_user(user_id, current_user)
    scheduled_for = payload.scheduled_for if payload else None
    try:
        _owned(subsystem, user_id, notification_id)
        copy = subsystem.service.duplicate(notification_id, scheduled_for=scheduled_for)
    except SchedulerError as e:
        raise http_error(e)
    return NotificationResponse.from_model(copy)


@router.post("/{user_id}/notifications/{notification_id}/cancel", response_model=NotificationResponse)
async def cancel_notification(
    user_id: str,
    notification_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    subsystem: NotificationSubsystem = Depends(get_subsystem),
):
    """Cancel; repeating the call returns the already-cancelled notification."""
    ensure_same_user(user_id, current_user)
    try:
        _owned(subsystem, user_id, notification_id)
        notification = subsystem.service.cancel(notification_id)
    except SchedulerError as e:
        raise http_error(e)
    return NotificationResponse.from_model(notification)
