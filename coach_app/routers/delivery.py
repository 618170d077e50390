"""Delivery receipts posted back by asynchronous channel providers."""
import hmac
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status

from coach_app.errors import SchedulerError
from coach_app.routers.errors import http_error
from coach_app.routers.notifications import get_subsystem
from coach_app.schemas.notification import DeliveryReceipt, NotificationResponse
from coach_app.services.subsystem import NotificationSubsystem

router = APIRouter(tags=["Delivery"])


def verify_callback_token(
    x_delivery_token: Optional[str] = Header(None),
    subsystem: NotificationSubsystem = Depends(get_subsystem),
) -> None:
    expected = subsystem.settings.delivery_callback_token
    if not expected or not x_delivery_token or not hmac.compare_digest(expected, x_delivery_token):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid delivery callback token"
        )


@router.post("/delivery/receipts", response_model=Dict[str, Any], dependencies=[Depends(verify_callback_token)])
async def delivery_receipt(
    receipt: DeliveryReceipt,
    subsystem: NotificationSubsystem = Depends(get_subsystem),
):
    """Confirm (or fail) a delivery that was handed off without an immediate answer."""
    try:
        notification = subsystem.dispatcher.confirm_delivery(
            receipt.notification_id,
            ok=receipt.ok,
            provider_message_id=receipt.provider_message_id,
            error=receipt.error,
        )
    except SchedulerError as e:
        raise http_error(e)

    if notification is None:
        return {"accepted": False, "reason": "Notification is no longer awaiting delivery"}
    return {"accepted": True, "notification": NotificationResponse.from_model(notification).model_dump(mode="json")}
