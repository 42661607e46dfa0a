"""
FastAPI route: notification delivery endpoints.

Provides endpoints to:
    POST   /api/v1/notifications            — send now, or schedule when scheduled_at is set
    GET    /api/v1/notifications            — list pending notifications
    GET    /api/v1/notifications/channels   — list registered channels
    GET    /api/v1/notifications/{id}       — pending notification or delivery record
    DELETE /api/v1/notifications/{id}       — cancel a pending notification
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator

from backend.app.core.config import settings
from backend.app.core.errors import DeliveryFailedError, NotFoundError
from backend.app.notifications.delivery import send_immediately
from backend.app.notifications.models import DeliveryStatus, Notification
from backend.app.notifications.registry import SenderRegistry
from backend.app.notifications.scheduler import NotificationScheduler

router = APIRouter(prefix="/api/v1/notifications", tags=["notifications"])


# ---------------------------------------------------------------------------
# Request / Response Schemas
# ---------------------------------------------------------------------------

class SendNotificationRequest(BaseModel):
    """Body of POST /api/v1/notifications."""
    title: str = Field(..., min_length=1, examples=["Team Meeting Reminder"])
    content: str = Field(..., min_length=1, examples=["Stand-up starts at 2 PM."])
    channel: str = Field(..., examples=["slack"], description="slack / email / message")
    recipients: List[str] = Field(..., min_length=1, examples=[["user1", "user2"]])
    scheduled_at: Optional[datetime] = Field(
        None,
        examples=["2024-03-31T21:20:00Z"],
        description="ISO-8601 timestamp; omit to deliver immediately",
    )

    @field_validator("title", "content")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value

    @field_validator("recipients")
    @classmethod
    def _recipients_not_blank(cls, value: List[str]) -> List[str]:
        if any(not r.strip() for r in value):
            raise ValueError("recipients must not contain blank entries")
        return value


class APIResponse(BaseModel):
    """Response envelope."""
    success: bool
    message: str
    data: Optional[Any] = None


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

def get_registry(request: Request) -> SenderRegistry:
    return request.app.state.registry


def get_scheduler(request: Request) -> NotificationScheduler:
    return request.app.state.scheduler


def _generate_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post(
    "",
    response_model=APIResponse,
    summary="Send or schedule a notification",
    description=(
        "Delivers immediately when scheduled_at is omitted (200), otherwise "
        "admits the notification to the scheduler (202)."
    ),
)
def send_notification(
    body: SendNotificationRequest,
    registry: SenderRegistry = Depends(get_registry),
    scheduler: NotificationScheduler = Depends(get_scheduler),
):
    # Unknown channels are rejected up front for both paths
    registry.resolve(body.channel)

    notification = Notification(
        id=_generate_id(),
        title=body.title,
        content=body.content,
        channel=body.channel,
        recipients=body.recipients,
        scheduled_at=body.scheduled_at,
    )

    if notification.is_scheduled:
        scheduler.schedule(notification)
        response = APIResponse(
            success=True,
            message="Notification scheduled successfully",
            data=notification.to_dict(),
        )
        return JSONResponse(status_code=202, content=response.model_dump())

    outcome = send_immediately(registry, notification)
    if not outcome.succeeded:
        raise DeliveryFailedError(
            notification.id, notification.channel.value, outcome.error_message or "",
        )

    return APIResponse(
        success=True,
        message="Notification sent successfully",
        data=notification.to_dict(),
    )


@router.get(
    "",
    response_model=APIResponse,
    summary="List pending notifications",
)
async def list_pending(scheduler: NotificationScheduler = Depends(get_scheduler)):
    pending = scheduler.pending()
    return APIResponse(
        success=True,
        message=f"{len(pending)} notifications pending",
        data=[n.to_dict() for n in pending],
    )


@router.get(
    "/channels",
    response_model=APIResponse,
    summary="List registered channels",
)
async def list_channels(registry: SenderRegistry = Depends(get_registry)):
    providers = {
        "slack": settings.SLACK_PROVIDER,
        "email": settings.EMAIL_PROVIDER,
        "message": settings.SMS_PROVIDER,
    }
    return APIResponse(
        success=True,
        message="Registered channels",
        data=[
            {"name": channel.value, "provider": providers.get(channel.value)}
            for channel in registry.channels
        ],
    )


@router.get(
    "/{notification_id}",
    response_model=APIResponse,
    summary="Get notification status",
    description="Returns the pending notification, or its delivery record once fired or cancelled.",
)
async def get_notification(
    notification_id: str,
    scheduler: NotificationScheduler = Depends(get_scheduler),
):
    notification = scheduler.get(notification_id)
    if notification is not None:
        data = notification.to_dict()
        data["status"] = DeliveryStatus.PENDING.value
        return APIResponse(success=True, message="Notification is pending", data=data)

    record = scheduler.get_record(notification_id)
    if record is not None:
        return APIResponse(
            success=True,
            message=f"Notification {record.status.value}",
            data=record.to_dict(),
        )

    raise NotFoundError("Notification", id=notification_id)


@router.delete(
    "/{notification_id}",
    response_model=APIResponse,
    summary="Cancel a pending notification",
)
async def cancel_notification(
    notification_id: str,
    scheduler: NotificationScheduler = Depends(get_scheduler),
):
    if not scheduler.cancel(notification_id):
        raise NotFoundError("Pending notification", id=notification_id)
    return APIResponse(
        success=True,
        message="Notification cancelled",
        data={"id": notification_id, "status": DeliveryStatus.CANCELLED.value},
    )
