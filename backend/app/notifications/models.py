"""
models.py — Shared data structures for the notification scheduler.

Defines:
    • NotificationChannel — delivery channel tag
    • DeliveryStatus      — lifecycle state as seen by the scheduler
    • Notification        — the unit of work
    • DeliveryOutcome     — result of one send() call
    • DeliveryRecord      — what the scheduler remembers after a firing

═══════════════════════════════════════════════════════════════════════════
NOTIFICATION LIFECYCLE
═══════════════════════════════════════════════════════════════════════════

    constructed ──(scheduled_at set)──► PENDING ──(deadline)──► DISPATCHING
         │                                 │                   │
         │                                 └──(cancel)──► CANCELLED
         │                                                     ▼
         └──(no scheduled_at)──► immediate send ──► DELIVERED / FAILED

A notification rejected at admission never becomes PENDING. Firing is
terminal: a FAILED delivery is not retried.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


# ═══════════════════════════════════════════════════════════════════════════
# Enums
# ═══════════════════════════════════════════════════════════════════════════

class NotificationChannel(str, Enum):
    """Available delivery channels."""
    SLACK   = "slack"
    EMAIL   = "email"
    MESSAGE = "message"  # SMS


class DeliveryStatus(str, Enum):
    """Delivery state of a notification."""
    PENDING     = "pending"      # admitted, waiting for its deadline
    DISPATCHING = "dispatching"  # fired, send in progress
    DELIVERED   = "delivered"    # sender reported success
    FAILED      = "failed"       # sender reported failure (no retry)
    CANCELLED   = "cancelled"    # removed before its deadline


# ═══════════════════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════════════════

def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Return an aware UTC datetime; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


# ═══════════════════════════════════════════════════════════════════════════
# Data Structures
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class Notification:
    """
    A notification to deliver to one or more recipients over one channel.

    Attributes
    ----------
    id : str
        Unique identifier assigned by the creator.
    title, content : str
        Opaque payload; never interpreted by the scheduler.
    channel : NotificationChannel
        Selects the sender.
    recipients : list of str
        Destinations (Slack ids, email addresses, phone numbers). Format is
        the sender's concern.
    scheduled_at : datetime | None
        Future delivery time. None means deliver immediately.
    created_at : datetime
        Construction time (UTC).
    sent_at : datetime | None
        Time delivery was attempted; set by the dispatch path.
    """
    id: str
    title: str
    content: str
    channel: NotificationChannel
    recipients: List[str]
    scheduled_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)
    sent_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        self.channel = NotificationChannel(self.channel)
        self.recipients = list(self.recipients)
        if self.scheduled_at is not None:
            self.scheduled_at = as_utc(self.scheduled_at)

    @property
    def is_scheduled(self) -> bool:
        return self.scheduled_at is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "channel": self.channel.value,
            "recipients": list(self.recipients),
            "scheduled_at": _isoformat(self.scheduled_at),
            "created_at": self.created_at.isoformat(),
            "sent_at": _isoformat(self.sent_at),
        }


@dataclass
class DeliveryOutcome:
    """Result of a single send() call on a channel sender."""
    status: DeliveryStatus = DeliveryStatus.DELIVERED
    error_message: Optional[str] = None
    provider_response: Optional[Dict[str, Any]] = None

    @property
    def succeeded(self) -> bool:
        return self.status == DeliveryStatus.DELIVERED

    @classmethod
    def delivered(cls, **provider_response: Any) -> "DeliveryOutcome":
        return cls(
            status=DeliveryStatus.DELIVERED,
            provider_response=provider_response or None,
        )

    @classmethod
    def failed(cls, error_message: str, **provider_response: Any) -> "DeliveryOutcome":
        return cls(
            status=DeliveryStatus.FAILED,
            error_message=error_message,
            provider_response=provider_response or None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "error_message": self.error_message,
            "provider_response": self.provider_response,
        }


@dataclass
class DeliveryRecord:
    """Terminal record of a scheduled notification (fired or cancelled)."""
    notification_id: str
    channel: NotificationChannel
    status: DeliveryStatus
    scheduled_at: Optional[datetime] = None
    fired_at: Optional[datetime] = None
    error_message: Optional[str] = None

    @property
    def delay_seconds(self) -> Optional[float]:
        """How long after its deadline the notification fired."""
        if self.scheduled_at is None or self.fired_at is None:
            return None
        return (self.fired_at - self.scheduled_at).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        delay = self.delay_seconds
        return {
            "notification_id": self.notification_id,
            "channel": self.channel.value,
            "status": self.status.value,
            "scheduled_at": _isoformat(self.scheduled_at),
            "fired_at": _isoformat(self.fired_at),
            "delay_seconds": round(delay, 3) if delay is not None else None,
            "error_message": self.error_message,
        }
