"""
delivery.py — One guarded send() call, shared by the immediate path and
the scheduler's dispatch workers.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Callable

from backend.app.notifications.channels import Sender
from backend.app.notifications.models import (
    DeliveryOutcome,
    Notification,
    utcnow,
)
from backend.app.notifications.registry import SenderRegistry

logger = logging.getLogger(__name__)


def attempt_delivery(
    sender: Sender,
    notification: Notification,
    clock: Callable[[], datetime] = utcnow,
) -> DeliveryOutcome:
    """
    Stamp ``sent_at`` and call ``sender.send``.

    An exception escaping the sender is converted to a failed outcome so
    callers only ever deal with DeliveryOutcome.
    """
    notification.sent_at = clock()
    start = time.perf_counter()
    try:
        outcome = sender.send(notification)
    except Exception as exc:
        logger.exception(
            "Sender for %s raised while delivering %s",
            notification.channel.value, notification.id,
        )
        outcome = DeliveryOutcome.failed(f"{type(exc).__name__}: {exc}")

    duration_ms = (time.perf_counter() - start) * 1000
    logger.debug(
        "send(%s) via %s took %.1fms",
        notification.id, notification.channel.value, duration_ms,
        extra={"notification_id": notification.id, "duration_ms": duration_ms},
    )
    return outcome


def send_immediately(registry: SenderRegistry, notification: Notification) -> DeliveryOutcome:
    """
    Deliver a notification now, bypassing the scheduler.

    Raises
    ------
    UnsupportedChannelError
        If no sender is registered for the notification's channel.
    """
    sender = registry.resolve(notification.channel)
    outcome = attempt_delivery(sender, notification)
    if outcome.succeeded:
        logger.info(
            "Notification %s delivered via %s to %d recipients",
            notification.id, notification.channel.value, len(notification.recipients),
            extra={
                "notification_id": notification.id,
                "channel": notification.channel.value,
                "recipient_count": len(notification.recipients),
            },
        )
    else:
        logger.warning(
            "Notification %s delivery failed via %s: %s",
            notification.id, notification.channel.value, outcome.error_message,
        )
    return outcome
