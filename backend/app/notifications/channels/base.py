"""
base.py — The sending capability every channel implements.

A sender is any object with ``send(notification) -> DeliveryOutcome``.
Senders report provider failures as a failed outcome instead of raising;
the scheduler still guards against exceptions escaping ``send``.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from backend.app.notifications.models import DeliveryOutcome, Notification

SIMULATION = "simulation"


@runtime_checkable
class Sender(Protocol):
    """Delivers a notification over one channel."""

    def send(self, notification: Notification) -> DeliveryOutcome:
        ...


def preview(text: str, limit: int = 80) -> str:
    """Shorten text for log lines."""
    return text[:limit] + ("..." if len(text) > limit else "")
