"""Shared fixtures: recording stub senders and scheduler lifecycle cleanup."""

from __future__ import annotations

import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

import pytest

from backend.app.notifications.models import (
    DeliveryOutcome,
    Notification,
    NotificationChannel,
)
from backend.app.notifications.registry import SenderRegistry
from backend.app.notifications.scheduler import NotificationScheduler


class RecordingSender:
    """
    Stub sender that records every call.

    ``fail`` returns a failed outcome, ``raise_error`` raises from send(),
    ``block`` makes send() wait on an event before returning.
    """

    def __init__(
        self,
        *,
        fail: bool = False,
        raise_error: bool = False,
        block: Optional[threading.Event] = None,
    ):
        self.fail = fail
        self.raise_error = raise_error
        self.block = block
        self.calls: List[Notification] = []
        self.sent_times: Dict[str, datetime] = {}
        self.started = threading.Event()
        self._lock = threading.Lock()
        self._called = threading.Condition(self._lock)

    def send(self, notification: Notification) -> DeliveryOutcome:
        with self._lock:
            self.calls.append(notification)
            self.sent_times[notification.id] = datetime.now(timezone.utc)
            self._called.notify_all()
        self.started.set()
        if self.block is not None:
            self.block.wait(5.0)
        if self.raise_error:
            raise RuntimeError("provider exploded")
        if self.fail:
            return DeliveryOutcome.failed("provider rejected the message")
        return DeliveryOutcome.delivered(mode="stub")

    def ids(self) -> List[str]:
        with self._lock:
            return [n.id for n in self.calls]

    def wait_for_calls(self, count: int, timeout: float = 5.0) -> bool:
        with self._called:
            return self._called.wait_for(lambda: len(self.calls) >= count, timeout)


def future(seconds: float) -> datetime:
    return datetime.now(timezone.utc) + timedelta(seconds=seconds)


def make_notification(
    nid: str = "N001",
    channel: NotificationChannel = NotificationChannel.SLACK,
    delay: Optional[float] = 0.3,
    recipients: Optional[List[str]] = None,
) -> Notification:
    return Notification(
        id=nid,
        title=f"Test {channel.value} notification",
        content="This is a test notification.",
        channel=channel,
        recipients=recipients or ["user1", "user2"],
        scheduled_at=future(delay) if delay is not None else None,
    )


def wait_until(predicate: Callable[[], bool], timeout: float = 5.0, interval: float = 0.01) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def senders() -> Dict[NotificationChannel, RecordingSender]:
    return {channel: RecordingSender() for channel in NotificationChannel}


@pytest.fixture
def registry(senders) -> SenderRegistry:
    return SenderRegistry(senders)


@pytest.fixture
def make_scheduler():
    """Factory for schedulers that are always stopped at teardown."""
    created: List[NotificationScheduler] = []

    def _make(registry: SenderRegistry, **kwargs) -> NotificationScheduler:
        kwargs.setdefault("granularity_seconds", 0.05)
        scheduler = NotificationScheduler(registry, **kwargs)
        created.append(scheduler)
        return scheduler

    yield _make

    for scheduler in created:
        scheduler.stop(timeout=5.0)
