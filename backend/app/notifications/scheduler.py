"""
scheduler.py — Time-triggered scheduling and dispatch engine.

Holds notifications until their ``scheduled_at`` arrives and hands each one
to its channel sender exactly once. Timing and the worker pool come from
APScheduler; this module owns admission rules, the pending set and the
delivery history.

═══════════════════════════════════════════════════════════════════════════
PENDING SET
═══════════════════════════════════════════════════════════════════════════

    _pending   id → (sequence, notification)      source of truth
    APScheduler job per id (date trigger)          wake-up at the deadline

Every job carries the sequence it was created for. When it fires it removes
the pending entry only if the sequence still matches, so a cancel, a stop or
a reschedule of the same id racing the firing can never produce a second
send. ``stop()`` discards the APScheduler instance (and its jobs) but keeps
``_pending``; ``start()`` builds a fresh instance and re-adds a job for every
pending notification, overdue ones firing immediately
(``misfire_grace_time=None``).

═══════════════════════════════════════════════════════════════════════════
TIMING
═══════════════════════════════════════════════════════════════════════════

APScheduler sleeps until the earliest run time and is woken by every
``add_job``/``remove_job``, so a notification fires a few milliseconds after
``scheduled_at``. An interval job every ``granularity_seconds`` (default
1 s) caps each sleep, which bounds lateness when the wall clock is stepped.

═══════════════════════════════════════════════════════════════════════════
DISPATCH
═══════════════════════════════════════════════════════════════════════════

    job fires ──► pending entry removed, DISPATCHING record written
              ──► sender.send() on the APScheduler worker pool
              ──► record replaced with DELIVERED / FAILED
              ──► listener: on_outcome callback, in-flight count released

A failed delivery is logged and recorded in the history; it is never
re-admitted.
"""

from __future__ import annotations

import itertools
import logging
import threading
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple

from apscheduler.events import (
    EVENT_JOB_ERROR,
    EVENT_JOB_EXECUTED,
    EVENT_JOB_SUBMITTED,
    JobExecutionEvent,
    JobSubmissionEvent,
)
from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.base import ConflictingIdError, JobLookupError
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.background import BackgroundScheduler

from backend.app.core.errors import (
    DuplicateNotificationError,
    MissingScheduleTimeError,
    PastScheduleTimeError,
    UnsupportedChannelError,
)
from backend.app.core.logging_config import log_context
from backend.app.notifications.delivery import attempt_delivery
from backend.app.notifications.models import (
    DeliveryOutcome,
    DeliveryRecord,
    DeliveryStatus,
    Notification,
    as_utc,
    utcnow,
)
from backend.app.notifications.registry import SenderRegistry

logger = logging.getLogger(__name__)

OutcomeCallback = Callable[[Notification, DeliveryOutcome], None]

_WAKEUP_JOB_ID = "__scheduler_wakeup__"


def _wake() -> None:
    """Interval job body; running it is what re-evaluates due jobs."""


class NotificationScheduler:
    """
    Fires scheduled notifications at their delivery time.

    Usage:
        scheduler = NotificationScheduler(registry)
        scheduler.start()

        scheduler.schedule(notification)      # returns immediately
        scheduler.cancel(notification.id)     # optional, before it fires

        scheduler.stop()                      # pending notifications are kept

    Parameters
    ----------
    registry : SenderRegistry
        Resolves each notification's channel to its sender at fire time.
    granularity_seconds : float
        Longest single sleep of the timing thread.
    max_workers : int
        Size of the dispatch pool.
    history_size : int
        Number of delivery records kept for status lookups.
    on_outcome : callable | None
        Called as ``on_outcome(notification, outcome)`` after each firing.
    clock : callable
        Returns the current aware datetime; used for admission checks and
        ``fired_at``. Injectable for tests.
    """

    def __init__(
        self,
        registry: SenderRegistry,
        *,
        granularity_seconds: float = 1.0,
        max_workers: int = 4,
        history_size: int = 1000,
        on_outcome: Optional[OutcomeCallback] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        if granularity_seconds <= 0:
            raise ValueError("granularity_seconds must be positive")
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")

        self._registry = registry
        self._granularity = granularity_seconds
        self._max_workers = max_workers
        self._history_size = history_size
        self._on_outcome = on_outcome
        self._clock = clock

        self._lock = threading.Lock()
        self._pending: Dict[str, Tuple[int, Notification]] = {}
        self._sequence = itertools.count()

        self._lifecycle_lock = threading.Lock()
        self._scheduler: Optional[BackgroundScheduler] = None

        self._records_lock = threading.Lock()
        self._history: "OrderedDict[str, DeliveryRecord]" = OrderedDict()

        self._idle = threading.Condition()
        self._in_flight = 0

    # ── Admission ──

    def schedule(self, notification: Notification) -> None:
        """
        Admit a notification into the pending set.

        Raises
        ------
        MissingScheduleTimeError
            ``scheduled_at`` is not set.
        PastScheduleTimeError
            ``scheduled_at`` is not strictly after the current time.
        DuplicateNotificationError
            A notification with the same id is already pending.
        """
        if notification.scheduled_at is None:
            raise MissingScheduleTimeError(notification.id)
        scheduled_at = as_utc(notification.scheduled_at)

        with self._lock:
            now = self._clock()
            if scheduled_at <= now:
                raise PastScheduleTimeError(notification.id, scheduled_at, now)
            if notification.id in self._pending:
                raise DuplicateNotificationError(notification.id)

            sequence = next(self._sequence)
            if self._scheduler is not None:
                self._add_job(self._scheduler, notification.id, sequence, scheduled_at)
            self._pending[notification.id] = (sequence, notification)

        logger.info(
            "Scheduled notification %s via %s for %s",
            notification.id, notification.channel.value, scheduled_at.isoformat(),
            extra={
                "notification_id": notification.id,
                "channel": notification.channel.value,
                "scheduled_at": scheduled_at.isoformat(),
            },
        )

    def cancel(self, notification_id: str) -> bool:
        """Remove a pending notification. Returns False if it is not pending."""
        with self._lock:
            entry = self._pending.pop(notification_id, None)
            if entry is None:
                return False
            if self._scheduler is not None:
                try:
                    self._scheduler.remove_job(notification_id)
                except JobLookupError:
                    # Already handed to a worker; it will find the entry gone
                    logger.debug("Job for %s was already submitted", notification_id)

            notification = entry[1]
            self._remember(DeliveryRecord(
                notification_id=notification.id,
                channel=notification.channel,
                status=DeliveryStatus.CANCELLED,
                scheduled_at=notification.scheduled_at,
            ))

        logger.info("Cancelled notification %s", notification_id)
        return True

    # ── Inspection ──

    def get(self, notification_id: str) -> Optional[Notification]:
        """Return the pending notification with this id, if any."""
        with self._lock:
            entry = self._pending.get(notification_id)
        return entry[1] if entry else None

    def pending(self) -> List[Notification]:
        """Snapshot of the pending set, earliest deadline first."""
        with self._lock:
            entries = sorted(
                self._pending.values(),
                key=lambda e: (e[1].scheduled_at, e[0]),
            )
        return [notification for _, notification in entries]

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def next_deadline(self) -> Optional[datetime]:
        with self._lock:
            if not self._pending:
                return None
            return min(n.scheduled_at for _, n in self._pending.values())

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None

    def history(self) -> List[DeliveryRecord]:
        """Recent delivery records, oldest first."""
        with self._records_lock:
            return list(self._history.values())

    def get_record(self, notification_id: str) -> Optional[DeliveryRecord]:
        """Delivery record for a fired, firing or cancelled notification."""
        with self._records_lock:
            return self._history.get(notification_id)

    # ── Lifecycle ──

    def start(self) -> None:
        """Start timing and dispatch. Does nothing if already running."""
        with self._lifecycle_lock:
            if self._scheduler is not None:
                logger.debug("Scheduler already running")
                return

            scheduler = BackgroundScheduler(
                jobstores={"default": MemoryJobStore()},
                executors={"default": ThreadPoolExecutor(max_workers=self._max_workers)},
                job_defaults={
                    "coalesce": True,
                    "misfire_grace_time": None,
                    "max_instances": self._max_workers,
                },
                timezone=timezone.utc,
            )
            scheduler.add_listener(self._on_job_submitted, EVENT_JOB_SUBMITTED)
            scheduler.add_listener(self._on_job_finished, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)
            scheduler.add_job(
                _wake, trigger="interval", seconds=self._granularity, id=_WAKEUP_JOB_ID,
            )

            with self._lock:
                for notification_id, (sequence, notification) in self._pending.items():
                    self._add_job(scheduler, notification_id, sequence, notification.scheduled_at)
                scheduler.start()
                self._scheduler = scheduler
                pending = len(self._pending)

        logger.info(
            "Notification scheduler started (%d pending, granularity=%.2fs, workers=%d)",
            pending, self._granularity, self._max_workers,
        )

    def stop(self, timeout: Optional[float] = None) -> bool:
        """
        Stop timing and wait for in-flight dispatches.

        Pending notifications stay pending. Notifications whose job was
        already handed to a worker are still dispatched.

        Parameters
        ----------
        timeout : float | None
            Longest wait for in-flight dispatches; None waits indefinitely.

        Returns
        -------
        bool
            True if every in-flight dispatch finished before returning.
        """
        with self._lifecycle_lock:
            with self._lock:
                scheduler, self._scheduler = self._scheduler, None
            if scheduler is None:
                return True

            scheduler.shutdown(wait=timeout is None)
            with self._idle:
                finished = self._idle.wait_for(lambda: self._in_flight <= 0, timeout)

        if not finished:
            logger.warning(
                "Scheduler stopped with %d dispatches still running", self._in_flight,
            )
        logger.info("Notification scheduler stopped (%d pending)", self.pending_count)
        return finished

    # ── Dispatch ──

    def _add_job(
        self,
        scheduler: BackgroundScheduler,
        notification_id: str,
        sequence: int,
        scheduled_at: datetime,
    ) -> None:
        try:
            scheduler.add_job(
                self._dispatch,
                trigger="date",
                run_date=scheduled_at,
                id=notification_id,
                args=(notification_id, sequence),
                replace_existing=False,
            )
        except ConflictingIdError:
            raise DuplicateNotificationError(notification_id) from None

    def _dispatch(
        self, notification_id: str, sequence: int,
    ) -> Optional[Tuple[Notification, DeliveryOutcome]]:
        fired_at = self._clock()
        with self._lock:
            entry = self._pending.get(notification_id)
            if entry is None or entry[0] != sequence:
                return None
            del self._pending[notification_id]
            notification = entry[1]
            self._remember(DeliveryRecord(
                notification_id=notification.id,
                channel=notification.channel,
                status=DeliveryStatus.DISPATCHING,
                scheduled_at=notification.scheduled_at,
                fired_at=fired_at,
            ))

        channel = notification.channel.value
        with log_context(notification_id=notification.id, channel=channel):
            try:
                sender = self._registry.resolve(notification.channel)
            except UnsupportedChannelError as exc:
                outcome = DeliveryOutcome.failed(exc.message)
            else:
                outcome = attempt_delivery(sender, notification, self._clock)

            record = DeliveryRecord(
                notification_id=notification.id,
                channel=notification.channel,
                status=outcome.status,
                scheduled_at=notification.scheduled_at,
                fired_at=fired_at,
                error_message=outcome.error_message,
            )
            self._remember(record)

            if outcome.succeeded:
                logger.info(
                    "Fired notification %s via %s (%.3fs after deadline)",
                    notification.id, channel, record.delay_seconds or 0.0,
                )
            else:
                logger.error(
                    "DeliveryFailed: notification %s via %s: %s",
                    notification.id, channel, outcome.error_message,
                )
        return notification, outcome

    # ── APScheduler listeners ──

    def _on_job_submitted(self, event: JobSubmissionEvent) -> None:
        with self._idle:
            self._in_flight += 1

    def _on_job_finished(self, event: JobExecutionEvent) -> None:
        try:
            if event.exception is not None:
                logger.error("Job %s raised: %s", event.job_id, event.exception)
            elif event.retval is not None and self._on_outcome is not None:
                notification, outcome = event.retval
                try:
                    self._on_outcome(notification, outcome)
                except Exception:
                    logger.exception("Outcome callback failed for %s", notification.id)
        finally:
            with self._idle:
                self._in_flight -= 1
                self._idle.notify_all()

    def _remember(self, record: DeliveryRecord) -> None:
        with self._records_lock:
            self._history[record.notification_id] = record
            self._history.move_to_end(record.notification_id)
            while len(self._history) > self._history_size:
                self._history.popitem(last=False)
