"""
Health check aggregation — probe for the scheduler and channel senders.

Checks:
    • Scheduler loop running, pending count, next deadline
    • Every channel registered, real providers have an endpoint configured

Returns a structured health report suitable for:
    - Kubernetes liveness/readiness probes
    - Load balancer health checks
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List

from backend.app.core.config import Settings, settings
from backend.app.notifications.models import NotificationChannel
from backend.app.notifications.registry import SenderRegistry
from backend.app.notifications.scheduler import NotificationScheduler

logger = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"  # partial functionality
    UNHEALTHY = "unhealthy"


@dataclass
class ComponentHealth:
    name: str
    status: HealthStatus = HealthStatus.HEALTHY
    latency_ms: float = 0.0
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "name": self.name,
            "status": self.status.value,
            "latency_ms": round(self.latency_ms, 2),
        }
        if self.message:
            d["message"] = self.message
        if self.details:
            d["details"] = self.details
        return d


@dataclass
class HealthReport:
    status: HealthStatus = HealthStatus.HEALTHY
    version: str = settings.APP_VERSION
    environment: str = settings.ENVIRONMENT
    timestamp: str = ""
    uptime_seconds: float = 0.0
    components: List[ComponentHealth] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "version": self.version,
            "environment": self.environment,
            "timestamp": self.timestamp or datetime.now(timezone.utc).isoformat(),
            "uptime_seconds": round(self.uptime_seconds, 1),
            "components": [c.to_dict() for c in self.components],
        }


# Track application start time
_start_time = time.monotonic()

# Real providers and the setting each one needs
_PROVIDER_ENDPOINTS = {
    NotificationChannel.SLACK: ("SLACK_PROVIDER", "SLACK_WEBHOOK_URL"),
    NotificationChannel.EMAIL: ("EMAIL_PROVIDER", "SMTP_HOST"),
    NotificationChannel.MESSAGE: ("SMS_PROVIDER", "SMS_GATEWAY_URL"),
}


async def check_scheduler(scheduler: NotificationScheduler) -> ComponentHealth:
    """Check the timing loop is running."""
    comp = ComponentHealth(name="scheduler")
    start = time.monotonic()

    next_deadline = scheduler.next_deadline()
    comp.details = {
        "running": scheduler.is_running,
        "pending": scheduler.pending_count,
        "next_deadline": next_deadline.isoformat() if next_deadline else None,
    }
    if scheduler.is_running:
        comp.message = f"{scheduler.pending_count} notifications pending"
    else:
        comp.status = HealthStatus.UNHEALTHY
        comp.message = "Scheduler loop is not running"

    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


async def check_channels(registry: SenderRegistry, config: Settings = settings) -> ComponentHealth:
    """Check every channel has a sender and real providers are configured."""
    comp = ComponentHealth(name="channels")
    start = time.monotonic()

    missing = [c.value for c in NotificationChannel if c not in registry]
    misconfigured = []
    providers = {}
    for channel, (provider_key, endpoint_key) in _PROVIDER_ENDPOINTS.items():
        provider = getattr(config, provider_key)
        providers[channel.value] = provider
        if provider != "simulation" and not getattr(config, endpoint_key):
            misconfigured.append(f"{channel.value} ({endpoint_key} not set)")

    if missing or misconfigured:
        comp.status = HealthStatus.DEGRADED
        problems = [f"missing {m}" for m in missing] + misconfigured
        comp.message = "; ".join(problems)
    else:
        comp.message = "All channels available"

    comp.details = {"providers": providers, "missing": missing}
    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


async def run_health_check(
    scheduler: NotificationScheduler,
    registry: SenderRegistry,
) -> HealthReport:
    """Run all health checks and aggregate into a report."""
    report = HealthReport(
        timestamp=datetime.now(timezone.utc).isoformat(),
        uptime_seconds=time.monotonic() - _start_time,
    )

    report.components.append(await check_scheduler(scheduler))
    report.components.append(await check_channels(registry))

    statuses = [c.status for c in report.components]
    if HealthStatus.UNHEALTHY in statuses:
        report.status = HealthStatus.UNHEALTHY
    elif HealthStatus.DEGRADED in statuses:
        report.status = HealthStatus.DEGRADED
    else:
        report.status = HealthStatus.HEALTHY

    return report
