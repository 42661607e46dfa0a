"""
slack_webhook.py — Slack delivery channel.

Delivery mechanism:
    • Incoming webhook: one HTTP POST per notification
    • Recipients are mentioned in the message text (<@U123> style ids are
      passed through untouched)
    • Default: simulation mode for development (log only)

═══════════════════════════════════════════════════════════════════════════
MESSAGE LAYOUT
═══════════════════════════════════════════════════════════════════════════

    *{title}*
    {content}
    cc: user1, user2, user3
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from backend.app.notifications.channels.base import SIMULATION, preview
from backend.app.notifications.models import DeliveryOutcome, Notification

logger = logging.getLogger(__name__)


def _build_message(notification: Notification) -> dict:
    text = f"*{notification.title}*\n{notification.content}"
    if notification.recipients:
        text += f"\ncc: {', '.join(notification.recipients)}"
    return {"text": text}


class SlackSender:
    """
    Sends notifications to Slack.

    Parameters
    ----------
    provider : str
        "simulation" or "webhook".
    webhook_url : str | None
        Incoming-webhook URL (provider="webhook").
    timeout_seconds : float
        HTTP timeout for the webhook call.
    client : httpx.Client | None
        Optional pre-built client (tests pass one with a mock transport).
    """

    def __init__(
        self,
        *,
        provider: str = SIMULATION,
        webhook_url: Optional[str] = None,
        timeout_seconds: float = 15.0,
        client: Optional[httpx.Client] = None,
    ):
        self.provider = provider
        self.webhook_url = webhook_url
        self.timeout_seconds = timeout_seconds
        self._client = client

    def send(self, notification: Notification) -> DeliveryOutcome:
        message = _build_message(notification)

        if self.provider == SIMULATION:
            logger.info(
                "[SLACK] Notification %s → %s: %s",
                notification.id,
                notification.recipients,
                preview(notification.title),
                extra={"notification_id": notification.id, "channel": "slack"},
            )
            return DeliveryOutcome.delivered(
                mode="simulated",
                recipients=len(notification.recipients),
                text_length=len(message["text"]),
            )

        if self.provider != "webhook":
            return DeliveryOutcome.failed(f"Unknown Slack provider: {self.provider}")

        if not self.webhook_url:
            return DeliveryOutcome.failed("Slack webhook URL is not configured")

        try:
            if self._client is not None:
                response = self._client.post(
                    self.webhook_url, json=message, timeout=self.timeout_seconds,
                )
            else:
                with httpx.Client(timeout=self.timeout_seconds) as client:
                    response = client.post(self.webhook_url, json=message)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("[SLACK] Failed for %s: %s", notification.id, exc)
            return DeliveryOutcome.failed(str(exc), mode="webhook")

        logger.info("[SLACK/webhook] Notification %s posted", notification.id)
        return DeliveryOutcome.delivered(mode="webhook", status_code=response.status_code)
