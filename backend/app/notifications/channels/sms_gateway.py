"""
sms_gateway.py — SMS delivery channel via an HTTP gateway.

Delivery mechanism:
    • HTTP POST per recipient to the configured gateway URL
    • Body ≤160 chars (GSM 7-bit single segment); longer text is truncated
    • Default: simulation mode for development (log only)

    Body format:
        "{title}: {content}"
"""

from __future__ import annotations

import logging
from typing import List, Optional

import httpx

from backend.app.notifications.channels.base import SIMULATION, preview
from backend.app.notifications.models import DeliveryOutcome, Notification

logger = logging.getLogger(__name__)

SMS_MAX_GSM7 = 160


def format_sms(notification: Notification) -> str:
    """Format the SMS body within the 160-char GSM limit."""
    body = f"{notification.title}: {notification.content}"
    if len(body) > SMS_MAX_GSM7:
        body = body[: SMS_MAX_GSM7 - 3] + "..."
    return body


class MessageSender:
    """
    Sends notifications as text messages.

    Parameters
    ----------
    provider : str
        "simulation" or "webhook".
    gateway_url : str | None
        Gateway endpoint (provider="webhook").
    api_key : str | None
        Sent as a bearer token when set.
    timeout_seconds : float
    client : httpx.Client | None
        Optional pre-built client (tests pass one with a mock transport).
    """

    def __init__(
        self,
        *,
        provider: str = SIMULATION,
        gateway_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout_seconds: float = 15.0,
        client: Optional[httpx.Client] = None,
    ):
        self.provider = provider
        self.gateway_url = gateway_url
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self._client = client

    def _headers(self) -> dict:
        if self.api_key:
            return {"Authorization": f"Bearer {self.api_key}"}
        return {}

    def _post_all(self, client: httpx.Client, body: str, recipients: List[str]) -> List[str]:
        failed = []
        for phone in recipients:
            try:
                response = client.post(
                    self.gateway_url,
                    json={"to": phone, "body": body},
                    headers=self._headers(),
                    timeout=self.timeout_seconds,
                )
                response.raise_for_status()
            except httpx.HTTPError as exc:
                logger.warning("[SMS] Gateway rejected %s: %s", phone, exc)
                failed.append(phone)
        return failed

    def send(self, notification: Notification) -> DeliveryOutcome:
        body = format_sms(notification)

        if self.provider == SIMULATION:
            for phone in notification.recipients:
                logger.info(
                    "[SMS] Notification %s → %s: %d chars → '%s'",
                    notification.id, phone, len(body), preview(body),
                    extra={"notification_id": notification.id, "channel": "message"},
                )
            return DeliveryOutcome.delivered(
                mode="simulated",
                recipients=len(notification.recipients),
                message_length=len(body),
            )

        if self.provider != "webhook":
            return DeliveryOutcome.failed(f"Unknown SMS provider: {self.provider}")

        if not self.gateway_url:
            return DeliveryOutcome.failed("SMS gateway URL is not configured")

        if self._client is not None:
            failed = self._post_all(self._client, body, notification.recipients)
        else:
            with httpx.Client() as client:
                failed = self._post_all(client, body, notification.recipients)

        if failed:
            return DeliveryOutcome.failed(
                f"Gateway rejected {len(failed)} of {len(notification.recipients)} recipients",
                mode="webhook",
                failed_recipients=failed,
            )

        logger.info(
            "[SMS/webhook] Notification %s sent to %d recipients",
            notification.id, len(notification.recipients),
        )
        return DeliveryOutcome.delivered(mode="webhook", recipients=len(notification.recipients))
