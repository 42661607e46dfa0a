"""
email_smtp.py — Email delivery channel.

Delivery mechanism:
    • SMTP with STARTTLS (login when credentials are configured)
    • One plain-text message per recipient so addresses are not disclosed
      to each other
    • Default: simulation mode for development (log only)

    Subject: {title}
    Body:    {content}
"""

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from typing import Optional

from backend.app.notifications.channels.base import SIMULATION, preview
from backend.app.notifications.models import DeliveryOutcome, Notification

logger = logging.getLogger(__name__)


def build_message(notification: Notification, to_address: str, from_address: str) -> EmailMessage:
    msg = EmailMessage()
    msg["Subject"] = notification.title
    msg["From"] = from_address
    msg["To"] = to_address
    msg.set_content(notification.content)
    return msg


class EmailSender:
    """
    Sends notifications by email.

    Parameters
    ----------
    provider : str
        "simulation" or "smtp".
    smtp_host, smtp_port : str, int
        SMTP server (provider="smtp").
    username, password : str | None
        SMTP credentials; login is skipped when absent.
    from_address : str
        Envelope sender.
    timeout_seconds : float
    """

    def __init__(
        self,
        *,
        provider: str = SIMULATION,
        smtp_host: Optional[str] = None,
        smtp_port: int = 587,
        username: Optional[str] = None,
        password: Optional[str] = None,
        from_address: str = "notifications@localhost",
        timeout_seconds: float = 20.0,
    ):
        self.provider = provider
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.username = username
        self.password = password
        self.from_address = from_address
        self.timeout_seconds = timeout_seconds

    def send(self, notification: Notification) -> DeliveryOutcome:
        if self.provider == SIMULATION:
            for address in notification.recipients:
                logger.info(
                    "[EMAIL] Notification %s → %s: Subject='%s'",
                    notification.id, address, preview(notification.title),
                    extra={"notification_id": notification.id, "channel": "email"},
                )
            return DeliveryOutcome.delivered(
                mode="simulated",
                recipients=len(notification.recipients),
                subject=notification.title,
            )

        if self.provider != "smtp":
            return DeliveryOutcome.failed(f"Unknown email provider: {self.provider}")

        if not self.smtp_host:
            return DeliveryOutcome.failed("SMTP host is not configured")

        try:
            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout_seconds) as server:
                server.starttls()
                if self.username and self.password:
                    server.login(self.username, self.password)
                for address in notification.recipients:
                    server.send_message(build_message(notification, address, self.from_address))
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("[EMAIL] Failed for %s: %s", notification.id, exc)
            return DeliveryOutcome.failed(str(exc), mode="smtp")

        logger.info(
            "[EMAIL/SMTP] Notification %s sent to %d recipients",
            notification.id, len(notification.recipients),
        )
        return DeliveryOutcome.delivered(mode="smtp", recipients=len(notification.recipients))
