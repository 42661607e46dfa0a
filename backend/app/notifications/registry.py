"""
registry.py — Channel → sender lookup.

The registry is built once and never mutated. Resolution is a pure
lookup: no I/O, no side effects.
"""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Mapping, Tuple, Union

from backend.app.core.config import Settings
from backend.app.core.errors import UnsupportedChannelError
from backend.app.notifications.channels import (
    EmailSender,
    MessageSender,
    Sender,
    SlackSender,
)
from backend.app.notifications.models import NotificationChannel

logger = logging.getLogger(__name__)


class SenderRegistry:
    """Immutable mapping from channel tag to the sender that delivers it."""

    def __init__(self, senders: Mapping[NotificationChannel, Sender]):
        self._senders = MappingProxyType(
            {NotificationChannel(channel): sender for channel, sender in senders.items()}
        )

    @property
    def channels(self) -> Tuple[NotificationChannel, ...]:
        return tuple(self._senders)

    def resolve(self, channel: Union[NotificationChannel, str]) -> Sender:
        """
        Return the sender registered for ``channel``.

        Raises
        ------
        UnsupportedChannelError
            If the tag is not a known channel or has no registered sender.
        """
        try:
            key = NotificationChannel(channel)
        except ValueError:
            raise UnsupportedChannelError(channel) from None

        sender = self._senders.get(key)
        if sender is None:
            raise UnsupportedChannelError(key)
        return sender

    def __contains__(self, channel: object) -> bool:
        try:
            return NotificationChannel(channel) in self._senders
        except ValueError:
            return False

    def __len__(self) -> int:
        return len(self._senders)


def build_default_registry(settings: Settings) -> SenderRegistry:
    """Wire one sender per channel from application settings."""
    timeout = settings.DELIVERY_TIMEOUT_SECONDS
    registry = SenderRegistry({
        NotificationChannel.SLACK: SlackSender(
            provider=settings.SLACK_PROVIDER,
            webhook_url=settings.SLACK_WEBHOOK_URL,
            timeout_seconds=timeout,
        ),
        NotificationChannel.EMAIL: EmailSender(
            provider=settings.EMAIL_PROVIDER,
            smtp_host=settings.SMTP_HOST,
            smtp_port=settings.SMTP_PORT,
            username=settings.SMTP_USER,
            password=settings.SMTP_PASSWORD,
            from_address=settings.EMAIL_FROM_ADDRESS,
            timeout_seconds=timeout,
        ),
        NotificationChannel.MESSAGE: MessageSender(
            provider=settings.SMS_PROVIDER,
            gateway_url=settings.SMS_GATEWAY_URL,
            api_key=settings.SMS_API_KEY,
            timeout_seconds=timeout,
        ),
    })
    logger.info(
        "Sender registry ready: slack=%s email=%s message=%s",
        settings.SLACK_PROVIDER, settings.EMAIL_PROVIDER, settings.SMS_PROVIDER,
    )
    return registry
