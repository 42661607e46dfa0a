"""
channels — Per-channel delivery backends.

Each channel module exposes a sender class:
    SlackSender / EmailSender / MessageSender .send(notification) → DeliveryOutcome

Senders are stateless apart from their provider configuration. There is
no retry: a failed outcome is final.
"""

from backend.app.notifications.channels.base import Sender
from backend.app.notifications.channels.email_smtp import EmailSender
from backend.app.notifications.channels.slack_webhook import SlackSender
from backend.app.notifications.channels.sms_gateway import MessageSender

__all__ = ["Sender", "SlackSender", "EmailSender", "MessageSender"]
