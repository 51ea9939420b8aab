"""Notification dispatchers (webhooks and AMQP)."""

from webforms.services.notifications.amqp import AMQPDispatcher
from webforms.services.notifications.base import (
    Notification,
    NotifyEvent,
    deliver_with_retries,
    render_payload,
)
from webforms.services.notifications.webhook import WebhookDispatcher

__all__ = [
    "AMQPDispatcher",
    "Notification",
    "NotifyEvent",
    "WebhookDispatcher",
    "deliver_with_retries",
    "render_payload",
]
