"""Webhook delivery, request recording and the idle-scan scheduler."""

from .webhooks import WebhookDispatcher, WebhookDelivery
from .recorder import RequestRecorder
from .scheduler import IdleScanScheduler

__all__ = [
    "WebhookDispatcher",
    "WebhookDelivery",
    "RequestRecorder",
    "IdleScanScheduler",
]
