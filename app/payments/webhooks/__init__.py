"""
Webhook handling for payment events from Stripe.

Webhooks are verified, stored idempotently, and processed asynchronously
via Celery tasks. The receiver view lives in payments.webhooks.views.

Usage:
    from payments.webhooks import WebhookEventProcessor

    WebhookEventProcessor().process(webhook_event)
"""

from payments.webhooks.handlers import WEBHOOK_HANDLERS, dispatch_webhook, register_handler
from payments.webhooks.processor import WebhookEventProcessor

__all__ = [
    "WEBHOOK_HANDLERS",
    "WebhookEventProcessor",
    "dispatch_webhook",
    "register_handler",
]
