"""
Payment domain models.

- Payment: One escrow transaction for an accepted offer
- WebhookEvent: Stripe webhook event tracking for idempotent processing
"""

from payments.models.payment import Payment
from payments.models.webhook_event import WebhookEvent

__all__ = [
    "Payment",
    "WebhookEvent",
]
