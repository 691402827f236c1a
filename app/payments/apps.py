"""
Payments app configuration.

Escrow settlement for accepted offers: Stripe checkout, escrow hold,
release with provider payout, policy-based refunds and webhook processing.
"""

from django.apps import AppConfig


class PaymentsConfig(AppConfig):
    """Configuration for the payments application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "payments"
    verbose_name = "Payments"

    def ready(self) -> None:
        # Registers the webhook handlers
        from payments.webhooks import handlers  # noqa: F401
