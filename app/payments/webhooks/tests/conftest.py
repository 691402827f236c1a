"""
Pytest fixtures for webhook tests.

Payment and collaborator fixtures are shared with payments/tests; this
module adds stored WebhookEvents and Stripe event payload builders.
"""

import pytest
from django.utils import timezone

from payments.state_machines import WebhookEventStatus
from payments.tests.conftest import (  # noqa: F401
    accepted_offer,
    coordinator,
    escrowed_payment,
    job,
    ledger,
    mock_gateway,
    mock_notifications,
    mock_realtime,
    pending_payment,
)
from payments.tests.factories import WebhookEventFactory


# =============================================================================
# Payload Builders
# =============================================================================


def stripe_event(event_type: str, data_object: dict, event_id: str = "evt_test_123") -> dict:
    """Minimal Stripe Event envelope."""
    return {
        "id": event_id,
        "object": "event",
        "type": event_type,
        "data": {"object": data_object},
    }


def checkout_session_object(payment, payment_status="paid", payment_intent="pi_test_webhook") -> dict:
    return {
        "id": payment.stripe_session_id,
        "object": "checkout.session",
        "payment_status": payment_status,
        "payment_intent": payment_intent,
        "metadata": {
            "offerId": str(payment.offer_id),
            "paymentType": payment.payment_type,
        },
    }


def payout_object(payment=None, payout_id="po_test_payout", failure_message=None) -> dict:
    obj = {
        "id": payout_id,
        "object": "payout",
        "amount": payment.amount if payment else 5000,
        "currency": "usd",
        "metadata": {"paymentId": str(payment.id)} if payment else {},
    }
    if failure_message:
        obj["failure_message"] = failure_message
    return obj


def make_event(event_type: str, data_object: dict, **kwargs):
    """Stored WebhookEvent wrapping a Stripe event payload."""
    event = WebhookEventFactory.build(event_type=event_type, **kwargs)
    event.payload = stripe_event(event_type, data_object, event.stripe_event_id)
    event.save()
    return event


# =============================================================================
# Webhook Event Fixtures
# =============================================================================


@pytest.fixture
def pending_webhook_event(db):
    return WebhookEventFactory(event_type="payment_intent.succeeded")


@pytest.fixture
def processed_webhook_event(db):
    return WebhookEventFactory(
        status=WebhookEventStatus.PROCESSED,
        processed_at=timezone.now(),
        retry_count=1,
    )


@pytest.fixture
def failed_webhook_event(db):
    return WebhookEventFactory(
        status=WebhookEventStatus.FAILED,
        error_message="Payment not found",
        retry_count=1,
    )
