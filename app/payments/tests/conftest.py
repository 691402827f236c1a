"""
Pytest fixtures for payment tests.

Fixtures provide offers and payments in the states the settlement flows
start from, plus an EscrowLedger/SettlementCoordinator wired to a mock
Stripe gateway and recording notifiers.

Usage:
    def test_release(ledger, escrowed_payment, seeker):
        ledger.release_from_escrow(escrowed_payment.id, seeker)
"""

from unittest.mock import MagicMock

import pytest

from jobs.models import JobRequestStatus
from jobs.tests.factories import JobRequestFactory
from offers.states import OfferPaymentStatus, OfferStatus
from offers.tests.factories import OfferFactory
from payments.adapters import CheckoutSessionResult, PayoutResult, RefundResult
from payments.models import Payment
from payments.services import EscrowLedger, SettlementCoordinator
from payments.tests.factories import PaymentFactory


def get_fresh_payment(payment_id) -> Payment:
    """
    Re-read a payment from the database.

    django-fsm's protected status field rejects refresh_from_db(), so tests
    fetch a new instance instead.
    """
    return Payment.objects.get(id=payment_id)


# =============================================================================
# Offer & Payment Fixtures
# =============================================================================


@pytest.fixture
def job(db, seeker, provider):
    return JobRequestFactory(seeker=seeker, status=JobRequestStatus.ASSIGNED, assigned_to=provider)


@pytest.fixture
def accepted_offer(db, job, provider):
    """Accepted offer with a negotiated price of 1000.00 and no payment yet."""
    return OfferFactory(job_request=job, provider=provider, accepted=True)


@pytest.fixture
def pending_payment(db, accepted_offer):
    """Checkout opened, not yet paid."""
    payment = PaymentFactory(offer=accepted_offer)
    accepted_offer.payment = payment
    accepted_offer.payment_status = OfferPaymentStatus.PENDING
    accepted_offer.save()
    return payment


@pytest.fixture
def escrowed_payment(db, job, provider):
    """Funds held in escrow; offer and job are in progress."""
    job.status = JobRequestStatus.IN_PROGRESS
    job.save()

    offer = OfferFactory(
        job_request=job,
        provider=provider,
        accepted=True,
        status=OfferStatus.IN_PROGRESS,
        payment_status=OfferPaymentStatus.ESCROWED,
    )
    payment = PaymentFactory(offer=offer, escrowed=True)
    offer.payment = payment
    offer.save()
    return payment


# =============================================================================
# Collaborators
# =============================================================================


@pytest.fixture
def mock_gateway():
    """StripeAdapter stand-in returning successful results."""
    gateway = MagicMock()
    gateway.create_checkout_session.return_value = CheckoutSessionResult(
        id="cs_test_checkout",
        url="https://checkout.stripe.com/c/pay/cs_test_checkout",
        status="open",
        payment_status="unpaid",
    )
    gateway.expire_checkout_session.return_value = CheckoutSessionResult(
        id="cs_test_checkout",
        status="expired",
        payment_status="unpaid",
    )
    gateway.create_refund.return_value = RefundResult(id="re_test_refund", amount_cents=100000, status="succeeded")
    gateway.create_payout.return_value = PayoutResult(
        id="po_test_payout",
        amount_cents=100000,
        currency="usd",
        status="pending",
    )
    return gateway


@pytest.fixture
def mock_notifications():
    return MagicMock()


@pytest.fixture
def mock_realtime():
    return MagicMock()


@pytest.fixture
def ledger(mock_gateway, mock_notifications, mock_realtime):
    return EscrowLedger(gateway=mock_gateway, notifications=mock_notifications, realtime=mock_realtime)


@pytest.fixture
def coordinator(ledger, mock_notifications):
    return SettlementCoordinator(ledger=ledger, notifications=mock_notifications)


def notified(mock_notifications, notification_type=None):
    """Keyword arguments of each NotificationService.create call, optionally filtered by type."""
    calls = [call.kwargs for call in mock_notifications.create.call_args_list]
    if notification_type is None:
        return calls
    return [kwargs for kwargs in calls if kwargs["notification_type"] == notification_type]
