"""
Tests for SettlementCoordinator.

Tests cover:
- complete_checkout routing between escrow and direct completion
- complete_service release plus notifications and conversation closing
- request_cancellation across escrowed, pending and unpaid offers
"""

import datetime
from decimal import Decimal

import pytest
from freezegun import freeze_time

from chat.models import Conversation
from core.exceptions import AuthorizationError, StateConflictError
from jobs.models import JobRequest, JobRequestStatus
from notifications.models import NotificationType
from offers.models import Offer
from offers.states import CancellationStatus, OfferPaymentStatus, OfferStatus
from offers.tests.conftest import get_fresh_offer
from offers.tests.factories import OfferFactory
from payments.adapters import CheckoutSessionResult
from payments.exceptions import StripeAPIUnavailableError, StripeInvalidRequestError
from payments.refund_policy import RefundTier
from payments.state_machines import EscrowStatus, PaymentStatus, PaymentType
from payments.tests.conftest import get_fresh_payment, notified


class TestCompleteCheckout:
    def test_escrow_session_notifies_both_parties(self, coordinator, mock_notifications, pending_payment, run_on_commit):
        with run_on_commit():
            result = coordinator.complete_checkout(
                pending_payment.stripe_session_id,
                "pi_test_paid",
                {"paymentType": PaymentType.ESCROW},
            )

        assert result.success
        assert get_fresh_payment(pending_payment.id).status == PaymentStatus.ESCROWED

        recipients = {kwargs["recipient"] for kwargs in notified(mock_notifications, NotificationType.PAYMENT_ESCROWED)}
        assert recipients == {pending_payment.seeker, pending_payment.provider}

    def test_duplicate_completion_notifies_once(self, coordinator, mock_notifications, pending_payment, run_on_commit):
        metadata = {"paymentType": PaymentType.ESCROW}

        with run_on_commit():
            coordinator.complete_checkout(pending_payment.stripe_session_id, "pi_test_paid", metadata)
            result = coordinator.complete_checkout(pending_payment.stripe_session_id, "pi_test_paid", metadata)

        assert result.already_processed
        assert mock_notifications.create.call_count == 2

    def test_session_without_escrow_type_completes_directly(self, coordinator, pending_payment):
        result = coordinator.complete_checkout(pending_payment.stripe_session_id, "pi_direct", {})

        assert result.success
        payment = get_fresh_payment(pending_payment.id)
        assert payment.status == PaymentStatus.COMPLETED
        assert payment.escrow_status == EscrowStatus.PENDING

    def test_unknown_session_fails(self, coordinator, db):
        result = coordinator.complete_checkout("cs_missing", None, {"paymentType": PaymentType.ESCROW})

        assert result.error_code == "PAYMENT_NOT_FOUND"


class TestCompleteService:
    def test_releases_and_closes_conversation(
        self, coordinator, mock_notifications, escrowed_payment, seeker, run_on_commit
    ):
        with run_on_commit():
            payment = coordinator.complete_service(escrowed_payment.id, seeker)

        assert payment.status == PaymentStatus.COMPLETED
        assert get_fresh_offer(payment.offer_id).status == OfferStatus.COMPLETED
        assert not Conversation.objects.get(id=payment.conversation_id).is_active

        released = notified(mock_notifications, NotificationType.PAYMENT_RELEASED)
        assert {kwargs["recipient"] for kwargs in released} == {payment.seeker, payment.provider}

    def test_release_alias(self, coordinator, escrowed_payment, seeker):
        assert coordinator.release(escrowed_payment.id, seeker).status == PaymentStatus.COMPLETED

    def test_provider_cannot_release(self, coordinator, escrowed_payment, provider):
        with pytest.raises(AuthorizationError):
            coordinator.complete_service(escrowed_payment.id, provider)

        assert get_fresh_payment(escrowed_payment.id).status == PaymentStatus.ESCROWED
        assert Conversation.objects.get(id=escrowed_payment.conversation_id).is_active


class TestRequestCancellation:
    def test_escrowed_far_ahead_refunds_in_full(self, coordinator, mock_gateway, escrowed_payment, seeker):
        outcome = coordinator.request_cancellation(escrowed_payment.offer_id, seeker, reason="Plans changed")

        assert outcome.decision.percentage == 100
        assert outcome.payment.status == PaymentStatus.REFUNDED
        assert mock_gateway.create_refund.call_args.kwargs["amount_cents"] == 100000

        offer = get_fresh_offer(escrowed_payment.offer_id)
        assert offer.status == OfferStatus.CANCELLED
        assert offer.payment_status == OfferPaymentStatus.REFUNDED
        assert offer.cancellation_status == CancellationStatus.APPROVED
        assert offer.cancellation_refund_percentage == 100
        assert offer.cancellation_refund_amount == Decimal("1000.00")
        assert offer.cancellation_reason == "Plans changed"

        assert JobRequest.objects.get(id=offer.job_request_id).status == JobRequestStatus.CANCELLED

    def test_escrowed_within_window_refunds_partially(
        self, coordinator, mock_gateway, escrowed_payment, provider, run_on_commit
    ):
        Offer.objects.filter(id=escrowed_payment.offer_id).update(
            scheduled_date=datetime.date(2026, 3, 10),
            scheduled_time="10:00",
        )

        with freeze_time("2026-03-10 05:00:00"), run_on_commit():
            outcome = coordinator.request_cancellation(escrowed_payment.offer_id, provider)

        assert outcome.decision.percentage == 70
        assert outcome.decision.tier == RefundTier.PARTIAL
        assert outcome.to_dict()["refund_amount"] == 70000

        offer = get_fresh_offer(escrowed_payment.offer_id)
        assert offer.payment_status == OfferPaymentStatus.PARTIAL_REFUND
        assert offer.cancellation_reason == "No reason provided"

        # Provider keeps the rest
        assert mock_gateway.create_payout.call_args.kwargs["amount_cents"] == 30000

    def test_pending_payment_is_abandoned(self, coordinator, mock_gateway, pending_payment, seeker):
        outcome = coordinator.request_cancellation(pending_payment.offer_id, seeker)

        assert outcome.payment.status == PaymentStatus.CANCELLED
        mock_gateway.expire_checkout_session.assert_called_once_with(pending_payment.stripe_session_id)
        mock_gateway.create_refund.assert_not_called()
        offer = get_fresh_offer(pending_payment.offer_id)
        assert offer.status == OfferStatus.CANCELLED
        assert offer.payment_status == OfferPaymentStatus.NONE

    def test_session_expiry_failure_cancels_nothing(self, coordinator, mock_gateway, pending_payment, seeker):
        mock_gateway.expire_checkout_session.side_effect = StripeAPIUnavailableError("Stripe down")

        with pytest.raises(StripeAPIUnavailableError):
            coordinator.request_cancellation(pending_payment.offer_id, seeker)

        assert get_fresh_payment(pending_payment.id).status == PaymentStatus.PENDING
        offer = get_fresh_offer(pending_payment.offer_id)
        assert offer.status == OfferStatus.ACCEPTED
        assert offer.cancellation_status == CancellationStatus.NONE

    def test_already_expired_session_is_abandoned(self, coordinator, mock_gateway, pending_payment, seeker):
        mock_gateway.expire_checkout_session.side_effect = StripeInvalidRequestError("Session is not open")
        mock_gateway.retrieve_checkout_session.return_value = CheckoutSessionResult(
            id=pending_payment.stripe_session_id, status="expired", payment_status="unpaid"
        )

        outcome = coordinator.request_cancellation(pending_payment.offer_id, seeker)

        assert outcome.payment.status == PaymentStatus.CANCELLED

    def test_session_paid_while_cancelling(self, coordinator, mock_gateway, pending_payment, seeker):
        mock_gateway.expire_checkout_session.side_effect = StripeInvalidRequestError("Session is not open")
        mock_gateway.retrieve_checkout_session.return_value = CheckoutSessionResult(
            id=pending_payment.stripe_session_id, status="complete", payment_status="paid"
        )

        with pytest.raises(StateConflictError) as exc_info:
            coordinator.request_cancellation(pending_payment.offer_id, seeker)

        assert exc_info.value.error_code == "PAYMENT_IN_PROGRESS"
        assert get_fresh_payment(pending_payment.id).status == PaymentStatus.PENDING
        assert get_fresh_offer(pending_payment.offer_id).status == OfferStatus.ACCEPTED

    def test_unpaid_offer(self, coordinator, accepted_offer, provider):
        outcome = coordinator.request_cancellation(accepted_offer.id, provider)

        assert outcome.payment is None
        assert outcome.to_dict()["payment_id"] is None
        assert get_fresh_offer(accepted_offer.id).status == OfferStatus.CANCELLED

    def test_notifies_both_parties(self, coordinator, mock_notifications, escrowed_payment, seeker, run_on_commit):
        with run_on_commit():
            coordinator.request_cancellation(escrowed_payment.offer_id, seeker)

        cancelled = notified(mock_notifications, NotificationType.SERVICE_CANCELLED)
        assert {kwargs["recipient"] for kwargs in cancelled} == {escrowed_payment.seeker, escrowed_payment.provider}
        assert all(kwargs["data"]["refund_percentage"] == 100 for kwargs in cancelled)

    def test_second_request_already_cancelled(self, coordinator, escrowed_payment, seeker):
        coordinator.request_cancellation(escrowed_payment.offer_id, seeker)

        with pytest.raises(StateConflictError) as exc_info:
            coordinator.request_cancellation(escrowed_payment.offer_id, seeker)

        assert exc_info.value.error_code == "ALREADY_CANCELLED"

    def test_outsider_cannot_cancel(self, coordinator, escrowed_payment, outsider):
        with pytest.raises(AuthorizationError):
            coordinator.request_cancellation(escrowed_payment.offer_id, outsider)

    def test_pending_offer_not_cancellable(self, coordinator, db, seeker):
        offer = OfferFactory(job_request__seeker=seeker)

        with pytest.raises(StateConflictError):
            coordinator.request_cancellation(offer.id, seeker)

    def test_refund_failure_cancels_nothing(self, coordinator, mock_gateway, escrowed_payment, seeker):
        mock_gateway.create_refund.side_effect = StripeInvalidRequestError("Charge disputed")

        with pytest.raises(StripeInvalidRequestError):
            coordinator.request_cancellation(escrowed_payment.offer_id, seeker)

        assert get_fresh_payment(escrowed_payment.id).status == PaymentStatus.ESCROWED
        offer = get_fresh_offer(escrowed_payment.offer_id)
        assert offer.status == OfferStatus.IN_PROGRESS
        assert offer.payment_status == OfferPaymentStatus.ESCROWED
        assert JobRequest.objects.get(id=offer.job_request_id).status == JobRequestStatus.IN_PROGRESS
