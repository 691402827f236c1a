"""
Tests for EscrowLedger.

Tests cover:
- Checkout validation (actor, offer status, amount tolerance, active payment)
- Pending payment creation and the offer payment mirror
- Escrow completion, including redelivery of the same session
- Release with the payout requested after commit
- Two-phase provider payout and its failure recording
- Cancellation refunds (full, partial, none) and their guards
- Read paths (detail, list, stats, by conversation)
"""

from decimal import Decimal

import pytest

from chat.models import Conversation
from core.exceptions import AuthorizationError, NotFoundError, StateConflictError, ValidationError
from jobs.models import JobRequest, JobRequestStatus
from notifications.models import NotificationType
from offers.states import CancellationStatus, OfferPaymentStatus, OfferStatus
from offers.tests.conftest import get_fresh_offer
from offers.tests.factories import OfferFactory
from payments.adapters import PayoutResult
from payments.exceptions import StripeAPIUnavailableError, StripeInvalidRequestError
from payments.models import Payment
from payments.state_machines import EscrowStatus, PaymentStatus, PaymentType, PayoutStatus
from payments.tests.conftest import get_fresh_payment, notified
from payments.tests.factories import PaymentFactory


# =============================================================================
# Checkout
# =============================================================================


class TestCreateEscrowCheckout:
    def test_creates_session_and_pending_payment(self, ledger, mock_gateway, accepted_offer, seeker):
        checkout = ledger.create_escrow_checkout(accepted_offer.id, seeker, Decimal("1000.00"))

        assert checkout.session_id == "cs_test_checkout"
        assert checkout.url.startswith("https://checkout.stripe.com/")

        payment = Payment.objects.get(id=checkout.payment_id)
        assert payment.status == PaymentStatus.PENDING
        assert payment.amount == 100000
        assert payment.original_amount == Decimal("1000.00")
        assert payment.stripe_session_id == "cs_test_checkout"
        assert payment.seeker == seeker
        assert payment.provider == accepted_offer.provider
        assert payment.scheduled_date == accepted_offer.negotiation_date

        offer = get_fresh_offer(accepted_offer.id)
        assert offer.payment == payment
        assert offer.payment_status == OfferPaymentStatus.PENDING
        assert offer.payment_amount == Decimal("1000.00")

    def test_session_params(self, ledger, mock_gateway, accepted_offer, seeker):
        ledger.create_escrow_checkout(accepted_offer.id, seeker, Decimal("1000.00"))

        params = mock_gateway.create_checkout_session.call_args.args[0]
        assert params.amount_cents == 100000
        assert params.metadata["offerId"] == str(accepted_offer.id)
        assert params.metadata["paymentType"] == PaymentType.ESCROW
        assert params.metadata["originalAmount"] == "1000.00"
        assert params.success_url == (
            "http://frontend.test/payment/success?session_id={CHECKOUT_SESSION_ID}&type=escrow"
        )
        assert params.cancel_url == f"http://frontend.test/chat/{accepted_offer.conversation_id}"
        assert params.idempotency_key.startswith(f"checkout:{accepted_offer.id}:1:")

    def test_amount_within_tolerance(self, ledger, accepted_offer, seeker):
        checkout = ledger.create_escrow_checkout(accepted_offer.id, seeker, Decimal("1000.50"))

        assert Payment.objects.get(id=checkout.payment_id).amount == 100050

    def test_amount_mismatch(self, ledger, mock_gateway, accepted_offer, seeker):
        with pytest.raises(ValidationError) as exc_info:
            ledger.create_escrow_checkout(accepted_offer.id, seeker, Decimal("1002.00"))

        assert exc_info.value.error_code == "AMOUNT_MISMATCH"
        mock_gateway.create_checkout_session.assert_not_called()

    @pytest.mark.parametrize("amount", ["0", "-5", "abc"])
    def test_invalid_amount(self, ledger, accepted_offer, seeker, amount):
        with pytest.raises(ValidationError):
            ledger.create_escrow_checkout(accepted_offer.id, seeker, amount)

    def test_only_seeker_can_pay(self, ledger, accepted_offer, provider):
        with pytest.raises(AuthorizationError):
            ledger.create_escrow_checkout(accepted_offer.id, provider, Decimal("1000"))

    def test_offer_must_be_accepted(self, ledger, db, seeker):
        offer = OfferFactory(job_request__seeker=seeker, agreed=True)

        with pytest.raises(StateConflictError):
            ledger.create_escrow_checkout(offer.id, seeker, Decimal("1000"))

    def test_active_payment_blocks_second_checkout(self, ledger, mock_gateway, pending_payment, seeker):
        with pytest.raises(StateConflictError) as exc_info:
            ledger.create_escrow_checkout(pending_payment.offer_id, seeker, Decimal("1000"))

        assert exc_info.value.error_code == "ACTIVE_PAYMENT_EXISTS"
        mock_gateway.create_checkout_session.assert_not_called()

    def test_gateway_failure_persists_nothing(self, ledger, mock_gateway, accepted_offer, seeker):
        mock_gateway.create_checkout_session.side_effect = StripeAPIUnavailableError("Stripe down")

        with pytest.raises(StripeAPIUnavailableError):
            ledger.create_escrow_checkout(accepted_offer.id, seeker, Decimal("1000"))

        assert not Payment.objects.filter(offer=accepted_offer).exists()
        assert get_fresh_offer(accepted_offer.id).payment_status == OfferPaymentStatus.NONE


# =============================================================================
# Completion
# =============================================================================


class TestMarkEscrowed:
    def test_marks_escrowed_and_starts_work(
        self, ledger, mock_notifications, mock_realtime, pending_payment, run_on_commit
    ):
        with run_on_commit():
            result = ledger.mark_escrowed(pending_payment.stripe_session_id, "pi_test_paid")

        assert result.success and not result.already_processed

        payment = get_fresh_payment(pending_payment.id)
        assert payment.status == PaymentStatus.ESCROWED
        assert payment.escrow_status == EscrowStatus.HELD
        assert payment.stripe_payment_intent_id == "pi_test_paid"
        assert payment.escrow_held_at is not None

        offer = get_fresh_offer(pending_payment.offer_id)
        assert offer.status == OfferStatus.IN_PROGRESS
        assert offer.payment_status == OfferPaymentStatus.ESCROWED
        assert offer.escrowed_at == payment.escrow_held_at

        assert JobRequest.objects.get(id=payment.job_request_id).status == JobRequestStatus.IN_PROGRESS

        escrowed = notified(mock_notifications, NotificationType.PAYMENT_ESCROWED)
        assert [kwargs["recipient"] for kwargs in escrowed] == [payment.provider]
        assert mock_realtime.emit_to_user.call_count == 2

    def test_redelivery_is_noop(self, ledger, mock_notifications, pending_payment, run_on_commit):
        ledger.mark_escrowed(pending_payment.stripe_session_id, "pi_test_paid")

        with run_on_commit():
            result = ledger.mark_escrowed(pending_payment.stripe_session_id, "pi_test_paid")

        assert result.success
        assert result.already_processed
        mock_notifications.create.assert_not_called()

    def test_unknown_session(self, ledger, db):
        result = ledger.mark_escrowed("cs_unknown")

        assert not result.success
        assert result.error_code == "PAYMENT_NOT_FOUND"

    def test_failed_payment_not_escrowed(self, ledger, accepted_offer):
        payment = PaymentFactory(offer=accepted_offer, status=PaymentStatus.FAILED)

        result = ledger.mark_escrowed(payment.stripe_session_id, "pi_late")

        assert result.error_code == "PAYMENT_NOT_PENDING"
        assert get_fresh_payment(payment.id).status == PaymentStatus.FAILED


class TestLateCheckoutRefund:
    """A checkout paid after its payment was cancelled is refunded in full."""

    @pytest.fixture
    def cancelled_payment(self, accepted_offer):
        return PaymentFactory(offer=accepted_offer, status=PaymentStatus.CANCELLED)

    def test_refunds_in_full(self, ledger, mock_gateway, mock_notifications, cancelled_payment, run_on_commit):
        with run_on_commit():
            result = ledger.mark_escrowed(cancelled_payment.stripe_session_id, "pi_late")

        assert result.success
        payment = get_fresh_payment(cancelled_payment.id)
        assert payment.status == PaymentStatus.REFUNDED
        assert payment.escrow_status == EscrowStatus.REFUNDED
        assert payment.stripe_payment_intent_id == "pi_late"
        assert payment.stripe_refund_id == "re_test_refund"
        assert payment.refund_amount == payment.amount
        assert payment.refund_percentage == 100

        kwargs = mock_gateway.create_refund.call_args.kwargs
        assert kwargs["payment_intent_id"] == "pi_late"
        assert kwargs["amount_cents"] == payment.amount
        assert kwargs["idempotency_key"].startswith(f"late_checkout_refund:{payment.id}:1:")

        refunded = notified(mock_notifications, NotificationType.PAYMENT_REFUNDED)
        assert [kwargs["recipient"] for kwargs in refunded] == [payment.seeker]
        assert not notified(mock_notifications, NotificationType.PAYMENT_ESCROWED)

    def test_offer_and_job_untouched(self, ledger, cancelled_payment):
        ledger.mark_escrowed(cancelled_payment.stripe_session_id, "pi_late")

        offer = get_fresh_offer(cancelled_payment.offer_id)
        assert offer.status == OfferStatus.ACCEPTED
        assert offer.payment_status != OfferPaymentStatus.ESCROWED

    def test_redelivery_refunds_once(self, ledger, mock_gateway, cancelled_payment):
        ledger.mark_escrowed(cancelled_payment.stripe_session_id, "pi_late")

        result = ledger.mark_escrowed(cancelled_payment.stripe_session_id, "pi_late")

        assert result.already_processed
        assert mock_gateway.create_refund.call_count == 1

    def test_refund_failure_is_retryable(self, ledger, mock_gateway, cancelled_payment):
        mock_gateway.create_refund.side_effect = StripeAPIUnavailableError("Stripe down")

        result = ledger.mark_escrowed(cancelled_payment.stripe_session_id, "pi_late")

        assert not result.success
        assert get_fresh_payment(cancelled_payment.id).status == PaymentStatus.CANCELLED

        mock_gateway.create_refund.side_effect = None
        assert ledger.mark_escrowed(cancelled_payment.stripe_session_id, "pi_late").success
        keys = {call.kwargs["idempotency_key"] for call in mock_gateway.create_refund.call_args_list}
        assert len(keys) == 1

    def test_missing_payment_intent(self, ledger, mock_gateway, cancelled_payment):
        result = ledger.mark_escrowed(cancelled_payment.stripe_session_id, None)

        assert result.error_code == "PAYMENT_INTENT_MISSING"
        mock_gateway.create_refund.assert_not_called()


class TestCompleteDirectPayment:
    def test_completes_payment_and_job(self, ledger, accepted_offer):
        payment = PaymentFactory(offer=accepted_offer, payment_type=PaymentType.DIRECT)

        result = ledger.complete_direct_payment(payment.stripe_session_id, "pi_direct")

        assert result.success
        payment = get_fresh_payment(payment.id)
        assert payment.status == PaymentStatus.COMPLETED
        assert payment.escrow_status == EscrowStatus.PENDING
        assert JobRequest.objects.get(id=payment.job_request_id).status == JobRequestStatus.COMPLETED
        assert not Conversation.objects.get(id=payment.conversation_id).is_active

    def test_already_completed_is_noop(self, ledger, accepted_offer):
        payment = PaymentFactory(offer=accepted_offer, payment_type=PaymentType.DIRECT, status=PaymentStatus.COMPLETED)

        assert ledger.complete_direct_payment(payment.stripe_session_id).already_processed


# =============================================================================
# Release & payout
# =============================================================================


class TestReleaseFromEscrow:
    def test_release_completes_everything(self, ledger, mock_gateway, escrowed_payment, seeker, run_on_commit):
        with run_on_commit():
            ledger.release_from_escrow(escrowed_payment.id, seeker)

        payment = get_fresh_payment(escrowed_payment.id)
        assert payment.status == PaymentStatus.COMPLETED
        assert payment.escrow_status == EscrowStatus.RELEASED
        assert payment.release_reason == "service_completed"
        assert payment.payout_amount == payment.amount

        offer = get_fresh_offer(payment.offer_id)
        assert offer.status == OfferStatus.COMPLETED
        assert offer.payment_status == OfferPaymentStatus.RELEASED
        assert offer.released_at is not None

        assert JobRequest.objects.get(id=payment.job_request_id).status == JobRequestStatus.COMPLETED

        # Payout requested after commit
        mock_gateway.create_payout.assert_called_once()
        assert payment.stripe_payout_id == "po_test_payout"
        assert payment.payout_status == PayoutStatus.PROCESSING

    def test_payout_failure_keeps_release(self, ledger, mock_gateway, escrowed_payment, seeker, run_on_commit):
        mock_gateway.create_payout.side_effect = StripeInvalidRequestError("Insufficient balance")

        with run_on_commit():
            ledger.release_from_escrow(escrowed_payment.id, seeker)

        payment = get_fresh_payment(escrowed_payment.id)
        assert payment.status == PaymentStatus.COMPLETED
        assert payment.payout_status == PayoutStatus.FAILED
        assert payment.payout_failure_reason == "Insufficient balance"

    def test_only_paying_seeker(self, ledger, escrowed_payment, provider):
        with pytest.raises(AuthorizationError):
            ledger.release_from_escrow(escrowed_payment.id, provider)

    def test_pending_payment_cannot_be_released(self, ledger, pending_payment, seeker):
        with pytest.raises(StateConflictError):
            ledger.release_from_escrow(pending_payment.id, seeker)

    def test_second_release_conflicts(self, ledger, escrowed_payment, seeker):
        ledger.release_from_escrow(escrowed_payment.id, seeker)

        with pytest.raises(StateConflictError):
            ledger.release_from_escrow(escrowed_payment.id, seeker)

    def test_unknown_payment(self, ledger, db, seeker):
        with pytest.raises(NotFoundError):
            ledger.release_from_escrow("00000000-0000-0000-0000-000000000000", seeker)


class TestCreateProviderPayout:
    @pytest.fixture
    def released_payment(self, ledger, escrowed_payment, seeker):
        return ledger.release_from_escrow(escrowed_payment.id, seeker)

    def test_paid_payout_marks_processed(self, ledger, mock_gateway, released_payment):
        mock_gateway.create_payout.return_value = PayoutResult(
            id="po_paid", amount_cents=100000, currency="usd", status="paid"
        )

        result = ledger.create_provider_payout(released_payment.id)

        assert result.success
        payment = get_fresh_payment(released_payment.id)
        assert payment.payout_status == PayoutStatus.PROCESSED
        assert payment.payout_attempts == 1
        kwargs = mock_gateway.create_payout.call_args.kwargs
        assert kwargs["amount_cents"] == 100000
        assert kwargs["metadata"]["paymentId"] == str(payment.id)
        assert len(kwargs["statement_descriptor"]) <= 22

    def test_failure_recorded_and_notified(
        self, ledger, mock_gateway, mock_notifications, released_payment, run_on_commit
    ):
        mock_gateway.create_payout.side_effect = StripeAPIUnavailableError("Stripe down")

        with run_on_commit():
            result = ledger.create_provider_payout(released_payment.id)

        assert not result.success
        payment = get_fresh_payment(released_payment.id)
        assert payment.payout_status == PayoutStatus.FAILED
        assert payment.stripe_payout_id is None
        assert len(notified(mock_notifications, NotificationType.PAYOUT_FAILED)) == 1

    def test_retry_after_timeout_reuses_idempotency_key(self, ledger, mock_gateway, released_payment):
        mock_gateway.create_payout.side_effect = StripeAPIUnavailableError("Could not connect to Stripe")
        ledger.create_provider_payout(released_payment.id)
        first_key = mock_gateway.create_payout.call_args.kwargs["idempotency_key"]

        mock_gateway.create_payout.side_effect = None
        result = ledger.create_provider_payout(released_payment.id)
        second_key = mock_gateway.create_payout.call_args.kwargs["idempotency_key"]

        assert result.success
        assert first_key == second_key
        payment = get_fresh_payment(released_payment.id)
        assert payment.payout_attempts == 2
        assert payment.payout_key_attempt == 1

    def test_retry_after_rejection_uses_new_idempotency_key(self, ledger, mock_gateway, released_payment):
        mock_gateway.create_payout.side_effect = StripeInvalidRequestError("Insufficient platform balance")
        ledger.create_provider_payout(released_payment.id)
        first_key = mock_gateway.create_payout.call_args.kwargs["idempotency_key"]

        mock_gateway.create_payout.side_effect = None
        ledger.create_provider_payout(released_payment.id)
        second_key = mock_gateway.create_payout.call_args.kwargs["idempotency_key"]

        assert first_key != second_key
        assert first_key.startswith(f"payout:{released_payment.id}:1:")
        assert second_key.startswith(f"payout:{released_payment.id}:2:")
        payment = get_fresh_payment(released_payment.id)
        assert payment.payout_attempts == 2
        assert payment.payout_key_attempt == 2

    def test_existing_payout_is_noop(self, ledger, mock_gateway, released_payment):
        ledger.create_provider_payout(released_payment.id)

        result = ledger.create_provider_payout(released_payment.id)

        assert result.already_processed
        assert mock_gateway.create_payout.call_count == 1

    def test_not_released_payment(self, ledger, mock_gateway, escrowed_payment):
        result = ledger.create_provider_payout(escrowed_payment.id)

        assert result.error_code == "PAYOUT_NOT_READY"
        mock_gateway.create_payout.assert_not_called()


class TestPayoutWebhookRecording:
    @pytest.fixture
    def paid_out_payment(self, ledger, escrowed_payment, seeker):
        ledger.release_from_escrow(escrowed_payment.id, seeker)
        return ledger.create_provider_payout(escrowed_payment.id).data

    def test_record_payout_paid(self, ledger, paid_out_payment):
        result = ledger.record_payout_paid(paid_out_payment, "po_test_payout")

        assert result.success
        assert get_fresh_payment(paid_out_payment.id).payout_status == PayoutStatus.PROCESSED

        assert ledger.record_payout_paid(paid_out_payment, "po_test_payout").already_processed

    def test_record_payout_failed(self, ledger, mock_notifications, paid_out_payment, run_on_commit):
        with run_on_commit():
            ledger.record_payout_failed(paid_out_payment, "po_test_payout", "Bank account closed")

        payment = get_fresh_payment(paid_out_payment.id)
        assert payment.status == PaymentStatus.COMPLETED
        assert payment.payout_status == PayoutStatus.FAILED
        assert payment.payout_failure_reason == "Bank account closed"
        assert notified(mock_notifications)[0]["idempotency_key"] == "payout_failed:po_test_payout"

        repeat = ledger.record_payout_failed(paid_out_payment, "po_test_payout", "Bank account closed")
        assert repeat.already_processed


# =============================================================================
# Cancellation
# =============================================================================


class TestProcessCancellation:
    def test_full_refund(self, ledger, mock_gateway, escrowed_payment, seeker):
        payment = ledger.process_cancellation(escrowed_payment.id, 100, requested_by=seeker, reason="Plans changed")

        assert payment.status == PaymentStatus.REFUNDED
        assert payment.escrow_status == EscrowStatus.REFUNDED
        assert payment.refund_amount == 100000
        assert payment.refund_percentage == 100
        assert payment.stripe_refund_id == "re_test_refund"
        assert payment.cancellation_status == CancellationStatus.APPROVED
        assert payment.cancellation_reason == "Plans changed"
        assert payment.payout_status == PayoutStatus.PENDING

        kwargs = mock_gateway.create_refund.call_args.kwargs
        assert kwargs["payment_intent_id"] == escrowed_payment.stripe_payment_intent_id
        assert kwargs["amount_cents"] == 100000

    def test_partial_refund_pays_out_remainder(self, ledger, mock_gateway, escrowed_payment, run_on_commit):
        with run_on_commit():
            payment = ledger.process_cancellation(escrowed_payment.id, 70)

        assert payment.status == PaymentStatus.PARTIAL_REFUND
        assert payment.escrow_status == EscrowStatus.PARTIAL_REFUND
        assert payment.refund_amount == 70000
        assert payment.payout_amount == 30000

        assert mock_gateway.create_refund.call_args.kwargs["amount_cents"] == 70000
        assert mock_gateway.create_payout.call_args.kwargs["amount_cents"] == 30000

    def test_zero_percent_skips_refund_call(self, ledger, mock_gateway, escrowed_payment):
        payment = ledger.process_cancellation(escrowed_payment.id, 0)

        mock_gateway.create_refund.assert_not_called()
        assert payment.refund_amount == 0
        assert payment.payout_amount == 100000
        assert payment.stripe_refund_id is None

    def test_refund_rounds_half_up(self, ledger, mock_gateway, accepted_offer):
        payment = PaymentFactory(offer=accepted_offer, escrowed=True, amount=100001)

        refunded = ledger.process_cancellation(payment.id, 70)

        # 70% of 100001 is 70000.7
        assert refunded.refund_amount == 70001
        assert refunded.payout_amount == 30000

    def test_already_refunded(self, ledger, escrowed_payment):
        ledger.process_cancellation(escrowed_payment.id, 100)

        with pytest.raises(StateConflictError) as exc_info:
            ledger.process_cancellation(escrowed_payment.id, 100)

        assert exc_info.value.error_code == "ALREADY_REFUNDED"

    def test_percentage_out_of_range(self, ledger, escrowed_payment):
        with pytest.raises(ValidationError):
            ledger.process_cancellation(escrowed_payment.id, 120)

    def test_pending_payment_not_refundable(self, ledger, pending_payment):
        with pytest.raises(StateConflictError):
            ledger.process_cancellation(pending_payment.id, 100)

    def test_gateway_failure_leaves_payment_untouched(self, ledger, mock_gateway, escrowed_payment):
        mock_gateway.create_refund.side_effect = StripeInvalidRequestError("Charge already refunded")

        with pytest.raises(StripeInvalidRequestError):
            ledger.process_cancellation(escrowed_payment.id, 100)

        payment = get_fresh_payment(escrowed_payment.id)
        assert payment.status == PaymentStatus.ESCROWED
        assert payment.refund_amount is None


# =============================================================================
# Queries
# =============================================================================


class TestQueries:
    def test_get_payment_requires_party(self, ledger, escrowed_payment, seeker, outsider):
        assert ledger.get_payment(escrowed_payment.id, seeker) == escrowed_payment

        with pytest.raises(AuthorizationError):
            ledger.get_payment(escrowed_payment.id, outsider)

    def test_user_payments_by_role(self, ledger, escrowed_payment, seeker, provider, outsider):
        assert ledger.get_user_payments(seeker)["total"] == 1
        assert ledger.get_user_payments(provider)["results"] == [escrowed_payment]
        assert ledger.get_user_payments(outsider)["total"] == 0

    def test_user_payments_limit_clamped(self, ledger, escrowed_payment, seeker):
        page = ledger.get_user_payments(seeker, page=1, limit=500)

        assert page["page"] == 1
        assert page["pages"] == 1

    def test_stats(self, ledger, escrowed_payment, seeker, provider):
        seeker_stats = ledger.get_payment_stats(seeker)["as_seeker"]
        provider_stats = ledger.get_payment_stats(provider)["as_provider"]

        assert seeker_stats == {"count": 1, "total_paid": 100000, "in_escrow": 100000, "refunded": 0}
        assert provider_stats == {"count": 1, "total_earned": 0, "pending_release": 100000}

    def test_payments_by_conversation(self, ledger, escrowed_payment, seeker, outsider):
        payments = ledger.get_payments_by_conversation(escrowed_payment.conversation_id, seeker)

        assert payments == [escrowed_payment]
        with pytest.raises(AuthorizationError):
            ledger.get_payments_by_conversation(escrowed_payment.conversation_id, outsider)
