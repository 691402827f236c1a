"""
Tests for Payment and WebhookEvent models.
"""

import pytest
from django.db import IntegrityError, transaction
from django_fsm import TransitionNotAllowed

from payments.models.payment import SERVICE_COMPLETED
from payments.state_machines import EscrowStatus, PaymentStatus, PayoutStatus, WebhookEventStatus
from payments.tests.factories import PaymentFactory, WebhookEventFactory


class TestPaymentTransitions:
    def test_mark_escrowed(self, db):
        payment = PaymentFactory()

        payment.mark_escrowed("pi_123")

        assert payment.status == PaymentStatus.ESCROWED
        assert payment.escrow_status == EscrowStatus.HELD
        assert payment.stripe_payment_intent_id == "pi_123"
        assert payment.escrow_held_at is not None

    def test_mark_escrowed_keeps_existing_intent(self, db):
        payment = PaymentFactory(stripe_payment_intent_id="pi_original")

        payment.mark_escrowed("pi_other")

        assert payment.stripe_payment_intent_id == "pi_original"

    def test_release(self, db):
        payment = PaymentFactory(escrowed=True)

        payment.release()

        assert payment.status == PaymentStatus.COMPLETED
        assert payment.escrow_status == EscrowStatus.RELEASED
        assert payment.release_reason == SERVICE_COMPLETED
        assert payment.payout_status == PayoutStatus.PROCESSING
        assert payment.payout_amount == payment.amount

    def test_release_requires_held_funds(self, db):
        payment = PaymentFactory(status=PaymentStatus.ESCROWED, escrow_status=EscrowStatus.PENDING)

        with pytest.raises(TransitionNotAllowed):
            payment.release()

    def test_pending_cannot_be_released(self, db):
        with pytest.raises(TransitionNotAllowed):
            PaymentFactory().release()

    def test_refund_in_full(self, db):
        payment = PaymentFactory(escrowed=True)

        payment.refund_in_full()

        assert payment.status == PaymentStatus.REFUNDED
        assert payment.escrow_status == EscrowStatus.REFUNDED
        assert payment.payout_status == PayoutStatus.PENDING

    def test_refund_in_part_queues_remainder(self, db):
        payment = PaymentFactory(escrowed=True)

        payment.refund_in_part(30000)

        assert payment.status == PaymentStatus.PARTIAL_REFUND
        assert payment.payout_status == PayoutStatus.PROCESSING
        assert payment.payout_amount == 30000

    def test_fail(self, db):
        payment = PaymentFactory()

        payment.fail("Card declined")

        assert payment.status == PaymentStatus.FAILED
        assert payment.failure_reason == "Card declined"

    def test_cancel_only_from_pending(self, db):
        payment = PaymentFactory()
        payment.cancel()
        assert payment.status == PaymentStatus.CANCELLED

        with pytest.raises(TransitionNotAllowed):
            PaymentFactory(escrowed=True).cancel()

    def test_refund_late_checkout(self, db):
        payment = PaymentFactory()
        payment.cancel()

        payment.refund_late_checkout("pi_late", "re_late")

        assert payment.status == PaymentStatus.REFUNDED
        assert payment.escrow_status == EscrowStatus.REFUNDED
        assert payment.stripe_payment_intent_id == "pi_late"
        assert payment.stripe_refund_id == "re_late"
        assert payment.refund_amount == 100000
        assert payment.refund_percentage == 100

    def test_late_checkout_refund_requires_cancellation(self, db):
        with pytest.raises(TransitionNotAllowed):
            PaymentFactory().refund_late_checkout("pi_late", "re_late")

    def test_status_is_protected(self, db):
        payment = PaymentFactory()

        with pytest.raises(AttributeError):
            payment.status = PaymentStatus.COMPLETED


class TestPaymentPayoutHelpers:
    def test_failed_then_processed(self, db):
        payment = PaymentFactory(escrowed=True)

        payment.mark_payout_failed("Account closed")
        assert payment.payout_status == PayoutStatus.FAILED
        assert payment.payout_failure_reason == "Account closed"

        payment.mark_payout_processed()
        assert payment.payout_status == PayoutStatus.PROCESSED
        assert payment.payout_failure_reason is None


class TestPaymentHelpers:
    def test_amount_major(self, db):
        assert str(PaymentFactory(amount=123456).amount_major) == "1234.56"

    def test_is_party(self, db, outsider):
        payment = PaymentFactory()

        assert payment.is_party(payment.seeker)
        assert payment.is_party(payment.provider)
        assert not payment.is_party(outsider)


class TestPaymentConstraints:
    def test_one_active_payment_per_offer(self, db):
        payment = PaymentFactory()

        with pytest.raises(IntegrityError), transaction.atomic():
            PaymentFactory(offer=payment.offer)

    def test_new_payment_after_cancellation(self, db):
        payment = PaymentFactory(status=PaymentStatus.CANCELLED)

        assert PaymentFactory(offer=payment.offer).status == PaymentStatus.PENDING

    def test_amount_must_be_positive(self, db):
        with pytest.raises(IntegrityError), transaction.atomic():
            PaymentFactory(amount=0)

    def test_refund_cannot_exceed_amount(self, db):
        with pytest.raises(IntegrityError), transaction.atomic():
            PaymentFactory(amount=1000, refund_amount=1001)


class TestWebhookEvent:
    def test_processing_counts_attempts(self, db):
        event = WebhookEventFactory()

        event.mark_processing()
        event.mark_failed("boom")

        assert event.retry_count == 1
        assert event.status == WebhookEventStatus.FAILED
        assert event.can_retry

    def test_retry_limit(self, db, settings):
        settings.WEBHOOK_MAX_RETRIES = 2
        event = WebhookEventFactory(status=WebhookEventStatus.FAILED, retry_count=2)

        assert not event.can_retry

    def test_processed_clears_error(self, db):
        event = WebhookEventFactory(status=WebhookEventStatus.FAILED, error_message="boom")

        event.mark_processed()

        assert event.is_processed
        assert event.error_message is None
        assert event.processed_at is not None

    def test_get_object(self, db):
        event = WebhookEventFactory()

        assert event.get_object_id() == "cs_test_unknown"

    @pytest.mark.parametrize("payload", [{}, {"data": None}, {"data": {"object": "x"}}, []])
    def test_get_object_tolerates_malformed_payload(self, db, payload):
        event = WebhookEventFactory.build(payload=payload)

        assert event.get_object() == {}
        assert event.get_object_id() is None
