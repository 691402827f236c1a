"""
Tests for NegotiationStateMachine.

Tests cover:
- Term updates, history entries and the confirmation reset rule
- Confirmation, agreement and idempotent re-confirmation
- Manual reset, including the payment-in-progress guard
- Acceptance: job assignment and rejection of competing offers
- Seeker rejection of pending offers
- Secondary effects (notifications, realtime) registered after commit
"""

import datetime
from decimal import Decimal

import pytest

from core.exceptions import AuthorizationError, StateConflictError, ValidationError
from jobs.models import JobRequest, JobRequestStatus
from notifications.models import NotificationType
from offers.negotiation import RESET_BY_USER_NOTE, RESET_ON_CHANGE_NOTE
from offers.states import OfferPaymentStatus, OfferStatus
from offers.tests.conftest import get_fresh_offer
from offers.tests.factories import OfferFactory


def notified_types(mock_notifications):
    return [call.kwargs["notification_type"] for call in mock_notifications.create.call_args_list]


# =============================================================================
# update_terms
# =============================================================================


class TestUpdateTerms:
    def test_provider_update_starts_negotiation(self, machine, offer, provider):
        """Either party editing a pending offer opens negotiation, one entry per term."""
        machine.update_terms(offer.id, provider, {"price": Decimal("950.00"), "time": "09:00"})

        fresh = get_fresh_offer(offer.id)
        assert fresh.status == OfferStatus.NEGOTIATING
        assert fresh.negotiation_price == Decimal("950.00")
        assert fresh.negotiation_time == "09:00"
        assert fresh.last_modified_by == provider
        assert list(fresh.history_entries.values_list("field", flat=True)) == ["price", "time"]

    def test_seeker_update_starts_negotiation(self, machine, offer, seeker):
        machine.update_terms(offer.id, seeker, {"scope": "Bathroom only"})

        assert get_fresh_offer(offer.id).status == OfferStatus.NEGOTIATING

    def test_unchanged_values_raise_no_changes(self, machine, negotiated_offer, seeker):
        """Equal values (1000 vs 1000.00) are not a change."""
        with pytest.raises(ValidationError) as exc_info:
            machine.update_terms(negotiated_offer.id, seeker, {"price": Decimal("1000")})

        assert exc_info.value.error_code == "NO_CHANGES"
        assert negotiated_offer.history_entries.count() == 0

    def test_change_after_agreement_resets_confirmations(self, machine, agreed_offer, provider):
        """Any change clears both flags and reopens the negotiation."""
        new_date = agreed_offer.negotiation_date + datetime.timedelta(days=1)

        machine.update_terms(agreed_offer.id, provider, {"date": new_date})

        fresh = get_fresh_offer(agreed_offer.id)
        assert fresh.status == OfferStatus.NEGOTIATING
        assert not fresh.seeker_confirmed
        assert not fresh.provider_confirmed

        last = fresh.history_entries.order_by("created_at", "id").last()
        assert last.field == "confirmation"
        assert last.note == RESET_ON_CHANGE_NOTE
        assert last.old_value == {"seeker_confirmed": True, "provider_confirmed": True}
        assert last.new_value == {"seeker_confirmed": False, "provider_confirmed": False}

    def test_single_confirmation_survives_change(self, machine, negotiated_offer, seeker, provider):
        """Only a full agreement is reset; a lone confirmation stays."""
        machine.confirm(negotiated_offer.id, provider)

        machine.update_terms(negotiated_offer.id, seeker, {"materials": "Seeker supplies paint"})

        fresh = get_fresh_offer(negotiated_offer.id)
        assert fresh.provider_confirmed
        assert not fresh.history_entries.filter(note=RESET_ON_CHANGE_NOTE).exists()

    def test_outsider_rejected(self, machine, offer, outsider):
        with pytest.raises(AuthorizationError):
            machine.update_terms(offer.id, outsider, {"price": Decimal("900")})

    def test_accepted_offer_not_negotiable(self, machine, accepted_offer, seeker):
        with pytest.raises(StateConflictError):
            machine.update_terms(accepted_offer.id, seeker, {"price": Decimal("900")})

    def test_other_party_notified(self, machine, mock_notifications, mock_realtime, offer, provider, seeker, run_on_commit):
        with run_on_commit():
            machine.update_terms(offer.id, provider, {"price": Decimal("900")})

        mock_notifications.create.assert_called_once()
        call = mock_notifications.create.call_args
        assert call.kwargs["recipient"] == seeker
        assert call.kwargs["notification_type"] == NotificationType.NEGOTIATION_UPDATED
        assert mock_realtime.emit_to_user.call_count == 2


# =============================================================================
# confirm
# =============================================================================


class TestConfirm:
    def test_missing_field_rejected(self, machine, offer, provider):
        offer_id = offer.id
        machine.update_terms(offer_id, provider, {"price": Decimal("900")})

        with pytest.raises(ValidationError) as exc_info:
            machine.confirm(offer_id, provider)

        assert exc_info.value.error_code == "MISSING_FIELD"
        assert exc_info.value.details["missing_fields"] == ["date", "time", "materials", "scope"]

    def test_first_confirmation_keeps_negotiating(self, machine, negotiated_offer, provider):
        result = machine.confirm(negotiated_offer.id, provider)

        assert result.success
        assert not result.already_processed
        assert result.data.provider_confirmed
        assert result.data.status == OfferStatus.NEGOTIATING

    def test_second_confirmation_reaches_agreement(
        self, machine, mock_notifications, negotiated_offer, seeker, provider, run_on_commit
    ):
        machine.confirm(negotiated_offer.id, provider)

        with run_on_commit():
            result = machine.confirm(negotiated_offer.id, seeker)

        assert result.data.status == OfferStatus.AGREEMENT_REACHED
        assert notified_types(mock_notifications) == [NotificationType.AGREEMENT_REACHED] * 2

    def test_repeat_confirmation_is_noop(self, machine, negotiated_offer, provider):
        machine.confirm(negotiated_offer.id, provider)
        entries = negotiated_offer.history_entries.count()

        result = machine.confirm(negotiated_offer.id, provider)

        assert result.success
        assert result.already_processed
        assert negotiated_offer.history_entries.count() == entries

    def test_confirmation_history_entry(self, machine, negotiated_offer, seeker):
        machine.confirm(negotiated_offer.id, seeker)

        entry = negotiated_offer.history_entries.get()
        assert entry.field == "confirmation"
        assert entry.new_value == {"seeker_confirmed": True, "provider_confirmed": False}
        assert entry.changed_by == seeker

    def test_completed_offer_rejected(self, machine, db, provider):
        offer = OfferFactory(provider=provider, accepted=True, status=OfferStatus.COMPLETED)

        with pytest.raises(StateConflictError):
            machine.confirm(offer.id, provider)


# =============================================================================
# reset_confirmation
# =============================================================================


class TestResetConfirmation:
    def test_reset_reopens_agreement(self, machine, agreed_offer, seeker):
        offer = machine.reset_confirmation(agreed_offer.id, seeker)

        assert offer.status == OfferStatus.NEGOTIATING
        assert not offer.seeker_confirmed
        assert not offer.provider_confirmed
        assert agreed_offer.history_entries.get().note == RESET_BY_USER_NOTE

    def test_reset_accepted_offer_without_payment(self, machine, accepted_offer, provider):
        offer = machine.reset_confirmation(accepted_offer.id, provider)

        assert offer.status == OfferStatus.NEGOTIATING

    def test_reset_blocked_while_payment_pending(self, machine, db, seeker, provider):
        offer = OfferFactory(
            job_request__seeker=seeker,
            provider=provider,
            accepted=True,
            payment_status=OfferPaymentStatus.PENDING,
        )

        with pytest.raises(StateConflictError) as exc_info:
            machine.reset_confirmation(offer.id, seeker)

        assert exc_info.value.error_code == "PAYMENT_IN_PROGRESS"
        assert get_fresh_offer(offer.id).status == OfferStatus.ACCEPTED

    @pytest.mark.parametrize(
        "status",
        [OfferStatus.COMPLETED, OfferStatus.CANCELLED, OfferStatus.REJECTED],
    )
    def test_reset_refused_for_closed_offers(self, machine, db, provider, status):
        offer = OfferFactory(provider=provider, negotiated=True, status=status)

        with pytest.raises(StateConflictError):
            machine.reset_confirmation(offer.id, provider)


# =============================================================================
# accept / reject
# =============================================================================


class TestAccept:
    def test_accept_assigns_job_and_rejects_competitors(
        self, machine, mock_notifications, agreed_offer, job, seeker, provider, run_on_commit
    ):
        competitor = OfferFactory(job_request=job)
        negotiating_competitor = OfferFactory(job_request=job, status=OfferStatus.NEGOTIATING)

        with run_on_commit():
            result = machine.accept(agreed_offer.id, seeker)

        assert result.data.status == OfferStatus.ACCEPTED
        assert result.data.accepted_at is not None

        job = JobRequest.objects.get(id=job.id)
        assert job.status == JobRequestStatus.ASSIGNED
        assert job.assigned_to == provider

        assert get_fresh_offer(competitor.id).status == OfferStatus.REJECTED
        assert get_fresh_offer(negotiating_competitor.id).status == OfferStatus.REJECTED

        types = notified_types(mock_notifications)
        assert types.count(NotificationType.OFFER_ACCEPTED) == 1
        assert types.count(NotificationType.OFFER_REJECTED) == 2

    def test_accept_is_idempotent(self, machine, accepted_offer, seeker):
        result = machine.accept(accepted_offer.id, seeker)

        assert result.success
        assert result.already_processed

    def test_accept_confirmed_negotiating_offer(self, machine, db, seeker):
        """Both confirmed but still negotiating: agreement is reached on the way."""
        offer = OfferFactory(
            job_request__seeker=seeker,
            negotiated=True,
            status=OfferStatus.NEGOTIATING,
            seeker_confirmed=True,
            provider_confirmed=True,
        )

        result = machine.accept(offer.id, seeker)

        assert result.data.status == OfferStatus.ACCEPTED

    def test_accept_requires_confirmations(self, machine, negotiated_offer, seeker):
        with pytest.raises(StateConflictError):
            machine.accept(negotiated_offer.id, seeker)

    def test_only_seeker_can_accept(self, machine, agreed_offer, provider):
        with pytest.raises(AuthorizationError):
            machine.accept(agreed_offer.id, provider)


class TestReject:
    def test_reject_pending(self, machine, mock_notifications, offer, seeker, run_on_commit):
        with run_on_commit():
            rejected = machine.reject(offer.id, seeker)

        assert rejected.status == OfferStatus.REJECTED
        call = mock_notifications.create.call_args
        assert call.kwargs["notification_type"] == NotificationType.OFFER_REJECTED
        assert call.kwargs["conversation"] is None

    def test_reject_negotiating_refused(self, machine, negotiated_offer, seeker):
        with pytest.raises(StateConflictError):
            machine.reject(negotiated_offer.id, seeker)

    def test_provider_cannot_reject(self, machine, offer, provider):
        with pytest.raises(AuthorizationError):
            machine.reject(offer.id, provider)
