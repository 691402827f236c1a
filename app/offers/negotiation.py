"""
NegotiationStateMachine: terms, confirmations and acceptance of offers.

Every entry point locks the offer row, re-reads its state and only then
mutates it, so the confirmation reset rules are always applied against
the latest flags. Notifications and realtime pushes are registered as
after-commit effects.

Usage:
    from offers.negotiation import NegotiationStateMachine

    machine = NegotiationStateMachine()
    machine.update_terms(offer.id, seeker, {"price": Decimal("1000")})
    machine.confirm(offer.id, provider)
    machine.confirm(offer.id, seeker)   # -> agreement_reached
    machine.accept(offer.id, seeker)    # -> accepted, competitors rejected
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django_fsm import TransitionNotAllowed

from core.exceptions import AuthorizationError, NotFoundError, StateConflictError, ValidationError
from core.services import BaseService, ServiceResult
from jobs.models import JobRequestStatus
from jobs.services import JobRequestStore
from notifications.models import NotificationType
from notifications.realtime import RealtimeGateway
from notifications.services import NotificationService

from offers.history import ConfirmationChange, ConfirmationState, record_change, term_change
from offers.models import NEGOTIATION_FIELDS, Offer
from offers.states import OfferPaymentStatus, OfferStatus

if TYPE_CHECKING:
    from uuid import UUID

    from authentication.models import User

CONFIRMED_NOTE = "Party confirmed negotiation terms"
RESET_ON_CHANGE_NOTE = "Confirmations reset due to negotiation change"
RESET_BY_USER_NOTE = "Confirmations reset by user request"


def load_offer(offer_id: UUID | str, for_update: bool = False) -> Offer:
    """
    Fetch an offer with its job request.

    Raises:
        NotFoundError: If the offer does not exist
    """
    queryset = Offer.objects.select_related("job_request", "conversation")
    if for_update:
        queryset = queryset.select_for_update()
    offer = queryset.filter(id=offer_id).first()
    if offer is None:
        raise NotFoundError("Offer not found", details={"offer_id": str(offer_id)})
    return offer


def apply_transition(offer: Offer, name: str, *args, **kwargs) -> None:
    """Run a django-fsm transition, reporting refusal as a state conflict."""
    try:
        getattr(offer, name)(*args, **kwargs)
    except TransitionNotAllowed as e:
        raise StateConflictError(
            f"Cannot {name.replace('_', ' ')} an offer in status '{offer.status}'",
            details={"offer_id": str(offer.id), "status": offer.status},
        ) from e


def require_party(offer: Offer, user: User) -> None:
    if not offer.is_party(user):
        raise AuthorizationError(
            "Only the provider or the seeker can act on this offer",
            details={"offer_id": str(offer.id)},
        )


def require_seeker(offer: Offer, user: User) -> None:
    if not offer.is_seeker(user):
        raise AuthorizationError(
            "Only the job request owner can do this",
            details={"offer_id": str(offer.id)},
        )


class NegotiationStateMachine(BaseService):
    """
    Owns an offer's negotiable terms, confirmation flags and its
    pending → … → accepted transitions.

    Collaborators are injected so tests and other components can supply
    their own job store or notifier.
    """

    def __init__(
        self,
        job_store=JobRequestStore,
        notifications=NotificationService,
        realtime=RealtimeGateway,
    ):
        self.job_store = job_store
        self.notifications = notifications
        self.realtime = realtime

    # ==========================================================================
    # Terms
    # ==========================================================================

    def update_terms(self, offer_id: UUID | str, user: User, fields: dict) -> Offer:
        """
        Change one or more negotiation terms.

        Every changed term gets a history entry. If both parties had
        confirmed, both flags are cleared and an agreement is reopened.

        Raises:
            ValidationError: NO_CHANGES when nothing differs
            StateConflictError: Offer is past negotiation
            AuthorizationError: User is not a party
        """
        logger = self.get_logger()

        with self.atomic():
            offer = load_offer(offer_id, for_update=True)
            require_party(offer, user)

            if offer.status not in OfferStatus.negotiable_statuses():
                raise StateConflictError(
                    "Can only update negotiation for pending, negotiating, or agreement_reached offers",
                    details={"offer_id": str(offer.id), "status": offer.status},
                )

            changes = []
            for name in NEGOTIATION_FIELDS:
                if name not in fields:
                    continue
                old, new = offer.get_term(name), fields[name]
                if new != old:
                    changes.append(term_change(name, old, new))
                    offer.set_term(name, new)

            if not changes:
                raise ValidationError(
                    "No changes to negotiation terms",
                    error_code="NO_CHANGES",
                    details={"offer_id": str(offer.id)},
                )

            for change in changes:
                record_change(offer, change, user)

            if offer.both_confirmed:
                previous = ConfirmationState.of(offer)
                offer.seeker_confirmed = False
                offer.provider_confirmed = False
                record_change(
                    offer,
                    ConfirmationChange(old=previous, new=ConfirmationState.of(offer)),
                    user,
                    note=RESET_ON_CHANGE_NOTE,
                )
                if offer.status == OfferStatus.AGREEMENT_REACHED:
                    apply_transition(offer, "reopen_negotiation")

            if offer.status == OfferStatus.PENDING:
                apply_transition(offer, "start_negotiating")

            offer.touch(user)
            offer.save()

            self._after_negotiation_change(offer, user)

        logger.info(
            "Negotiation terms updated",
            extra={
                "offer_id": str(offer.id),
                "fields": [change.field for change in changes],
                "status": offer.status,
            },
        )
        return offer

    def confirm(self, offer_id: UUID | str, user: User) -> ServiceResult[Offer]:
        """
        Confirm the current terms on behalf of the caller's side.

        Returns:
            ServiceResult with the offer; already_processed is set when the
            caller had already confirmed (no history, no notifications).

        Raises:
            ValidationError: MISSING_FIELD if any term is unset
            StateConflictError: Offer is past negotiation
        """
        logger = self.get_logger()

        with self.atomic():
            offer = load_offer(offer_id, for_update=True)
            require_party(offer, user)

            if offer.status not in OfferStatus.negotiable_statuses():
                raise StateConflictError(
                    "Can only confirm negotiation for pending, negotiating, or agreement_reached offers",
                    details={"offer_id": str(offer.id), "status": offer.status},
                )

            missing = offer.missing_terms()
            if missing:
                raise ValidationError(
                    f"Negotiation field '{missing[0]}' must be set before confirmation",
                    error_code="MISSING_FIELD",
                    details={"missing_fields": missing},
                )

            is_provider = offer.is_provider(user)
            already = offer.provider_confirmed if is_provider else offer.seeker_confirmed
            if already:
                return ServiceResult.noop(offer)

            previous = ConfirmationState.of(offer)
            if is_provider:
                offer.provider_confirmed = True
            else:
                offer.seeker_confirmed = True
            record_change(
                offer,
                ConfirmationChange(old=previous, new=ConfirmationState.of(offer)),
                user,
                note=CONFIRMED_NOTE,
            )

            if offer.both_confirmed:
                if offer.status != OfferStatus.AGREEMENT_REACHED:
                    apply_transition(offer, "reach_agreement")
                self._notify_agreement(offer)
            elif offer.status == OfferStatus.AGREEMENT_REACHED:
                apply_transition(offer, "reopen_negotiation")

            offer.touch(user)
            offer.save()

            self._after_negotiation_change(offer, user, notify=False)

        logger.info(
            "Negotiation confirmed",
            extra={
                "offer_id": str(offer.id),
                "by": "provider" if is_provider else "seeker",
                "status": offer.status,
            },
        )
        return ServiceResult.success(offer)

    def reset_confirmation(self, offer_id: UUID | str, user: User) -> Offer:
        """
        Clear both confirmation flags.

        An agreed or accepted offer goes back to negotiating.

        Raises:
            StateConflictError: Offer is completed, cancelled or rejected,
                or an escrow checkout for it is already under way
        """
        with self.atomic():
            offer = load_offer(offer_id, for_update=True)
            require_party(offer, user)

            if offer.status in OfferStatus.non_resettable_statuses():
                raise StateConflictError(
                    f"Cannot reset negotiation for {offer.status} offers",
                    details={"offer_id": str(offer.id), "status": offer.status},
                )
            if offer.status == OfferStatus.ACCEPTED and offer.payment_status == OfferPaymentStatus.PENDING:
                raise StateConflictError(
                    "Cannot reset negotiation while a payment is in progress",
                    error_code="PAYMENT_IN_PROGRESS",
                    details={"offer_id": str(offer.id)},
                )

            previous = ConfirmationState.of(offer)
            offer.seeker_confirmed = False
            offer.provider_confirmed = False
            record_change(
                offer,
                ConfirmationChange(old=previous, new=ConfirmationState.of(offer)),
                user,
                note=RESET_BY_USER_NOTE,
            )

            if offer.status in (OfferStatus.AGREEMENT_REACHED, OfferStatus.ACCEPTED):
                apply_transition(offer, "reopen_negotiation")

            offer.touch(user)
            offer.save()

            self._after_negotiation_change(offer, user, notify=False)

        self.get_logger().info(
            "Negotiation confirmations reset",
            extra={"offer_id": str(offer.id), "status": offer.status},
        )
        return offer

    # ==========================================================================
    # Acceptance
    # ==========================================================================

    def accept(self, offer_id: UUID | str, seeker: User) -> ServiceResult[Offer]:
        """
        Accept an agreed offer.

        Assigns the job request to the provider and rejects every other
        open offer on it. Accepting an accepted offer is a no-op.

        Raises:
            StateConflictError: Confirmations missing or wrong status
            ValidationError: MISSING_FIELD if any term is unset
        """
        logger = self.get_logger()

        with self.atomic():
            offer = load_offer(offer_id, for_update=True)
            require_seeker(offer, seeker)

            if offer.status == OfferStatus.ACCEPTED:
                logger.info(f"Offer {offer.id} is already accepted, returning as is")
                return ServiceResult.noop(offer)

            if offer.status != OfferStatus.AGREEMENT_REACHED:
                if offer.both_confirmed and offer.status in (OfferStatus.PENDING, OfferStatus.NEGOTIATING):
                    apply_transition(offer, "reach_agreement")
                else:
                    raise StateConflictError(
                        "Can only accept offers with confirmed agreement",
                        details={"offer_id": str(offer.id), "status": offer.status},
                    )

            if not offer.both_confirmed:
                raise StateConflictError(
                    "Both parties must confirm all negotiation terms before accepting",
                    details={
                        "seeker_confirmed": offer.seeker_confirmed,
                        "provider_confirmed": offer.provider_confirmed,
                    },
                )

            missing = offer.missing_terms()
            if missing:
                raise ValidationError(
                    f"Negotiation fields '{', '.join(missing)}' must be set before accepting",
                    error_code="MISSING_FIELD",
                    details={"missing_fields": missing},
                )

            apply_transition(offer, "accept")
            offer.save()

            job = self.job_store.get(offer.job_request_id, for_update=True)
            self.job_store.update_status(job, JobRequestStatus.ASSIGNED, assigned_to=offer.provider)

            rejected = []
            competitors = (
                Offer.objects.select_for_update()
                .filter(job_request_id=offer.job_request_id, status__in=OfferStatus.negotiable_statuses())
                .exclude(id=offer.id)
            )
            for competitor in competitors:
                competitor.reject()
                competitor.save()
                rejected.append(competitor)

            self._notify(
                offer.provider,
                NotificationType.OFFER_ACCEPTED,
                "Offer accepted",
                "Your offer was accepted and is awaiting escrow payment",
                offer,
                actor=seeker,
            )
            for competitor in rejected:
                self._notify(
                    competitor.provider,
                    NotificationType.OFFER_REJECTED,
                    "Offer not selected",
                    f'Another offer was accepted for "{offer.job_request.title}"',
                    competitor,
                )

        logger.info(
            "Offer accepted",
            extra={
                "offer_id": str(offer.id),
                "job_request_id": str(offer.job_request_id),
                "rejected_offer_ids": [str(o.id) for o in rejected],
            },
        )
        return ServiceResult.success(offer)

    def reject(self, offer_id: UUID | str, seeker: User) -> Offer:
        """
        Reject a pending offer.

        Raises:
            StateConflictError: Offer is not pending
        """
        with self.atomic():
            offer = load_offer(offer_id, for_update=True)
            require_seeker(offer, seeker)

            if offer.status != OfferStatus.PENDING:
                raise StateConflictError(
                    "Can only reject pending offers",
                    details={"offer_id": str(offer.id), "status": offer.status},
                )

            apply_transition(offer, "reject")
            offer.save()

            self._notify(
                offer.provider,
                NotificationType.OFFER_REJECTED,
                "Offer rejected",
                f'Your offer on "{offer.job_request.title}" was rejected',
                offer,
                actor=seeker,
                with_conversation=False,
            )

        self.get_logger().info("Offer rejected", extra={"offer_id": str(offer.id)})
        return offer

    # ==========================================================================
    # Secondary effects
    # ==========================================================================

    def _notify(
        self,
        recipient: User,
        notification_type: str,
        title: str,
        message: str,
        offer: Offer,
        actor: User | None = None,
        with_conversation: bool = True,
    ) -> None:
        conversation = offer.conversation if with_conversation else None

        self.after_commit(
            f"{notification_type} notification",
            lambda: self.notifications.create(
                recipient=recipient,
                notification_type=notification_type,
                title=title,
                message=message,
                conversation=conversation,
                data={"offer_id": str(offer.id)},
                actor=actor,
            ),
        )

    def _notify_agreement(self, offer: Offer) -> None:
        self._notify(
            offer.job_request.seeker,
            NotificationType.AGREEMENT_REACHED,
            "Agreement reached",
            "All terms are agreed. You can now accept the offer and proceed to payment",
            offer,
        )
        self._notify(
            offer.provider,
            NotificationType.AGREEMENT_REACHED,
            "Agreement reached",
            "All terms are agreed. Waiting for the seeker to accept and pay",
            offer,
        )

    def _after_negotiation_change(self, offer: Offer, user: User, notify: bool = True) -> None:
        """Push negotiation:update to both parties, optionally notify the other side."""
        offer_id = str(offer.id)
        for user_id in (offer.provider_id, offer.job_request.seeker_id):
            self.after_commit(
                "negotiation realtime update",
                lambda user_id=user_id: self.realtime.emit_to_user(
                    user_id, "negotiation_update", {"offer_id": offer_id}
                ),
            )

        if notify:
            other = offer.job_request.seeker if offer.is_provider(user) else offer.provider
            self._notify(
                other,
                NotificationType.NEGOTIATION_UPDATED,
                "Negotiation updated",
                "The negotiation terms were changed and need your confirmation",
                offer,
                actor=user,
            )
