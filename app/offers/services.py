"""
Offer service layer: bids and read paths.

Negotiation of terms lives in offers.negotiation; this module covers the
provider's bid itself (create, edit, withdraw) and the queries used by
the API.

Services:
    OfferService: Offer creation, editing, withdrawal and lookups

Usage:
    from offers.services import OfferService

    offer = OfferService.create_offer(
        job_request_id=job.id,
        provider=provider,
        budget_min=Decimal("800"),
        budget_max=Decimal("1200"),
        message="Available next week",
    )
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import TYPE_CHECKING

from django.db.models import QuerySet

from chat.services import ChatService
from core.exceptions import AuthorizationError, StateConflictError, ValidationError
from core.services import BaseService
from jobs.models import Currency, JobRequestStatus
from jobs.services import JobRequestStore
from notifications.models import NotificationType
from notifications.services import NotificationService

from offers.history import HistoryRecord, load_history
from offers.models import Offer
from offers.negotiation import apply_transition, load_offer, require_party
from offers.states import OfferStatus

if TYPE_CHECKING:
    from uuid import UUID

    from authentication.models import User
    from jobs.models import JobRequest

logger = logging.getLogger(__name__)

EDITABLE_BID_FIELDS = ("budget_min", "budget_max", "currency", "message", "estimated_time_days", "available_dates")


class OfferService(BaseService):
    """
    Service for provider bids.

    Methods:
        create_offer: Bid on an open job request
        update_offer: Edit a pending bid
        withdraw_offer: Pull a pending bid
        get_offer: Fetch an offer visible to the user
        list_offers_for_job: Offers on a job visible to the user
        get_negotiation_history: Typed negotiation log
    """

    @classmethod
    def _validate_bid(
        cls,
        job: JobRequest,
        budget_min: Decimal,
        budget_max: Decimal,
        currency: str,
    ) -> None:
        errors = {}
        if budget_min is None or budget_max is None:
            errors["budget"] = ["Both budget_min and budget_max are required."]
        elif budget_min < 0:
            errors["budget_min"] = ["Must not be negative."]
        elif budget_min > budget_max:
            errors["budget"] = ["budget_min must not exceed budget_max."]
        elif not job.budget_allows(budget_min, budget_max):
            errors["budget"] = ["Price must be within the job request budget range."]

        if currency not in Currency.values:
            errors["currency"] = [f"Must be one of {', '.join(Currency.values)}."]

        if errors:
            raise ValidationError("Invalid offer budget", details=errors)

    @classmethod
    def create_offer(
        cls,
        job_request_id: UUID | str,
        provider: User,
        budget_min: Decimal,
        budget_max: Decimal,
        currency: str = Currency.EGP,
        message: str = "",
        estimated_time_days: int | None = None,
        available_dates: list | None = None,
    ) -> Offer:
        """
        Create a pending offer and open its conversation.

        Raises:
            StateConflictError: Job is not open, or the provider already
                has an active offer on it
            ValidationError: Budget outside range or unknown currency
            AuthorizationError: Provider owns the job request
        """
        with cls.atomic():
            job = JobRequestStore.get(job_request_id, for_update=True)

            if job.status != JobRequestStatus.OPEN:
                raise StateConflictError(
                    "Can only make offers on open job requests",
                    details={"job_request_id": str(job.id), "status": job.status},
                )

            if job.seeker_id == provider.pk:
                raise AuthorizationError("Cannot make an offer on your own job request")

            duplicate = Offer.objects.filter(
                job_request=job,
                provider=provider,
                status__in=OfferStatus.active_statuses(),
            ).exists()
            if duplicate:
                raise StateConflictError(
                    "Provider already made an offer on this job",
                    error_code="DUPLICATE_OFFER",
                    details={"job_request_id": str(job.id)},
                )

            cls._validate_bid(job, budget_min, budget_max, currency)

            conversation = ChatService.get_or_create_conversation(job, job.seeker, provider)

            offer = Offer.objects.create(
                job_request=job,
                provider=provider,
                conversation=conversation,
                budget_min=budget_min,
                budget_max=budget_max,
                currency=currency,
                message=message,
                estimated_time_days=estimated_time_days,
                available_dates=available_dates or [],
            )

            seeker = job.seeker
            provider_name = provider.display_name or provider.email
            cls.after_commit(
                "offer_received notification",
                lambda: NotificationService.create(
                    recipient=seeker,
                    notification_type=NotificationType.OFFER_RECEIVED,
                    title="New offer",
                    message=f'{provider_name} sent you an offer on "{job.title}"',
                    conversation=conversation,
                    data={"offer_id": str(offer.id)},
                    actor=provider,
                ),
            )

        logger.info(
            "Offer created",
            extra={
                "offer_id": str(offer.id),
                "job_request_id": str(job.id),
                "conversation_id": str(conversation.id),
            },
        )
        return offer

    @classmethod
    def update_offer(cls, offer_id: UUID | str, provider: User, **changes) -> Offer:
        """
        Edit the bid of a pending offer.

        Raises:
            AuthorizationError: Caller is not the provider
            StateConflictError: Offer is no longer pending
        """
        unknown = set(changes) - set(EDITABLE_BID_FIELDS)
        if unknown:
            raise ValidationError(
                "Unknown offer fields",
                details={name: ["Not editable."] for name in sorted(unknown)},
            )

        with cls.atomic():
            offer = load_offer(offer_id, for_update=True)
            if not offer.is_provider(provider):
                raise AuthorizationError("Only the provider can edit this offer")
            if offer.status != OfferStatus.PENDING:
                raise StateConflictError(
                    "Can only edit pending offers",
                    details={"offer_id": str(offer.id), "status": offer.status},
                )

            for name, value in changes.items():
                setattr(offer, name, value)
            cls._validate_bid(offer.job_request, offer.budget_min, offer.budget_max, offer.currency)

            offer.save()

        logger.info(
            "Offer updated",
            extra={"offer_id": str(offer.id), "fields": sorted(changes)},
        )
        return offer

    @classmethod
    def withdraw_offer(cls, offer_id: UUID | str, provider: User) -> Offer:
        """
        Withdraw a pending offer.

        Raises:
            AuthorizationError: Caller is not the provider
            StateConflictError: Offer is not pending
        """
        with cls.atomic():
            offer = load_offer(offer_id, for_update=True)
            if not offer.is_provider(provider):
                raise AuthorizationError("Only the provider can withdraw this offer")

            apply_transition(offer, "withdraw")
            offer.save()

            seeker = offer.job_request.seeker
            conversation = offer.conversation
            cls.after_commit(
                "offer_withdrawn notification",
                lambda: NotificationService.create(
                    recipient=seeker,
                    notification_type=NotificationType.OFFER_WITHDRAWN,
                    title="Offer withdrawn",
                    message=f'An offer on "{offer.job_request.title}" was withdrawn',
                    conversation=conversation,
                    data={"offer_id": str(offer.id)},
                    actor=provider,
                ),
            )

        logger.info("Offer withdrawn", extra={"offer_id": str(offer.id)})
        return offer

    @classmethod
    def get_offer(cls, offer_id: UUID | str, user: User) -> Offer:
        offer = load_offer(offer_id)
        require_party(offer, user)
        return offer

    @classmethod
    def list_offers_for_job(cls, job_request_id: UUID | str, user: User) -> QuerySet[Offer]:
        """
        Offers on a job request.

        The seeker sees every offer; a provider sees only their own.
        """
        job = JobRequestStore.get(job_request_id)
        queryset = Offer.objects.filter(job_request=job).select_related("provider", "job_request")
        if job.seeker_id != user.pk:
            queryset = queryset.filter(provider=user)
        return queryset

    @classmethod
    def get_negotiation_history(cls, offer_id: UUID | str, user: User) -> list[HistoryRecord]:
        offer = load_offer(offer_id)
        require_party(offer, user)
        return load_history(offer)
