"""
Views for the offers API.

Endpoints:
    POST  /api/v1/offers/ - Provider bids on a job request
    GET   /api/v1/offers/?job_request=<id> - Offers on a job request
    GET   /api/v1/offers/{id}/ - Offer detail
    PATCH /api/v1/offers/{id}/ - Edit a pending bid
    POST  /api/v1/offers/{id}/withdraw/ - Provider withdraws a pending bid
    POST  /api/v1/offers/{id}/accept/ - Seeker accepts an agreed offer
    POST  /api/v1/offers/{id}/reject/ - Seeker rejects a pending offer
    PATCH /api/v1/offers/{id}/negotiation/ - Change negotiation terms
    POST  /api/v1/offers/{id}/negotiation/confirm/ - Confirm current terms
    POST  /api/v1/offers/{id}/negotiation/reset/ - Clear both confirmations
    GET   /api/v1/offers/{id}/negotiation/history/ - Negotiation log
    POST  /api/v1/offers/{id}/cancel/ - Cancel an accepted or running engagement

Views stay thin: they validate request shape, call the service and wrap
the result in the ServiceResult envelope. Domain exceptions are turned
into responses by ApplicationErrorMixin.
"""

from __future__ import annotations

from drf_spectacular.utils import OpenApiParameter, OpenApiResponse, extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from core.exceptions import ValidationError
from core.services import ServiceResult
from core.views import ApplicationErrorMixin
from payments.services import SettlementCoordinator

from offers.negotiation import NegotiationStateMachine
from offers.serializers import (
    CancellationOutcomeSerializer,
    CancellationRequestSerializer,
    NegotiationHistorySerializer,
    NegotiationUpdateSerializer,
    OfferCreateSerializer,
    OfferSerializer,
    OfferUpdateSerializer,
)
from offers.services import OfferService

OFFER_ERRORS = {
    403: OpenApiResponse(description="Caller is not a party to the offer"),
    404: OpenApiResponse(description="Offer not found"),
    409: OpenApiResponse(description="Offer is not in a state that allows this"),
}


class OfferViewSet(ApplicationErrorMixin, viewsets.GenericViewSet):
    """
    Offers, negotiation and cancellation.

    Provides:
    - create / list / retrieve / partial_update
    - withdraw, accept, reject
    - negotiation (PATCH), negotiation_confirm, negotiation_reset, negotiation_history
    - cancel

    Permissions:
    - All endpoints require authentication
    - Role checks (provider vs. seeker) are done by the services
    """

    permission_classes = [IsAuthenticated]
    serializer_class = OfferSerializer

    def get_state_machine(self) -> NegotiationStateMachine:
        return NegotiationStateMachine()

    def _respond(self, offer, result: ServiceResult | None = None, status_code=status.HTTP_200_OK) -> Response:
        data = self.get_serializer(offer).data
        envelope = result.map(lambda _: data) if result is not None else ServiceResult.success(data)
        return Response(envelope.to_response(), status=status_code)

    # ==========================================================================
    # Bids
    # ==========================================================================

    @extend_schema(
        operation_id="create_offer",
        summary="Create offer",
        request=OfferCreateSerializer,
        responses={
            201: OfferSerializer,
            400: OpenApiResponse(description="Budget outside the job's range or invalid currency"),
            409: OpenApiResponse(description="Job not open or provider already has an active offer"),
        },
        tags=["Offers"],
    )
    def create(self, request):
        serializer = OfferCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)

        offer = OfferService.create_offer(
            job_request_id=data.pop("job_request_id"),
            provider=request.user,
            **data,
        )
        return self._respond(offer, status_code=status.HTTP_201_CREATED)

    @extend_schema(
        operation_id="list_offers",
        summary="List offers on a job request",
        description="The seeker sees every offer; a provider sees only their own.",
        parameters=[
            OpenApiParameter(name="job_request", type=str, location=OpenApiParameter.QUERY, required=True),
        ],
        responses={200: OfferSerializer(many=True)},
        tags=["Offers"],
    )
    def list(self, request):
        job_request_id = request.query_params.get("job_request")
        if not job_request_id:
            raise ValidationError(
                "job_request query parameter is required",
                details={"job_request": ["This parameter is required."]},
            )

        offers = OfferService.list_offers_for_job(job_request_id, request.user)
        return Response(ServiceResult.success(self.get_serializer(offers, many=True).data).to_response())

    @extend_schema(
        operation_id="get_offer",
        summary="Get offer",
        responses={200: OfferSerializer, **OFFER_ERRORS},
        tags=["Offers"],
    )
    def retrieve(self, request, pk=None):
        return self._respond(OfferService.get_offer(pk, request.user))

    @extend_schema(
        operation_id="update_offer",
        summary="Edit pending offer",
        request=OfferUpdateSerializer,
        responses={200: OfferSerializer, **OFFER_ERRORS},
        tags=["Offers"],
    )
    def partial_update(self, request, pk=None):
        serializer = OfferUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        offer = OfferService.update_offer(pk, request.user, **serializer.validated_data)
        return self._respond(offer)

    @extend_schema(
        operation_id="withdraw_offer",
        summary="Withdraw offer",
        request=None,
        responses={200: OfferSerializer, **OFFER_ERRORS},
        tags=["Offers"],
    )
    @action(detail=True, methods=["post"])
    def withdraw(self, request, pk=None):
        return self._respond(OfferService.withdraw_offer(pk, request.user))

    # ==========================================================================
    # Acceptance
    # ==========================================================================

    @extend_schema(
        operation_id="accept_offer",
        summary="Accept offer",
        description=(
            "Accept an offer whose terms both parties confirmed. The job is "
            "assigned to the provider and competing offers are rejected."
        ),
        request=None,
        responses={200: OfferSerializer, **OFFER_ERRORS},
        tags=["Offers"],
    )
    @action(detail=True, methods=["post"])
    def accept(self, request, pk=None):
        result = self.get_state_machine().accept(pk, request.user)
        return self._respond(result.data, result)

    @extend_schema(
        operation_id="reject_offer",
        summary="Reject offer",
        request=None,
        responses={200: OfferSerializer, **OFFER_ERRORS},
        tags=["Offers"],
    )
    @action(detail=True, methods=["post"])
    def reject(self, request, pk=None):
        return self._respond(self.get_state_machine().reject(pk, request.user))

    # ==========================================================================
    # Negotiation
    # ==========================================================================

    @extend_schema(
        operation_id="update_negotiation",
        summary="Update negotiation terms",
        description="Any change clears both confirmations.",
        request=NegotiationUpdateSerializer,
        responses={
            200: OfferSerializer,
            400: OpenApiResponse(description="NO_CHANGES or invalid term"),
            **OFFER_ERRORS,
        },
        tags=["Offers - Negotiation"],
    )
    @action(detail=True, methods=["patch"])
    def negotiation(self, request, pk=None):
        serializer = NegotiationUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        offer = self.get_state_machine().update_terms(pk, request.user, dict(serializer.validated_data))
        return self._respond(offer)

    @extend_schema(
        operation_id="confirm_negotiation",
        summary="Confirm negotiation terms",
        request=None,
        responses={
            200: OfferSerializer,
            400: OpenApiResponse(description="MISSING_FIELD"),
            **OFFER_ERRORS,
        },
        tags=["Offers - Negotiation"],
    )
    @action(detail=True, methods=["post"], url_path="negotiation/confirm")
    def negotiation_confirm(self, request, pk=None):
        result = self.get_state_machine().confirm(pk, request.user)
        return self._respond(result.data, result)

    @extend_schema(
        operation_id="reset_negotiation",
        summary="Reset confirmations",
        request=None,
        responses={200: OfferSerializer, **OFFER_ERRORS},
        tags=["Offers - Negotiation"],
    )
    @action(detail=True, methods=["post"], url_path="negotiation/reset")
    def negotiation_reset(self, request, pk=None):
        return self._respond(self.get_state_machine().reset_confirmation(pk, request.user))

    @extend_schema(
        operation_id="negotiation_history",
        summary="Negotiation history",
        responses={200: NegotiationHistorySerializer(many=True), **OFFER_ERRORS},
        tags=["Offers - Negotiation"],
    )
    @action(detail=True, methods=["get"], url_path="negotiation/history")
    def negotiation_history(self, request, pk=None):
        records = OfferService.get_negotiation_history(pk, request.user)
        data = NegotiationHistorySerializer([record.to_dict() for record in records], many=True).data
        return Response(ServiceResult.success(data).to_response())

    # ==========================================================================
    # Cancellation
    # ==========================================================================

    @extend_schema(
        operation_id="cancel_offer",
        summary="Cancel engagement",
        description=(
            "Cancel an accepted or in-progress engagement. Escrowed funds are "
            "refunded by the cancellation policy: 100% when the service is 12h "
            "or more away (or unscheduled), otherwise 70%."
        ),
        request=CancellationRequestSerializer,
        responses={
            200: CancellationOutcomeSerializer,
            502: OpenApiResponse(description="Refund could not be issued"),
            **OFFER_ERRORS,
        },
        tags=["Offers"],
    )
    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):
        serializer = CancellationRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        outcome = SettlementCoordinator().request_cancellation(
            pk,
            request.user,
            reason=serializer.validated_data["reason"],
        )
        data = {"offer": outcome.offer, **outcome.to_dict()}
        return Response(ServiceResult.success(CancellationOutcomeSerializer(data).data).to_response())
