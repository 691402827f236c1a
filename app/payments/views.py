"""
DRF views for the payments API.

Endpoints:
    POST /api/v1/payments/escrow/ - Open an escrow checkout for an accepted offer
    GET  /api/v1/payments/{id}/ - Payment detail (seeker or provider)
    POST /api/v1/payments/{id}/release/ - Seeker releases escrow to the provider
    GET  /api/v1/payments/status/{conversation_id}/ - Poll (and sync) payment status
    GET  /api/v1/payments/mine/ - Current user's payments (paginated)
    GET  /api/v1/payments/stats/ - Totals by role

The Stripe webhook receiver lives in payments.webhooks.views.

Security:
    - All endpoints require authentication
    - Users only see payments they are a party to
"""

from __future__ import annotations

from drf_spectacular.utils import OpenApiParameter, OpenApiResponse, extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from core.exceptions import AuthorizationError, NotFoundError
from core.services import ServiceResult
from core.views import ApplicationErrorMixin
from chat.models import Conversation

from payments.serializers import (
    EscrowCheckoutSerializer,
    EscrowPaymentRequestSerializer,
    PaymentSerializer,
    PaymentStatsSerializer,
    PaymentStatusSerializer,
)
from payments.services import EscrowLedger, SettlementCoordinator
from payments.webhooks import WebhookEventProcessor


class PaymentViewSet(ApplicationErrorMixin, viewsets.GenericViewSet):
    """
    Escrow payments for accepted offers.

    Provides:
    - escrow: POST /escrow/ - Create checkout session
    - retrieve: GET /{id}/
    - release: POST /{id}/release/
    - payment_status: GET /status/{conversation_id}/
    - mine: GET /mine/
    - stats: GET /stats/
    """

    permission_classes = [IsAuthenticated]
    serializer_class = PaymentSerializer

    def get_ledger(self) -> EscrowLedger:
        return EscrowLedger()

    @extend_schema(
        operation_id="create_escrow_payment",
        summary="Create escrow checkout",
        description=(
            "Open a Stripe Checkout Session for an accepted offer. The amount "
            "must match the negotiated price. Redirect the seeker to `url`."
        ),
        request=EscrowPaymentRequestSerializer,
        responses={
            201: EscrowCheckoutSerializer,
            400: OpenApiResponse(description="Invalid amount or missing price"),
            403: OpenApiResponse(description="Not the job request's seeker"),
            409: OpenApiResponse(description="Offer not accepted or payment exists"),
            502: OpenApiResponse(description="Stripe unavailable"),
        },
        tags=["Payments"],
    )
    @action(detail=False, methods=["post"])
    def escrow(self, request):
        serializer = EscrowPaymentRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        checkout = self.get_ledger().create_escrow_checkout(
            serializer.validated_data["offer_id"],
            request.user,
            serializer.validated_data["amount"],
        )
        return Response(
            ServiceResult.success(EscrowCheckoutSerializer(checkout.to_dict()).data).to_response(),
            status=status.HTTP_201_CREATED,
        )

    @extend_schema(
        operation_id="get_payment",
        summary="Get payment",
        responses={200: PaymentSerializer, 404: OpenApiResponse(description="Payment not found")},
        tags=["Payments"],
    )
    def retrieve(self, request, pk=None):
        payment = self.get_ledger().get_payment(pk, request.user)
        return Response(ServiceResult.success(self.get_serializer(payment).data).to_response())

    @extend_schema(
        operation_id="release_escrow",
        summary="Release escrow",
        description="Seeker confirms the service is done; funds are released and paid out to the provider.",
        request=None,
        responses={
            200: PaymentSerializer,
            403: OpenApiResponse(description="Not the paying seeker"),
            409: OpenApiResponse(description="Funds not held in escrow"),
        },
        tags=["Payments"],
    )
    @action(detail=True, methods=["post"])
    def release(self, request, pk=None):
        payment = SettlementCoordinator(ledger=self.get_ledger()).complete_service(pk, request.user)
        return Response(ServiceResult.success(self.get_serializer(payment).data).to_response())

    @extend_schema(
        operation_id="check_payment_status",
        summary="Check payment status",
        description=(
            "Latest payment for a conversation. A pending payment is synced "
            "with Stripe first, so a missed webhook still completes it."
        ),
        parameters=[
            OpenApiParameter(name="conversation_id", type=str, location=OpenApiParameter.PATH),
        ],
        responses={200: PaymentStatusSerializer},
        tags=["Payments"],
    )
    @action(detail=False, methods=["get"], url_path=r"status/(?P<conversation_id>[^/.]+)")
    def payment_status(self, request, conversation_id=None):
        conversation = Conversation.objects.filter(id=conversation_id).first()
        if conversation is None:
            raise NotFoundError("Conversation not found", details={"conversation_id": conversation_id})
        if not conversation.has_participant(request.user):
            raise AuthorizationError(
                "You are not a participant in this conversation",
                details={"conversation_id": conversation_id},
            )

        data = WebhookEventProcessor().check_payment_status(conversation.id)
        if data["exists"]:
            data = PaymentStatusSerializer(data).data
        return Response(ServiceResult.success(data).to_response())

    @extend_schema(
        operation_id="list_my_payments",
        summary="List my payments",
        parameters=[
            OpenApiParameter(name="page", type=int, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="limit", type=int, location=OpenApiParameter.QUERY, required=False),
        ],
        responses={200: PaymentSerializer(many=True)},
        tags=["Payments"],
    )
    @action(detail=False, methods=["get"])
    def mine(self, request):
        try:
            page = int(request.query_params.get("page", 1))
            limit = int(request.query_params.get("limit", 20))
        except ValueError:
            page, limit = 1, 20

        result = self.get_ledger().get_user_payments(request.user, page=page, limit=limit)
        return Response(
            ServiceResult.success(
                {
                    "results": self.get_serializer(result["results"], many=True).data,
                    "page": result["page"],
                    "pages": result["pages"],
                    "total": result["total"],
                }
            ).to_response()
        )

    @extend_schema(
        operation_id="get_payment_stats",
        summary="Payment totals",
        responses={200: PaymentStatsSerializer},
        tags=["Payments"],
    )
    @action(detail=False, methods=["get"])
    def stats(self, request):
        stats = self.get_ledger().get_payment_stats(request.user)
        return Response(ServiceResult.success(PaymentStatsSerializer(stats).data).to_response())
