"""
DRF serializers for the payments API.

Request serializers validate input shape only; amounts, ownership and
state are checked by EscrowLedger.
"""

from __future__ import annotations

from rest_framework import serializers

from payments.models import Payment


class PaymentSerializer(serializers.ModelSerializer):
    """
    Payment as seen by the seeker or the provider.

    Amounts are in minor units (cents); amount_display is for humans.
    """

    amount_display = serializers.SerializerMethodField()

    class Meta:
        model = Payment
        fields = [
            "id",
            "offer",
            "job_request",
            "conversation",
            "seeker",
            "provider",
            "service_title",
            "payment_type",
            "status",
            "amount",
            "currency",
            "amount_display",
            "original_amount",
            "original_currency",
            "scheduled_date",
            "scheduled_time",
            "escrow_status",
            "escrow_held_at",
            "escrow_released_at",
            "escrow_refunded_at",
            "payout_status",
            "payout_amount",
            "payout_processed_at",
            "cancellation_status",
            "cancellation_reason",
            "refund_amount",
            "refund_percentage",
            "completed_at",
            "created_at",
        ]
        read_only_fields = fields

    def get_amount_display(self, obj: Payment) -> str:
        return f"{obj.amount_major:.2f} {obj.currency.upper()}"


class EscrowPaymentRequestSerializer(serializers.Serializer):
    offer_id = serializers.UUIDField()
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)


class EscrowCheckoutSerializer(serializers.Serializer):
    session_id = serializers.CharField()
    url = serializers.URLField(allow_null=True)
    payment_id = serializers.UUIDField()


class PaymentStatusSerializer(serializers.Serializer):
    status = serializers.CharField()
    exists = serializers.BooleanField()
    escrow_status = serializers.CharField(required=False)
    payment_id = serializers.UUIDField(required=False)
    session_id = serializers.CharField(required=False, allow_null=True)
    offer_id = serializers.UUIDField(required=False)
    completed_at = serializers.DateTimeField(required=False, allow_null=True)
    escrowed_at = serializers.DateTimeField(required=False, allow_null=True)


class SeekerStatsSerializer(serializers.Serializer):
    count = serializers.IntegerField()
    total_paid = serializers.IntegerField()
    in_escrow = serializers.IntegerField()
    refunded = serializers.IntegerField()


class ProviderStatsSerializer(serializers.Serializer):
    count = serializers.IntegerField()
    total_earned = serializers.IntegerField()
    pending_release = serializers.IntegerField()


class PaymentStatsSerializer(serializers.Serializer):
    as_seeker = SeekerStatsSerializer()
    as_provider = ProviderStatsSerializer()
