"""
Serializers for the offers API.

Request serializers only check shape and types. Ownership, status and
budget rules are enforced by OfferService and NegotiationStateMachine.

Serializers:
    OfferSerializer: Offer detail with negotiation and payment mirror
    OfferCreateSerializer: Provider bid on a job request
    OfferUpdateSerializer: Edit a pending bid
    NegotiationUpdateSerializer: Change one or more negotiation terms
    CancellationRequestSerializer: Reason for cancelling an engagement
    NegotiationHistorySerializer: Parsed history record
    CancellationOutcomeSerializer: Offer plus refund outcome of a cancellation
"""

from __future__ import annotations

from rest_framework import serializers

from jobs.models import Currency

from offers.models import NEGOTIATION_FIELDS, Offer

TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


class NegotiationTermsSerializer(serializers.Serializer):
    price = serializers.DecimalField(source="negotiation_price", max_digits=12, decimal_places=2, allow_null=True)
    date = serializers.DateField(source="negotiation_date", allow_null=True)
    time = serializers.CharField(source="negotiation_time")
    materials = serializers.CharField(source="negotiation_materials")
    scope = serializers.CharField(source="negotiation_scope")
    seeker_confirmed = serializers.BooleanField()
    provider_confirmed = serializers.BooleanField()
    last_modified_by = serializers.IntegerField(source="last_modified_by_id", allow_null=True)
    last_modified_at = serializers.DateTimeField(allow_null=True)


class OfferSerializer(serializers.ModelSerializer):
    """
    Offer as seen by its provider or the job's seeker.

    Negotiation terms are nested under ``negotiation`` with their short
    names (price, date, time, materials, scope).
    """

    provider_name = serializers.SerializerMethodField()
    negotiation = serializers.SerializerMethodField()

    class Meta:
        model = Offer
        fields = [
            "id",
            "job_request",
            "provider",
            "provider_name",
            "conversation",
            "budget_min",
            "budget_max",
            "currency",
            "message",
            "estimated_time_days",
            "available_dates",
            "status",
            "negotiation",
            "payment",
            "payment_status",
            "payment_amount",
            "payment_currency",
            "escrowed_at",
            "released_at",
            "scheduled_date",
            "scheduled_time",
            "cancellation_status",
            "cancellation_reason",
            "cancellation_refund_amount",
            "cancellation_refund_percentage",
            "cancelled_at",
            "accepted_at",
            "completed_at",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_provider_name(self, obj: Offer) -> str:
        return obj.provider.display_name or obj.provider.email

    def get_negotiation(self, obj: Offer) -> dict:
        return NegotiationTermsSerializer(obj).data


class OfferCreateSerializer(serializers.Serializer):
    job_request_id = serializers.UUIDField()
    budget_min = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)
    budget_max = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)
    currency = serializers.ChoiceField(choices=Currency.choices, default=Currency.EGP)
    message = serializers.CharField(required=False, allow_blank=True, default="")
    estimated_time_days = serializers.IntegerField(required=False, allow_null=True, min_value=1)
    available_dates = serializers.ListField(child=serializers.DateField(), required=False, default=list)

    def validate(self, attrs):
        if attrs["budget_min"] > attrs["budget_max"]:
            raise serializers.ValidationError({"budget": ["budget_min must not exceed budget_max."]})
        attrs["available_dates"] = [d.isoformat() for d in attrs.get("available_dates", [])]
        return attrs


class OfferUpdateSerializer(serializers.Serializer):
    budget_min = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False)
    budget_max = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False)
    currency = serializers.ChoiceField(choices=Currency.choices, required=False)
    message = serializers.CharField(required=False, allow_blank=True)
    estimated_time_days = serializers.IntegerField(required=False, allow_null=True, min_value=1)
    available_dates = serializers.ListField(child=serializers.DateField(), required=False)

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError("At least one field is required.")
        if "available_dates" in attrs:
            attrs["available_dates"] = [d.isoformat() for d in attrs["available_dates"]]
        return attrs


class NegotiationUpdateSerializer(serializers.Serializer):
    """
    Partial update of negotiation terms.

    Only the keys present in the request are passed on; a term that is
    sent unchanged is ignored by the state machine.
    """

    price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False, allow_null=True)
    date = serializers.DateField(required=False, allow_null=True)
    time = serializers.RegexField(TIME_PATTERN, required=False, allow_blank=True)
    materials = serializers.CharField(required=False, allow_blank=True)
    scope = serializers.CharField(required=False, allow_blank=True)

    def validate(self, attrs):
        if not any(name in attrs for name in NEGOTIATION_FIELDS):
            raise serializers.ValidationError(
                f"Provide at least one of: {', '.join(NEGOTIATION_FIELDS)}."
            )
        return attrs


class CancellationRequestSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default="", max_length=1000)


class NegotiationHistorySerializer(serializers.Serializer):
    field = serializers.CharField()
    old_value = serializers.JSONField(allow_null=True)
    new_value = serializers.JSONField(allow_null=True)
    changed_by = serializers.IntegerField(allow_null=True)
    timestamp = serializers.DateTimeField()
    note = serializers.CharField(allow_blank=True)


class CancellationOutcomeSerializer(serializers.Serializer):
    offer = OfferSerializer()
    offer_id = serializers.UUIDField()
    status = serializers.CharField()
    cancellation_status = serializers.CharField()
    refund_percentage = serializers.DecimalField(max_digits=5, decimal_places=2)
    refund_tier = serializers.CharField()
    refund_amount = serializers.IntegerField(help_text="Refunded amount in minor units")
    payment_id = serializers.UUIDField(allow_null=True)
    payment_status = serializers.CharField(allow_null=True)
