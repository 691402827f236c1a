"""
Offer admin configuration.

Offers are read-only here: status is FSM-protected and only moves
through NegotiationStateMachine and SettlementCoordinator.
"""

from django.contrib import admin

from offers.models import NegotiationHistoryEntry, Offer


class NegotiationHistoryInline(admin.TabularInline):
    model = NegotiationHistoryEntry
    extra = 0
    can_delete = False
    fields = ("created_at", "field", "old_value", "new_value", "changed_by", "note")
    readonly_fields = fields

    def has_add_permission(self, request, obj=None) -> bool:
        return False


@admin.register(Offer)
class OfferAdmin(admin.ModelAdmin):
    list_display = [
        "id",
        "job_request",
        "provider",
        "status",
        "payment_status",
        "negotiation_price",
        "seeker_confirmed",
        "provider_confirmed",
        "created_at",
    ]
    list_filter = ["status", "payment_status", "cancellation_status", "currency"]
    search_fields = ["id", "job_request__title", "provider__email"]
    raw_id_fields = ["job_request", "provider", "conversation", "payment"]
    readonly_fields = [f.name for f in Offer._meta.fields]
    inlines = [NegotiationHistoryInline]
    ordering = ["-created_at"]

    fieldsets = (
        (None, {"fields": ("id", "job_request", "provider", "conversation", "status")}),
        (
            "Bid",
            {"fields": ("budget_min", "budget_max", "currency", "message", "estimated_time_days", "available_dates")},
        ),
        (
            "Negotiation",
            {
                "fields": (
                    "negotiation_price",
                    "negotiation_date",
                    "negotiation_time",
                    "negotiation_materials",
                    "negotiation_scope",
                    "seeker_confirmed",
                    "provider_confirmed",
                    "last_modified_by",
                    "last_modified_at",
                ),
            },
        ),
        (
            "Payment",
            {
                "fields": (
                    "payment",
                    "payment_status",
                    "payment_amount",
                    "payment_currency",
                    "escrowed_at",
                    "released_at",
                    "scheduled_date",
                    "scheduled_time",
                ),
            },
        ),
        (
            "Cancellation",
            {
                "fields": (
                    "cancellation_status",
                    "cancellation_requested_by",
                    "cancellation_requested_at",
                    "cancellation_reason",
                    "cancellation_refund_amount",
                    "cancellation_refund_percentage",
                ),
                "classes": ("collapse",),
            },
        ),
        (
            "Timestamps",
            {"fields": ("created_at", "updated_at", "accepted_at", "completed_at", "cancelled_at", "version"), "classes": ("collapse",)},
        ),
    )

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False
