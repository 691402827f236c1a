"""
Payment admin configuration.

Payments are read-only here: state only moves through EscrowLedger and
webhooks. Admins use this view to follow escrow, payout and refund state
and to find payouts that need manual remediation.
"""

from django.contrib import admin

from payments.models import Payment, WebhookEvent


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = [
        "id",
        "offer",
        "seeker",
        "provider",
        "amount_display",
        "status",
        "escrow_status",
        "payout_status",
        "created_at",
    ]
    list_filter = ["status", "escrow_status", "payout_status", "payment_type", "created_at"]
    search_fields = [
        "id",
        "stripe_session_id",
        "stripe_payment_intent_id",
        "stripe_payout_id",
        "stripe_refund_id",
        "seeker__email",
        "provider__email",
    ]
    readonly_fields = [f.name for f in Payment._meta.fields]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "offer", "job_request", "conversation", "seeker", "provider", "status"),
            },
        ),
        (
            "Amount",
            {
                "fields": ("amount", "currency", "original_amount", "original_currency", "service_title"),
            },
        ),
        (
            "Stripe Details",
            {
                "fields": (
                    "stripe_session_id",
                    "stripe_payment_intent_id",
                    "stripe_payout_id",
                    "stripe_refund_id",
                ),
            },
        ),
        (
            "Escrow",
            {
                "fields": ("escrow_status", "escrow_held_at", "escrow_released_at", "escrow_refunded_at", "release_reason"),
            },
        ),
        (
            "Payout",
            {
                "fields": (
                    "payout_status",
                    "payout_amount",
                    "payout_attempts",
                    "payout_processed_at",
                    "payout_failed_at",
                    "payout_failure_reason",
                ),
            },
        ),
        (
            "Cancellation",
            {
                "fields": (
                    "cancellation_status",
                    "cancellation_requested_by",
                    "cancellation_reason",
                    "refund_amount",
                    "refund_percentage",
                    "cancellation_processed_at",
                ),
                "classes": ("collapse",),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("created_at", "updated_at", "completed_at", "version"),
                "classes": ("collapse",),
            },
        ),
    )

    @admin.display(description="Amount")
    def amount_display(self, obj: Payment) -> str:
        return f"{obj.amount_major:.2f} {obj.currency.upper()}"

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(WebhookEvent)
class WebhookEventAdmin(admin.ModelAdmin):
    """Webhook events are immutable once received; only status is visible."""

    list_display = [
        "id",
        "stripe_event_id",
        "event_type",
        "status",
        "retry_count",
        "processed_at",
        "created_at",
    ]
    list_filter = ["status", "event_type", "created_at"]
    search_fields = ["id", "stripe_event_id", "event_type"]
    readonly_fields = [
        "id",
        "created_at",
        "updated_at",
        "stripe_event_id",
        "event_type",
        "payload",
        "processed_at",
    ]
    ordering = ["-created_at"]

    fieldsets = (
        (None, {"fields": ("id", "stripe_event_id", "event_type", "status")}),
        ("Processing", {"fields": ("processed_at", "retry_count")}),
        ("Error Info", {"fields": ("error_message",), "classes": ("collapse",)}),
        ("Payload", {"fields": ("payload",), "classes": ("collapse",)}),
    )
