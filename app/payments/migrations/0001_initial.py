import uuid

import django.db.models.deletion
import django_fsm
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("chat", "0001_initial"),
        ("jobs", "0001_initial"),
        ("offers", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="WebhookEvent",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("stripe_event_id", models.CharField(help_text="Stripe Event ID (evt_xxx) - unique constraint for idempotency", max_length=255, unique=True)),
                ("event_type", models.CharField(db_index=True, max_length=100)),
                ("payload", models.JSONField(help_text="Full webhook payload from Stripe")),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("processed", "Processed"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="pending",
                        max_length=20,
                    ),
                ),
                ("processed_at", models.DateTimeField(blank=True, null=True)),
                ("error_message", models.TextField(blank=True, null=True)),
                ("retry_count", models.PositiveSmallIntegerField(default=0)),
            ],
            options={
                "verbose_name": "Webhook Event",
                "verbose_name_plural": "Webhook Events",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status", "created_at"], name="payments_wh_status_created_idx"),
                    models.Index(fields=["status", "retry_count"], name="payments_wh_status_retry_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Payment",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("version", models.PositiveIntegerField(default=1, help_text="Version for optimistic locking - incremented on each save")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("service_title", models.CharField(blank=True, default="", max_length=200)),
                ("payment_type", models.CharField(choices=[("escrow", "Escrow"), ("direct", "Direct")], default="escrow", max_length=10)),
                ("stripe_session_id", models.CharField(blank=True, help_text="Stripe Checkout Session ID (cs_xxx)", max_length=255, null=True, unique=True)),
                ("stripe_payment_intent_id", models.CharField(blank=True, help_text="Stripe PaymentIntent ID (pi_xxx)", max_length=255, null=True, unique=True)),
                ("stripe_payout_id", models.CharField(blank=True, help_text="Stripe Payout ID (po_xxx)", max_length=255, null=True, unique=True)),
                ("stripe_refund_id", models.CharField(blank=True, help_text="Stripe Refund ID (re_xxx)", max_length=255, null=True, unique=True)),
                ("amount", models.PositiveBigIntegerField(help_text="Charged amount in smallest currency unit (e.g., cents)")),
                ("currency", models.CharField(default="usd", help_text="ISO 4217 currency code (lowercase)", max_length=3)),
                ("original_amount", models.DecimalField(blank=True, decimal_places=2, help_text="Negotiated price in major units", max_digits=12, null=True)),
                ("original_currency", models.CharField(default="EGP", max_length=3)),
                ("scheduled_date", models.DateField(blank=True, null=True)),
                ("scheduled_time", models.CharField(blank=True, default="", max_length=16)),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("escrowed", "Escrowed"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                            ("cancelled", "Cancelled"),
                            ("refunded", "Refunded"),
                            ("partial_refund", "Partial Refund"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Current state of the payment (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("failed_at", models.DateTimeField(blank=True, null=True)),
                ("failure_reason", models.TextField(blank=True, null=True)),
                (
                    "escrow_status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("held", "Held"),
                            ("released", "Released"),
                            ("refunded", "Refunded"),
                            ("partial_refund", "Partial Refund"),
                        ],
                        default="pending",
                        max_length=20,
                    ),
                ),
                ("escrow_held_at", models.DateTimeField(blank=True, null=True)),
                ("escrow_released_at", models.DateTimeField(blank=True, null=True)),
                ("escrow_refunded_at", models.DateTimeField(blank=True, null=True)),
                ("release_reason", models.CharField(blank=True, default="", max_length=50)),
                (
                    "payout_status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("processed", "Processed"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="pending",
                        max_length=20,
                    ),
                ),
                ("payout_amount", models.PositiveBigIntegerField(blank=True, help_text="Amount paid out to the provider in minor units", null=True)),
                ("payout_attempts", models.PositiveSmallIntegerField(default=0, help_text="Payout requests sent to Stripe (idempotency key attempt)")),
                ("payout_processed_at", models.DateTimeField(blank=True, null=True)),
                ("payout_failed_at", models.DateTimeField(blank=True, null=True)),
                ("payout_failure_reason", models.TextField(blank=True, null=True)),
                ("cancellation_status", models.CharField(choices=[("none", "None"), ("approved", "Approved")], default="none", max_length=20)),
                ("cancellation_requested_at", models.DateTimeField(blank=True, null=True)),
                ("cancellation_reason", models.TextField(blank=True, default="")),
                ("refund_amount", models.PositiveBigIntegerField(blank=True, help_text="Refunded amount in minor units", null=True)),
                ("refund_percentage", models.PositiveSmallIntegerField(blank=True, null=True)),
                ("cancellation_processed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "cancellation_requested_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "conversation",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="payments",
                        to="chat.conversation",
                    ),
                ),
                (
                    "job_request",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payments",
                        to="jobs.jobrequest",
                    ),
                ),
                (
                    "offer",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payments",
                        to="offers.offer",
                    ),
                ),
                (
                    "provider",
                    models.ForeignKey(
                        help_text="User receiving the payout",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="provider_payments",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "seeker",
                    models.ForeignKey(
                        help_text="User paying into escrow",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="seeker_payments",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["seeker", "status"], name="payments_seeker_status_idx"),
                    models.Index(fields=["provider", "status"], name="payments_provider_status_idx"),
                    models.Index(fields=["conversation", "created_at"], name="payments_conv_created_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("status__in", ["pending", "escrowed"])),
                        fields=("offer",),
                        name="payments_one_active_per_offer",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("amount__gt", 0)),
                        name="payments_amount_positive",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            ("refund_amount__isnull", True),
                            ("refund_amount__lte", models.F("amount")),
                            _connector="OR",
                        ),
                        name="payments_refund_within_amount",
                    ),
                ],
            },
        ),
    ]
