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
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Offer",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("version", models.PositiveIntegerField(default=1, help_text="Version for optimistic locking - incremented on each save")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("budget_min", models.DecimalField(decimal_places=2, max_digits=12)),
                ("budget_max", models.DecimalField(decimal_places=2, max_digits=12)),
                ("currency", models.CharField(choices=[("EGP", "Egyptian Pound"), ("USD", "US Dollar"), ("EUR", "Euro")], default="EGP", max_length=3)),
                ("message", models.TextField(blank=True, default="")),
                ("estimated_time_days", models.PositiveIntegerField(blank=True, null=True)),
                ("available_dates", models.JSONField(blank=True, default=list, help_text="ISO dates the provider can work on")),
                ("negotiation_price", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("negotiation_date", models.DateField(blank=True, null=True)),
                ("negotiation_time", models.CharField(blank=True, default="", help_text="Agreed start time, e.g. '14:30'", max_length=16)),
                ("negotiation_materials", models.TextField(blank=True, default="")),
                ("negotiation_scope", models.TextField(blank=True, default="")),
                ("seeker_confirmed", models.BooleanField(default=False)),
                ("provider_confirmed", models.BooleanField(default=False)),
                ("last_modified_at", models.DateTimeField(blank=True, null=True)),
                (
                    "payment_status",
                    models.CharField(
                        choices=[
                            ("none", "None"),
                            ("pending", "Pending"),
                            ("escrowed", "Escrowed"),
                            ("released", "Released"),
                            ("refunded", "Refunded"),
                            ("partial_refund", "Partial Refund"),
                        ],
                        db_index=True,
                        default="none",
                        max_length=20,
                    ),
                ),
                ("payment_amount", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("payment_currency", models.CharField(blank=True, default="", max_length=3)),
                ("escrowed_at", models.DateTimeField(blank=True, null=True)),
                ("released_at", models.DateTimeField(blank=True, null=True)),
                ("scheduled_date", models.DateField(blank=True, db_index=True, null=True)),
                ("scheduled_time", models.CharField(blank=True, default="", max_length=16)),
                ("cancellation_status", models.CharField(choices=[("none", "None"), ("approved", "Approved")], default="none", max_length=20)),
                ("cancellation_requested_at", models.DateTimeField(blank=True, null=True)),
                ("cancellation_reason", models.TextField(blank=True, default="")),
                ("cancellation_refund_amount", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("cancellation_refund_percentage", models.PositiveSmallIntegerField(blank=True, null=True)),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("negotiating", "Negotiating"),
                            ("agreement_reached", "Agreement Reached"),
                            ("accepted", "Accepted"),
                            ("in_progress", "In Progress"),
                            ("completed", "Completed"),
                            ("cancelled", "Cancelled"),
                            ("rejected", "Rejected"),
                            ("withdrawn", "Withdrawn"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Current state of the offer (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                ("accepted_at", models.DateTimeField(blank=True, null=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
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
                        related_name="offers",
                        to="chat.conversation",
                    ),
                ),
                (
                    "job_request",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="offers",
                        to="jobs.jobrequest",
                    ),
                ),
                (
                    "last_modified_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "provider",
                    models.ForeignKey(
                        help_text="User making the bid",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="offers",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["job_request", "status"], name="offers_job_status_idx"),
                    models.Index(fields=["provider", "status"], name="offers_provider_status_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(
                            ("status__in", ["pending", "negotiating", "agreement_reached", "accepted", "in_progress"])
                        ),
                        fields=("provider", "job_request"),
                        name="offers_one_active_per_provider",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("budget_min__lte", models.F("budget_max"))),
                        name="offers_budget_range_valid",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="NegotiationHistoryEntry",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                (
                    "field",
                    models.CharField(
                        choices=[
                            ("price", "Price"),
                            ("date", "Date"),
                            ("time", "Time"),
                            ("materials", "Materials"),
                            ("scope", "Scope"),
                            ("confirmation", "Confirmation"),
                        ],
                        max_length=20,
                    ),
                ),
                ("old_value", models.JSONField(blank=True, null=True)),
                ("new_value", models.JSONField(blank=True, null=True)),
                ("note", models.CharField(blank=True, default="", max_length=255)),
                (
                    "changed_by",
                    models.ForeignKey(
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "offer",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="history_entries",
                        to="offers.offer",
                    ),
                ),
            ],
            options={
                "verbose_name": "Negotiation History Entry",
                "verbose_name_plural": "Negotiation History Entries",
                "ordering": ["created_at", "id"],
            },
        ),
    ]
