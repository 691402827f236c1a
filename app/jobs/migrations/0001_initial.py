import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="JobRequest",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("title", models.CharField(max_length=200)),
                ("description", models.TextField(blank=True, default="")),
                ("budget_min", models.DecimalField(blank=True, decimal_places=2, help_text="Lowest acceptable offer amount", max_digits=12, null=True)),
                ("budget_max", models.DecimalField(blank=True, decimal_places=2, help_text="Highest acceptable offer amount", max_digits=12, null=True)),
                ("currency", models.CharField(choices=[("EGP", "Egyptian Pound"), ("USD", "US Dollar"), ("EUR", "Euro")], default="EGP", max_length=3)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("open", "Open"),
                            ("assigned", "Assigned"),
                            ("in_progress", "In Progress"),
                            ("completed", "Completed"),
                            ("cancelled", "Cancelled"),
                        ],
                        db_index=True,
                        default="open",
                        max_length=20,
                    ),
                ),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                (
                    "assigned_to",
                    models.ForeignKey(
                        blank=True,
                        help_text="Provider whose offer was accepted",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="assigned_job_requests",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "seeker",
                    models.ForeignKey(
                        help_text="User who posted the request",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="job_requests",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Job Request",
                "verbose_name_plural": "Job Requests",
                "ordering": ["-created_at"],
                "indexes": [models.Index(fields=["seeker", "status"], name="jobs_seeker_status_idx")],
            },
        ),
    ]
