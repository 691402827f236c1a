"""
Add Celery Beat schedules for webhook and payout maintenance.

- Retry failed webhook events (every 15 minutes)
- Reset webhook events stuck in processing (every 30 minutes)
- Retry failed provider payouts (hourly)
- Delete old processed webhook events (daily at 3 AM UTC)
"""

from django.db import migrations

PERIODIC_TASK_NAMES = [
    "Retry Failed Webhooks",
    "Cleanup Stuck Webhooks",
    "Retry Failed Payouts",
    "Cleanup Old Webhooks",
]


def create_periodic_tasks(apps, schema_editor):
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    CrontabSchedule = apps.get_model("django_celery_beat", "CrontabSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    schedule_15min, _ = IntervalSchedule.objects.get_or_create(every=15, period="minutes")
    schedule_30min, _ = IntervalSchedule.objects.get_or_create(every=30, period="minutes")
    schedule_1hour, _ = IntervalSchedule.objects.get_or_create(every=1, period="hours")

    crontab_daily_3am, _ = CrontabSchedule.objects.get_or_create(
        minute="0",
        hour="3",
        day_of_week="*",
        day_of_month="*",
        month_of_year="*",
    )

    PeriodicTask.objects.get_or_create(
        name="Retry Failed Webhooks",
        defaults={
            "task": "payments.tasks.retry_failed_webhooks",
            "interval": schedule_15min,
            "enabled": True,
            "description": "Re-queues failed webhook events under the retry limit.",
        },
    )

    PeriodicTask.objects.get_or_create(
        name="Cleanup Stuck Webhooks",
        defaults={
            "task": "payments.tasks.cleanup_stuck_webhooks",
            "interval": schedule_30min,
            "enabled": True,
            "description": "Marks webhook events stuck in processing as failed so they are retried.",
        },
    )

    PeriodicTask.objects.get_or_create(
        name="Retry Failed Payouts",
        defaults={
            "task": "payments.tasks.retry_failed_payouts",
            "interval": schedule_1hour,
            "enabled": True,
            "description": "Re-sends provider payouts that failed before Stripe accepted them.",
        },
    )

    PeriodicTask.objects.get_or_create(
        name="Cleanup Old Webhooks",
        defaults={
            "task": "payments.tasks.cleanup_old_webhooks",
            "crontab": crontab_daily_3am,
            "enabled": True,
            "description": "Deletes processed webhook events older than 90 days.",
        },
    )


def remove_periodic_tasks(apps, schema_editor):
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")
    PeriodicTask.objects.filter(name__in=PERIODIC_TASK_NAMES).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("payments", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_tasks, remove_periodic_tasks),
    ]
