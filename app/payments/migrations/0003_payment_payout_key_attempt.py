from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ("payments", "0002_add_settlement_schedules"),
    ]

    operations = [
        migrations.AlterField(
            model_name="payment",
            name="payout_attempts",
            field=models.PositiveSmallIntegerField(default=0, help_text="Payout requests sent to Stripe"),
        ),
        migrations.AddField(
            model_name="payment",
            name="payout_key_attempt",
            field=models.PositiveSmallIntegerField(
                default=1,
                help_text="Attempt component of the payout idempotency key; advances only after a definitive rejection",
            ),
        ),
    ]
