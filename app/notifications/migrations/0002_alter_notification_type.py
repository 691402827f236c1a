from django.db import migrations, models


class Migration(migrations.Migration):

    dependencies = [
        ("notifications", "0001_initial"),
    ]

    operations = [
        migrations.AlterField(
            model_name="notification",
            name="notification_type",
            field=models.CharField(
                choices=[
                    ("offer_received", "Offer Received"),
                    ("offer_accepted", "Offer Accepted"),
                    ("offer_rejected", "Offer Rejected"),
                    ("offer_withdrawn", "Offer Withdrawn"),
                    ("negotiation_updated", "Negotiation Updated"),
                    ("agreement_reached", "Agreement Reached"),
                    ("payment_escrowed", "Payment Escrowed"),
                    ("payment_released", "Payment Released"),
                    ("payment_refunded", "Payment Refunded"),
                    ("payout_failed", "Payout Failed"),
                    ("service_cancelled", "Service Cancelled"),
                ],
                db_index=True,
                max_length=32,
            ),
        ),
    ]
