"""
URL configuration for the payments app.

All routes are prefixed with /api/v1/payments/ in config/urls.py.

Routes:
    - POST webhooks/stripe/ - Stripe webhook receiver (no auth, signature checked)
    - PaymentViewSet routes (see payments.views)
"""

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from payments.views import PaymentViewSet
from payments.webhooks.views import stripe_webhook

app_name = "payments"

router = DefaultRouter()
router.register(r"", PaymentViewSet, basename="payment")

urlpatterns = [
    path("webhooks/stripe/", stripe_webhook, name="stripe_webhook"),
    path("", include(router.urls)),
]
