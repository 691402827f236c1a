"""
URL configuration for the Django application.

URL Structure:
    /                              - ReDoc API documentation
    /admin/                        - Django admin interface
    /health/                       - Health check endpoint (for load balancers, Docker)
    /schema/                       - OpenAPI schema (YAML)
    /api/v1/auth/token/            - Obtain JWT pair (email + password)
    /api/v1/auth/token/refresh/    - Refresh access token
    /api/v1/offers/                - Offers, negotiation and cancellation
        {id}/withdraw/             - Provider withdraws a pending offer
        {id}/accept/               - Seeker accepts an agreed offer
        {id}/reject/               - Seeker rejects a pending offer
        {id}/negotiation/          - Update negotiation terms (PATCH)
        {id}/negotiation/confirm/  - Confirm current terms
        {id}/negotiation/reset/    - Clear confirmations
        {id}/negotiation/history/  - Negotiation log
        {id}/cancel/               - Cancel engagement with tiered refund
    /api/v1/payments/              - Payment endpoints
        escrow/                    - Create escrow checkout session
        {id}/                      - Payment detail
        {id}/release/              - Release escrow to the provider
        status/{conversation_id}/  - Poll payment status
        mine/                      - Current user's payments
        stats/                     - Payment totals by role
        webhooks/stripe/           - Stripe webhook endpoint (POST)

WebSocket routes live in notifications.routing (see config.asgi).
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from core.views import health_check

# =============================================================================
# API v1 Routes
# =============================================================================
api_v1_patterns = [
    # Authentication (simplejwt)
    path("auth/token/", TokenObtainPairView.as_view(), name="token_obtain_pair"),
    path("auth/token/refresh/", TokenRefreshView.as_view(), name="token_refresh"),
    # Offers
    path("offers/", include("offers.urls")),
    # Payments
    path("payments/", include("payments.urls")),
]

urlpatterns = [
    # Documentation
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    # Admin
    path("admin/", admin.site.urls),
    # Health check (Docker, Kubernetes, load balancers)
    path("health/", health_check, name="health_check"),
    # API v1
    path("api/v1/", include(api_v1_patterns)),
]

# =============================================================================
# Admin Site Customization
# =============================================================================
admin.site.site_header = "Settlement Admin"
admin.site.site_title = "Settlement Admin"
admin.site.index_title = "Offers, payments and webhooks"
