"""
URL configuration for the offers API.

All routes are prefixed with /api/v1/offers/ in config/urls.py.
See offers.views for the endpoint list.
"""

from rest_framework.routers import DefaultRouter

from offers.views import OfferViewSet

app_name = "offers"

router = DefaultRouter()
router.register(r"", OfferViewSet, basename="offer")

urlpatterns = router.urls
