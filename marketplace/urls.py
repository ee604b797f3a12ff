"""Route registration for marketplace endpoints."""
from __future__ import annotations

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import BidViewSet, MarketplaceTicketViewSet, VendorBidViewSet

router = DefaultRouter()
router.register("marketplace/tickets", MarketplaceTicketViewSet, basename="marketplace-ticket")
router.register("marketplace/vendor-bids", VendorBidViewSet, basename="vendor-bid")
router.register("marketplace/bids", BidViewSet, basename="bid")

urlpatterns = [
    path("", include(router.urls)),
]
