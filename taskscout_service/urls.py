"""URL configuration for the TaskScout service."""
from django.conf import settings
from django.conf.urls.static import static
from django.urls import include, path

urlpatterns = [
    path("api/", include("accounts.urls")),
    path("api/", include("marketplace.urls")),
    path("api/", include("billing.urls")),
    path("api/", include("tickets.urls")),
] + static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)
