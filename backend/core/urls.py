from django.urls import path

from .views import DeepHealthView, VersionView, WhoAmIView, healthz

urlpatterns = [
    path("healthz", healthz, name="core-healthz"),
    path("version", VersionView.as_view(), name="core-version"),
    path("whoami", WhoAmIView.as_view(), name="core-whoami"),
    path("deep-health", DeepHealthView.as_view(), name="core-deep-health"),
]
