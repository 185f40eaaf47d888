from django.contrib import admin
from django.http import JsonResponse
from django.urls import include, path
from django.views.generic import RedirectView
from drf_spectacular.views import SpectacularAPIView, SpectacularSwaggerView


def root(_r):
    return JsonResponse({
        "service": "tili-backend",
        "docs": "/api/docs",
        "health": "/api/core/healthz",
    })


urlpatterns = [
    path("admin", RedirectView.as_view(url="/admin/", permanent=False)),
    path("admin/", admin.site.urls),

    # API docs
    path("api/schema", SpectacularAPIView.as_view(), name="schema"),
    path("api/docs", SpectacularSwaggerView.as_view(url_name="schema"), name="swagger-ui"),

    path("api/core/", include("core.urls")),
    path("api/", include("identity.urls")),
    path("api/", include("projects.urls")),
    path("api/", include("teams.urls")),
    path("api/", include("comments.urls")),

    path("", root),
]
