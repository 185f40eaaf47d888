from django.conf import settings
from django.http import JsonResponse
from django.utils import timezone

from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from .health import PROBES, run_checks


def healthz(_request):
    return JsonResponse({"ok": True})


class VersionView(APIView):
    permission_classes = [AllowAny]

    def get(self, _):
        version = getattr(settings, "VERSION", None) or settings.SPECTACULAR_SETTINGS.get("VERSION") or "dev"
        return Response({
            "ok": True,
            "version": str(version),
            "debug": bool(settings.DEBUG),
            "time": timezone.now().isoformat(),
        })


class WhoAmIView(APIView):
    permission_classes = [AllowAny]  # allow anonymous; returns minimal info

    def get(self, request):
        user = request.user
        if not user.is_authenticated:
            return Response({"is_authenticated": False})
        return Response({
            "is_authenticated": True,
            "user_id": str(user.pk),
            "email": user.email,
            "display_name": user.display_name,
            "role": user.role,
            "is_admin": user.is_admin,
        })


class DeepHealthView(APIView):
    """
    GET /api/core/deep-health?db=1&cache=1
    Return component statuses. All checks optional.
    """
    permission_classes = [AllowAny]

    def get(self, request):
        wanted = [name for name in PROBES if request.query_params.get(name) == "1"]
        ok, checks = run_checks(wanted)
        body = {"ok": ok, "time": timezone.now().isoformat(), **checks}
        return Response(body, status=200 if ok else 503)
