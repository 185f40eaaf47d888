from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import TeamInvitationViewSet, TeamViewSet

router = DefaultRouter(trailing_slash=False)
# registered first so "invitations" is never read as a team id
router.register(r"teams/invitations", TeamInvitationViewSet, basename="team-invitation")
router.register(r"teams", TeamViewSet, basename="team")

urlpatterns = [
    path("", include(router.urls)),
]
