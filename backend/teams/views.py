import logging

from django.contrib.auth import get_user_model
from django.db.models import Q
from rest_framework import viewsets
from rest_framework.decorators import action

from auditlog.services.audit import record, request_context, snapshot
from common.exceptions import NotFound
from common.ids import UUID_RE
from common.mixins import ScopedModelViewSet
from common.permissions import RolePolicy
from common.responses import created, ok
from identity.models import Role
from identity.serializers import UserSerializer

from .models import InvitationStatus, Team, TeamInvitation, TeamMember
from .serializers import (
    RespondSerializer,
    SendInvitationSerializer,
    TeamInvitationSerializer,
    TeamMemberSerializer,
    TeamSerializer,
)
from .services.invitations import (
    cancel_invitation,
    managed_team,
    respond_to_invitation,
    send_invitation,
)

User = get_user_model()
logger = logging.getLogger(__name__)

TEAM_AUDIT_FIELDS = ("name", "description", "status", "manager_id")
AVAILABLE_MEMBERS_LIMIT = 20


def _team_queryset():
    return Team.objects.select_related("manager").prefetch_related("members__user")


class TeamViewSet(ScopedModelViewSet):
    """
    /api/teams

    Managers (project_manager or admin) create and run teams. Anyone can
    list the teams they belong to through `member-teams`.
    """
    serializer_class = TeamSerializer
    permission_classes = (RolePolicy,)
    lookup_value_regex = UUID_RE
    http_method_names = ["get", "post", "put", "patch", "delete", "head", "options"]
    policy_map = {
        "list": "team.list_managed",
        "my_team": "team.my_team",
        "create": "team.create",
        "update": "team.update",
        "partial_update": "team.update",
        "members": "team.members",
        "remove_member": "team.remove_member",
        "available_members": "team.available_members",
    }

    def get_queryset(self):
        user = self.request.user
        qs = _team_queryset()
        if self.action == "retrieve":
            return qs.filter(Q(manager=user) | Q(members__user=user)).distinct()
        return qs.filter(manager=user)

    def list(self, request, *args, **kwargs):
        teams = self.get_queryset().order_by("-created_at")
        data = TeamSerializer(teams, many=True).data
        return ok({"teams": data, "total": len(data)})

    def create(self, request, *args, **kwargs):
        serializer = TeamSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        team = serializer.save(manager=request.user)
        record(
            action="CREATE_TEAM",
            description=f"Team created: {team.name}",
            entity_type="team",
            entity_id=team.pk,
            new_value=snapshot(team, TEAM_AUDIT_FIELDS),
            performed_by=request.user,
            context=request_context(request),
        )
        return created({"team": TeamSerializer(team).data}, message="Team created successfully")

    def update(self, request, *args, **kwargs):
        team = managed_team(kwargs.get(self.lookup_field), request.user)
        old = snapshot(team, TEAM_AUDIT_FIELDS)
        serializer = TeamSerializer(team, data=request.data, partial=kwargs.get("partial", False))
        serializer.is_valid(raise_exception=True)
        team = serializer.save()
        record(
            action="UPDATE_TEAM",
            description=f"Team updated: {team.name}",
            entity_type="team",
            entity_id=team.pk,
            old_value=old,
            new_value=snapshot(team, TEAM_AUDIT_FIELDS),
            performed_by=request.user,
            context=request_context(request),
        )
        return ok({"team": TeamSerializer(team).data}, message="Team updated successfully")

    def destroy(self, request, *args, **kwargs):
        # teams are archived through status, never deleted
        return self.http_method_not_allowed(request, *args, **kwargs)

    @action(detail=False, methods=["get"], url_path="my-team")
    def my_team(self, request):
        """The first team the caller manages, or null."""
        team = _team_queryset().filter(manager=request.user).order_by("created_at").first()
        return ok({"team": TeamSerializer(team).data if team else None, "hasTeam": team is not None})

    @action(detail=False, methods=["get"], url_path="member-teams")
    def member_teams(self, request):
        memberships = (
            TeamMember.objects.filter(user=request.user)
            .select_related("team__manager")
            .prefetch_related("team__members__user")
        )
        teams = []
        for membership in memberships:
            data = TeamSerializer(membership.team).data
            data["my_role"] = membership.role
            teams.append(data)
        return ok({"teams": teams, "total": len(teams)})

    @action(detail=True, methods=["get"])
    def members(self, request, pk=None):
        team = managed_team(pk, request.user)
        members = team.members.select_related("user")
        return ok({"members": TeamMemberSerializer(members, many=True).data})

    @action(detail=True, methods=["delete"], url_path=rf"members/(?P<user_id>{UUID_RE})")
    def remove_member(self, request, pk=None, user_id=None):
        team = managed_team(pk, request.user)
        member = team.members.filter(user_id=user_id).first()
        if member is None:
            raise NotFound("Member not found in this team.")
        record(
            action="REMOVE_TEAM_MEMBER",
            description=f"Member {user_id} removed from team {team.name}",
            entity_type="team",
            entity_id=team.pk,
            old_value={"user": user_id, "role": member.role},
            performed_by=request.user,
            context=request_context(request),
        )
        member.delete()
        return ok(message="Member removed from team successfully")

    @action(detail=False, methods=["get"], url_path="available-members")
    def available_members(self, request):
        """Active consultants in no team and without a pending invitation."""
        busy = set(TeamMember.objects.values_list("user_id", flat=True))
        busy |= set(
            TeamInvitation.objects.filter(status=InvitationStatus.PENDING).values_list("user_id", flat=True)
        )
        busy.add(request.user.pk)

        qs = User.objects.filter(role=Role.CONSULTANT, is_active=True).exclude(pk__in=busy)
        term = request.query_params.get("q")
        if term:
            qs = qs.filter(
                Q(first_name__icontains=term)
                | Q(last_name__icontains=term)
                | Q(email__icontains=term)
                | Q(username__icontains=term)
            )
        users = qs.order_by("first_name", "last_name")[:AVAILABLE_MEMBERS_LIMIT]
        return ok({"users": UserSerializer(users, many=True).data})


class TeamInvitationViewSet(viewsets.GenericViewSet):
    """/api/teams/invitations"""
    queryset = TeamInvitation.objects.all()
    serializer_class = TeamInvitationSerializer
    permission_classes = (RolePolicy,)
    lookup_value_regex = UUID_RE
    policy_map = {
        "create": "team.invite",
        "sent": "team.invitations_sent",
        "destroy": "team.cancel_invitation",
    }

    def _detailed(self, qs):
        return qs.select_related("team", "user", "invited_by").order_by("-created_at")

    def create(self, request):
        serializer = SendInvitationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        team = managed_team(data["team"], request.user)
        invitation = send_invitation(
            team=team,
            target_user_id=data["user"],
            invited_by=request.user,
            role=data.get("role"),
            message=data.get("message", ""),
            context=request_context(request),
        )
        return created(
            {"invitation": TeamInvitationSerializer(invitation).data},
            message="Invitation sent successfully",
        )

    @action(detail=False, methods=["get"])
    def sent(self, request):
        team_id = request.query_params.get("team")
        if team_id:
            qs = TeamInvitation.objects.filter(team=managed_team(team_id, request.user))
        else:
            qs = TeamInvitation.objects.filter(team__manager=request.user)
        return ok({"invitations": TeamInvitationSerializer(self._detailed(qs), many=True).data})

    @action(detail=False, methods=["get"])
    def received(self, request):
        qs = TeamInvitation.objects.filter(user=request.user, status=InvitationStatus.PENDING)
        return ok({"invitations": TeamInvitationSerializer(self._detailed(qs), many=True).data})

    @action(detail=True, methods=["post"])
    def respond(self, request, pk=None):
        serializer = RespondSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        invitation = respond_to_invitation(
            invitation_id=pk,
            user=request.user,
            response=serializer.validated_data["response"],
            context=request_context(request),
        )
        message = (
            "You have joined the team!" if invitation.status == InvitationStatus.ACCEPTED else "Invitation declined"
        )
        return ok({"invitation": TeamInvitationSerializer(invitation).data}, message=message)

    def destroy(self, request, pk=None):
        cancel_invitation(invitation_id=pk, user=request.user, context=request_context(request))
        return ok(message="Invitation cancelled successfully")
