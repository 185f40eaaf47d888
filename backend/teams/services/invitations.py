"""
Team invitation state machine.

    pending -> accepted   (invitee; creates the TeamMember row)
    pending -> declined   (invitee)
    pending -> cancelled  (team manager)

Only a pending invitation moves. A (team, user) pair holds at most one
pending invitation; older resolved ones are purged when the pair is
invited again.
"""
from __future__ import annotations

import logging
from typing import Optional

from django.contrib.auth import get_user_model
from django.db import transaction
from django.utils import timezone

from auditlog.services.audit import EMPTY_CONTEXT, RequestContext, record
from common.exceptions import Conflict, NotFound, ValidationFailed
from common.ids import parse_uuid
from common.permissions import is_admin
from identity.models import Role
from teams.models import (
    DEFAULT_MEMBER_ROLE,
    TERMINAL_STATUSES,
    InvitationStatus,
    Team,
    TeamInvitation,
    TeamMember,
)

logger = logging.getLogger(__name__)

RESPONSES = (InvitationStatus.ACCEPTED, InvitationStatus.DECLINED)
TEAM_NOT_FOUND = "Team not found or you are not the manager."
INVITATION_NOT_FOUND = "Invitation not found or already responded."


def _invitation_snapshot(invitation: TeamInvitation) -> dict:
    return {
        "team": invitation.team_id,
        "user": invitation.user_id,
        "role": invitation.role,
        "status": invitation.status,
    }


def managed_team(team_id, user) -> Team:
    """The team `team_id` if `user` manages it (admins manage every team)."""
    qs = Team.objects.filter(pk=parse_uuid(team_id, TEAM_NOT_FOUND))
    if not is_admin(user):
        qs = qs.filter(manager=user)
    team = qs.first()
    if team is None:
        raise NotFound(TEAM_NOT_FOUND)
    return team


def send_invitation(*, team: Team, target_user_id, invited_by, role: Optional[str] = None,
                    message: str = "", context: RequestContext = EMPTY_CONTEXT) -> TeamInvitation:
    User = get_user_model()
    target = User.objects.filter(pk=parse_uuid(target_user_id, "User not found.")).first()
    if target is None:
        raise NotFound("User not found.")
    if target.role != Role.CONSULTANT:
        raise ValidationFailed("Only consultants can be invited to teams.", errors={"user": "Must be a consultant."})

    with transaction.atomic():
        if TeamMember.objects.filter(team=team, user=target).exists():
            raise Conflict("User is already a member of this team.")
        if TeamInvitation.objects.filter(team=team, user=target, status=InvitationStatus.PENDING).exists():
            raise Conflict("An invitation is already pending for this user in this team.")

        purged, _ = TeamInvitation.objects.filter(
            team=team, user=target, status__in=TERMINAL_STATUSES
        ).delete()
        if purged:
            logger.debug("Purged %s resolved invitation(s) for %s in team %s", purged, target.pk, team.pk)

        invitation = TeamInvitation.objects.create(
            team=team,
            user=target,
            invited_by=invited_by,
            role=role or DEFAULT_MEMBER_ROLE,
            message=message or "",
        )

    record(
        action="SEND_TEAM_INVITATION",
        description=f"Invited {target.email} to team {team.name}",
        entity_type="team_invitation",
        entity_id=invitation.pk,
        new_value=_invitation_snapshot(invitation),
        performed_by=invited_by,
        context=context,
    )
    return invitation


def respond_to_invitation(*, invitation_id, user, response: str,
                          context: RequestContext = EMPTY_CONTEXT) -> TeamInvitation:
    if response not in RESPONSES:
        raise ValidationFailed(
            'Response must be "accepted" or "declined".',
            errors={"response": 'Must be "accepted" or "declined".'},
        )

    # status change and membership row commit together
    with transaction.atomic():
        invitation = (
            TeamInvitation.objects.select_for_update()
            .filter(pk=parse_uuid(invitation_id, INVITATION_NOT_FOUND), user=user, status=InvitationStatus.PENDING)
            .first()
        )
        if invitation is None:
            raise NotFound(INVITATION_NOT_FOUND)

        old = _invitation_snapshot(invitation)
        invitation.status = response
        invitation.responded_at = timezone.now()
        invitation.save(update_fields=["status", "responded_at", "updated_at"])

        if response == InvitationStatus.ACCEPTED:
            TeamMember.objects.get_or_create(
                team_id=invitation.team_id,
                user=user,
                defaults={"role": invitation.role, "joined_at": invitation.responded_at},
            )

    verb = "ACCEPT" if response == InvitationStatus.ACCEPTED else "DECLINE"
    record(
        action=f"{verb}_TEAM_INVITATION",
        description=f"{user.email} {response} invitation to team {invitation.team_id}",
        entity_type="team_invitation",
        entity_id=invitation.pk,
        old_value=old,
        new_value=_invitation_snapshot(invitation),
        performed_by=user,
        context=context,
    )
    return invitation


def cancel_invitation(*, invitation_id, user, context: RequestContext = EMPTY_CONTEXT) -> TeamInvitation:
    qs = TeamInvitation.objects.filter(
        pk=parse_uuid(invitation_id, INVITATION_NOT_FOUND), status=InvitationStatus.PENDING
    )
    if not is_admin(user):
        qs = qs.filter(team__manager=user)

    with transaction.atomic():
        invitation = qs.select_for_update().first()
        if invitation is None:
            raise NotFound(INVITATION_NOT_FOUND)
        old = _invitation_snapshot(invitation)
        invitation.status = InvitationStatus.CANCELLED
        invitation.responded_at = timezone.now()
        invitation.save(update_fields=["status", "responded_at", "updated_at"])

    record(
        action="CANCEL_TEAM_INVITATION",
        description=f"Invitation to team {invitation.team_id} cancelled",
        entity_type="team_invitation",
        entity_id=invitation.pk,
        old_value=old,
        new_value=_invitation_snapshot(invitation),
        performed_by=user,
        context=context,
    )
    return invitation
