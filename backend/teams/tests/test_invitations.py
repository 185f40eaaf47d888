from datetime import timedelta

import pytest
from django.db import DatabaseError
from django.urls import reverse

from auditlog.models import Log
from common.exceptions import Conflict, NotFound, ValidationFailed
from identity.models import Role
from teams.models import InvitationStatus, Team, TeamInvitation, TeamMember
from teams.services import invitations as svc

pytestmark = pytest.mark.django_db


@pytest.fixture
def team(manager):
    return Team.objects.create(name="Field team", manager=manager)


def invite(manager, team, target, **extra):
    return svc.send_invitation(team=team, target_user_id=target.pk, invited_by=manager, **extra)


# --------------------------
# State machine
# --------------------------
def test_send_creates_single_pending(manager, team, user):
    invitation = invite(manager, team, user, message="Join us")

    assert invitation.status == InvitationStatus.PENDING
    assert invitation.role == "member"
    assert TeamInvitation.objects.filter(team=team, user=user).count() == 1
    assert Log.objects.filter(action="SEND_TEAM_INVITATION", entity_id=str(invitation.pk)).exists()


def test_second_pending_invite_conflicts(manager, team, user):
    invite(manager, team, user)

    with pytest.raises(Conflict):
        invite(manager, team, user)
    assert TeamInvitation.objects.filter(team=team, user=user, status=InvitationStatus.PENDING).count() == 1


@pytest.mark.parametrize("resolution", ["accepted", "declined", "cancelled"])
def test_reinvite_after_resolution_purges_old_record(manager, team, user, resolution):
    first = invite(manager, team, user)
    if resolution == "cancelled":
        svc.cancel_invitation(invitation_id=first.pk, user=manager)
    else:
        svc.respond_to_invitation(invitation_id=first.pk, user=user, response=resolution)
    if resolution == "accepted":
        # membership has to go before the pair can be invited again
        TeamMember.objects.filter(team=team, user=user).delete()

    second = invite(manager, team, user)

    pairs = TeamInvitation.objects.filter(team=team, user=user)
    assert list(pairs.values_list("pk", flat=True)) == [second.pk]
    assert pairs.get().status == InvitationStatus.PENDING


def test_invite_existing_member_conflicts(manager, team, user):
    TeamMember.objects.create(team=team, user=user)
    with pytest.raises(Conflict):
        invite(manager, team, user)


def test_only_consultants_can_be_invited(manager, team, make_user):
    pm = make_user(role=Role.PROJECT_MANAGER)
    with pytest.raises(ValidationFailed):
        invite(manager, team, pm)


def test_accept_creates_membership(manager, team, user):
    invitation = invite(manager, team, user, role="analyst")

    result = svc.respond_to_invitation(invitation_id=invitation.pk, user=user, response="accepted")

    assert result.status == InvitationStatus.ACCEPTED
    assert result.responded_at is not None
    member = TeamMember.objects.get(team=team, user=user)
    assert member.role == "analyst"
    # invitation stays as history
    assert TeamInvitation.objects.filter(pk=invitation.pk).exists()
    assert Log.objects.filter(action="ACCEPT_TEAM_INVITATION").exists()


def test_accept_is_atomic(manager, team, user, monkeypatch):
    invitation = invite(manager, team, user)

    def fail(*args, **kwargs):
        raise DatabaseError("insert failed")

    monkeypatch.setattr(TeamMember.objects, "get_or_create", fail)
    with pytest.raises(DatabaseError):
        svc.respond_to_invitation(invitation_id=invitation.pk, user=user, response="accepted")

    invitation.refresh_from_db()
    assert invitation.status == InvitationStatus.PENDING
    assert not TeamMember.objects.filter(team=team, user=user).exists()


def test_only_pending_invitations_move(manager, team, user):
    invitation = invite(manager, team, user)
    svc.respond_to_invitation(invitation_id=invitation.pk, user=user, response="declined")

    with pytest.raises(NotFound):
        svc.respond_to_invitation(invitation_id=invitation.pk, user=user, response="accepted")
    with pytest.raises(NotFound):
        svc.cancel_invitation(invitation_id=invitation.pk, user=manager)
    invitation.refresh_from_db()
    assert invitation.status == InvitationStatus.DECLINED


def test_only_invitee_can_respond(manager, team, user, other_user):
    invitation = invite(manager, team, user)
    with pytest.raises(NotFound):
        svc.respond_to_invitation(invitation_id=invitation.pk, user=other_user, response="accepted")


def test_bad_response_value(manager, team, user):
    invitation = invite(manager, team, user)
    with pytest.raises(ValidationFailed):
        svc.respond_to_invitation(invitation_id=invitation.pk, user=user, response="maybe")


# --------------------------
# HTTP surface
# --------------------------
def test_consultant_cannot_manage_teams(client_for, user):
    client = client_for(user)
    assert client.post(reverse("team-list"), {"name": "Mine"}, format="json").status_code == 403
    assert client.get(reverse("team-list")).status_code == 403
    assert client.get(reverse("team-member-teams")).status_code == 200


def test_team_crud_by_manager(client_for, manager, make_user):
    client = client_for(manager)
    resp = client.post(reverse("team-list"), {"name": "Outreach", "description": "East region"}, format="json")
    assert resp.status_code == 201
    team_id = resp.json()["data"]["team"]["id"]

    resp = client.patch(reverse("team-detail", args=[team_id]), {"status": "inactive"}, format="json")
    assert resp.status_code == 200
    assert Team.objects.get(pk=team_id).status == "inactive"

    other_manager = make_user(role=Role.PROJECT_MANAGER)
    resp = client_for(other_manager).patch(reverse("team-detail", args=[team_id]), {"name": "Mine"}, format="json")
    assert resp.status_code == 404

    listed = client.get(reverse("team-list")).json()["data"]
    assert listed["total"] == 1
    assert {"CREATE_TEAM", "UPDATE_TEAM"} <= set(Log.objects.values_list("action", flat=True))


def test_invitation_flow_over_http(client_for, manager, team, user):
    mgr, invitee = client_for(manager), client_for(user)

    resp = mgr.post(reverse("team-invitation-list"), {"team": str(team.pk), "user": str(user.pk)}, format="json")
    assert resp.status_code == 201
    invitation_id = resp.json()["data"]["invitation"]["id"]

    dup = mgr.post(reverse("team-invitation-list"), {"team": str(team.pk), "user": str(user.pk)}, format="json")
    assert dup.status_code == 409
    assert dup.json()["success"] is False

    received = invitee.get(reverse("team-invitation-received")).json()["data"]["invitations"]
    assert [i["id"] for i in received] == [invitation_id]
    sent = mgr.get(reverse("team-invitation-sent"), {"team": str(team.pk)}).json()["data"]["invitations"]
    assert [i["id"] for i in sent] == [invitation_id]

    resp = invitee.post(reverse("team-invitation-respond", args=[invitation_id]), {"response": "accepted"}, format="json")
    assert resp.status_code == 200
    assert resp.json()["message"] == "You have joined the team!"

    members = mgr.get(reverse("team-members", args=[team.pk])).json()["data"]["members"]
    assert [m["user"]["id"] for m in members] == [str(user.pk)]

    mine = invitee.get(reverse("team-member-teams")).json()["data"]
    assert mine["total"] == 1
    assert mine["teams"][0]["my_role"] == "member"

    resp = mgr.delete(reverse("team-remove-member", args=[team.pk, user.pk]))
    assert resp.status_code == 200
    assert not TeamMember.objects.filter(team=team, user=user).exists()
    assert Log.objects.filter(action="REMOVE_TEAM_MEMBER").exists()


def test_cancel_over_http(client_for, manager, team, user, make_user):
    invitation = invite(manager, team, user)
    stranger = make_user(role=Role.PROJECT_MANAGER)

    assert client_for(stranger).delete(reverse("team-invitation-detail", args=[invitation.pk])).status_code == 404
    resp = client_for(manager).delete(reverse("team-invitation-detail", args=[invitation.pk]))
    assert resp.status_code == 200
    invitation.refresh_from_db()
    assert invitation.status == InvitationStatus.CANCELLED
    assert Log.objects.filter(action="CANCEL_TEAM_INVITATION").exists()


def test_invite_unknown_user_is_not_found(client_for, manager, team):
    resp = client_for(manager).post(
        reverse("team-invitation-list"),
        {"team": str(team.pk), "user": "0b7e1c53-5a3c-4f43-a0f1-2c4f0d7d6b1e"},
        format="json",
    )
    assert resp.status_code == 404


def test_available_members(client_for, manager, team, make_user):
    free = make_user(first_name="Nadia")
    member = make_user()
    invited = make_user()
    make_user(role=Role.PROJECT_MANAGER)
    make_user(is_active=False)
    TeamMember.objects.create(team=team, user=member)
    invite(manager, team, invited)

    resp = client_for(manager).get(reverse("team-available-members"))
    ids = {u["id"] for u in resp.json()["data"]["users"]}
    assert ids == {str(free.pk)}

    resp = client_for(manager).get(reverse("team-available-members"), {"q": "nad"})
    assert [u["id"] for u in resp.json()["data"]["users"]] == [str(free.pk)]


# --------------------------
# Malformed ids
# --------------------------
DASHES = "-" * 36


def test_malformed_ids_are_not_found(client_for, manager, user, team):
    mgr = client_for(manager)

    resp = client_for(user).post(f"/api/teams/invitations/{DASHES}/respond", {"response": "accepted"}, format="json")
    assert resp.status_code == 404
    assert mgr.get(f"/api/teams/{DASHES}/members").status_code == 404
    assert mgr.delete(f"/api/teams/invitations/{DASHES}").status_code == 404

    resp = mgr.get(reverse("team-invitation-sent"), {"team": "not-a-uuid"})
    assert resp.status_code == 404
    assert resp.json()["success"] is False


def test_services_reject_malformed_ids(manager, user):
    with pytest.raises(NotFound):
        svc.managed_team(DASHES, manager)
    with pytest.raises(NotFound):
        svc.respond_to_invitation(invitation_id="nope", user=user, response="accepted")
    with pytest.raises(NotFound):
        svc.cancel_invitation(invitation_id=DASHES, user=manager)


# --------------------------
# my-team
# --------------------------
def test_my_team_returns_first_managed_team(client_for, manager, team, user):
    second = Team.objects.create(name="Second team", manager=manager)
    Team.objects.filter(pk=second.pk).update(created_at=team.created_at + timedelta(minutes=1))

    data = client_for(manager).get(reverse("team-my-team")).json()["data"]
    assert data["hasTeam"] is True
    assert data["team"]["id"] == str(team.pk)

    assert client_for(user).get(reverse("team-my-team")).status_code == 403


def test_my_team_without_team(client_for, make_user):
    newcomer = make_user(role=Role.PROJECT_MANAGER)
    data = client_for(newcomer).get(reverse("team-my-team")).json()["data"]
    assert data == {"team": None, "hasTeam": False}
