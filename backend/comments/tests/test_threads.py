from datetime import timedelta

import pytest
from django.db import DatabaseError
from django.urls import reverse
from django.utils import timezone

from auditlog.models import Log
from comments.models import Comment
from comments.registry import EntityType, resolve
from common.exceptions import InvalidEntityType, NotFound
from projects.models import Meeting, Task

pytestmark = pytest.mark.django_db

COMMENTS_URL = "/api/comments"


def thread_url(entity_type, entity_id):
    return f"/api/comments/{entity_type}/{entity_id}"


def detail_url(comment_id):
    return f"/api/comments/{comment_id}"


def post_comment(client, entity_type, entity_id, text, parent=None):
    payload = {"entityType": entity_type, "entityId": str(entity_id), "comment": text}
    if parent is not None:
        payload["parentId"] = str(parent)
    return client.post(COMMENTS_URL, payload, format="json")


# --------------------------
# Registry
# --------------------------
def test_resolve_returns_backing_record(project):
    assert resolve("project", project.pk) == project
    assert resolve(EntityType.PROJECT, str(project.pk)) == project


def test_resolve_rejects_unknown_kind_before_lookup(django_assert_num_queries):
    with django_assert_num_queries(0):
        with pytest.raises(InvalidEntityType):
            resolve("invoice", "not-even-an-id")


def test_resolve_missing_record(project):
    with pytest.raises(NotFound):
        resolve("task", project.pk)
    with pytest.raises(NotFound):
        resolve("meeting", "garbage")


# --------------------------
# Create / list
# --------------------------
@pytest.mark.parametrize("kind", ["invoice", "Project", "user_profile"])
def test_unknown_entity_type_is_rejected(client_for, user, project, kind):
    client = client_for(user)

    resp = post_comment(client, kind, project.pk, "hello")
    assert resp.status_code == 400
    assert resp.json()["code"] == "invalid_entity_type"

    resp = client.get(thread_url(kind, project.pk))
    assert resp.status_code == 400
    assert resp.json()["code"] == "invalid_entity_type"
    assert Comment.objects.count() == 0


def test_comment_on_missing_entity_is_not_found(client_for, user, project):
    resp = post_comment(client_for(user), "task", project.pk, "orphan")
    assert resp.status_code == 404
    assert client_for(user).get(thread_url("document", project.pk)).status_code == 404


def test_create_returns_author_and_logs(client_for, user, project):
    resp = post_comment(client_for(user), "project", project.pk, "  nice work  ")

    assert resp.status_code == 201
    body = resp.json()
    assert body["success"] is True
    comment = body["data"]["comment"]
    assert comment["comment"] == "nice work"
    assert comment["parentId"] is None
    assert comment["user"] == {"id": str(user.pk), "display_name": user.display_name, "email": user.email}

    log = Log.objects.get(action="CREATE_COMMENT")
    assert log.entity_type == "comment"
    assert log.entity_id == comment["id"]
    assert log.new_value == {"entityType": "project", "entityId": str(project.pk), "parentId": None}
    assert log.performed_by == user


def test_blank_or_oversized_comment_is_rejected(client_for, user, project, settings):
    settings.COMMENT_MAX_LENGTH = 20
    client = client_for(user)

    resp = post_comment(client, "project", project.pk, "   ")
    assert resp.status_code == 400
    assert "comment" in resp.json()["errors"]

    resp = post_comment(client, "project", project.pk, "x" * 21)
    assert resp.status_code == 400
    assert post_comment(client, "project", project.pk, "x" * 20).status_code == 201


def test_missing_fields_are_listed(client_for, user):
    resp = client_for(user).post(COMMENTS_URL, {}, format="json")

    assert resp.status_code == 400
    assert set(resp.json()["errors"]) == {"entityType", "entityId", "comment"}


def test_comments_work_on_every_entity_kind(client_for, user, project):
    task = Task.objects.create(project=project, title="Survey", created_by=user)
    meeting = Meeting.objects.create(
        project=project, title="Kickoff", meeting_date=timezone.now(), created_by=user
    )
    client = client_for(user)
    assert post_comment(client, "task", task.pk, "on task").status_code == 201
    assert post_comment(client, "meeting", meeting.pk, "on meeting").status_code == 201
    assert client.get(thread_url("task", task.pk)).json()["data"]["total"] == 1


def test_reply_must_target_same_entity(client_for, user, project):
    task = Task.objects.create(project=project, title="Survey", created_by=user)
    client = client_for(user)
    parent_id = post_comment(client, "project", project.pk, "top").json()["data"]["comment"]["id"]

    resp = post_comment(client, "task", task.pk, "sneaky reply", parent=parent_id)
    assert resp.status_code == 400
    assert resp.json()["code"] == "invalid_reference"

    resp = post_comment(client, "project", project.pk, "proper reply", parent=parent_id)
    assert resp.status_code == 201
    reply = Comment.objects.get(body="proper reply")
    parent = Comment.objects.get(pk=parent_id)
    assert (reply.entity_type, reply.entity_id) == (parent.entity_type, parent.entity_id)


def test_reply_to_missing_parent_is_not_found(client_for, user, project):
    other = Comment.objects.create(entity_type="project", entity_id=project.pk, user=user, body="x")
    other_id = other.pk
    other.delete()

    resp = post_comment(client_for(user), "project", project.pk, "reply", parent=other_id)
    assert resp.status_code == 404


def test_listing_order_and_counts(client_for, user, other_user, project):
    now = timezone.now()
    t1, t2, t3 = (Comment.objects.create(entity_type="project", entity_id=project.pk, user=user, body=b)
                  for b in ("t1", "t2", "t3"))
    r1 = Comment.objects.create(entity_type="project", entity_id=project.pk, user=other_user, body="r1", parent=t1)
    r2 = Comment.objects.create(entity_type="project", entity_id=project.pk, user=user, body="r2", parent=t1)
    for offset, c in enumerate((t1, t2, t3, r1, r2)):
        Comment.objects.filter(pk=c.pk).update(created_at=now + timedelta(minutes=offset))

    resp = client_for(other_user).get(thread_url("project", project.pk))

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert [c["comment"] for c in data["comments"]] == ["t3", "t2", "t1"]
    assert [r["comment"] for r in data["comments"][2]["replies"]] == ["r1", "r2"]
    assert data["comments"][2]["replies"][0]["user"]["id"] == str(other_user.pk)
    assert data["total"] == 5
    assert data["topLevel"] == 3


# --------------------------
# Update / delete
# --------------------------
def test_only_author_can_update(client_for, user, other_user, admin_user, project):
    comment = Comment.objects.create(entity_type="project", entity_id=project.pk, user=user, body="draft")

    for intruder in (other_user, admin_user):
        resp = client_for(intruder).put(detail_url(comment.pk), {"comment": "rewritten"}, format="json")
        assert resp.status_code == 403
    comment.refresh_from_db()
    assert comment.body == "draft"

    resp = client_for(user).put(detail_url(comment.pk), {"comment": "final"}, format="json")
    assert resp.status_code == 200
    assert resp.json()["data"]["comment"]["comment"] == "final"
    log = Log.objects.get(action="UPDATE_COMMENT")
    assert log.old_value == {"comment": "draft"}
    assert log.new_value == {"comment": "final"}


def test_update_missing_comment(client_for, user):
    resp = client_for(user).put(detail_url("4c8b0e6a-7d1f-4b0c-9a51-2f0e2b9d1c11"), {"comment": "x"}, format="json")
    assert resp.status_code == 404


def test_delete_rights(client_for, user, other_user, admin_user, project):
    mine = Comment.objects.create(entity_type="project", entity_id=project.pk, user=user, body="a")
    moderated = Comment.objects.create(entity_type="project", entity_id=project.pk, user=user, body="b")

    assert client_for(other_user).delete(detail_url(mine.pk)).status_code == 403
    assert client_for(user).delete(detail_url(mine.pk)).status_code == 200
    assert client_for(admin_user).delete(detail_url(moderated.pk)).status_code == 200
    assert Comment.objects.count() == 0


def test_delete_cascades_to_replies(client_for, user, other_user, project):
    parent = Comment.objects.create(entity_type="project", entity_id=project.pk, user=user, body="top")
    for i in range(3):
        Comment.objects.create(entity_type="project", entity_id=project.pk, user=other_user, body=f"r{i}", parent=parent)

    resp = client_for(user).delete(detail_url(parent.pk))

    assert resp.status_code == 200
    assert Comment.objects.count() == 0
    data = client_for(user).get(thread_url("project", project.pk)).json()["data"]
    assert data["comments"] == []
    assert data["total"] == 0
    log = Log.objects.get(action="DELETE_COMMENT")
    assert log.old_value["repliesCount"] == 3
    assert log.old_value["comment"] == "top"
    assert log.old_value["entityId"] == str(project.pk)


# --------------------------
# Audit is best-effort
# --------------------------
def test_audit_failure_does_not_fail_comment_operations(client_for, user, project, monkeypatch):
    def boom(*args, **kwargs):
        raise DatabaseError("audit store unavailable")

    monkeypatch.setattr(Log.objects, "create", boom)
    client = client_for(user)

    resp = post_comment(client, "project", project.pk, "still works")
    assert resp.status_code == 201
    comment_id = resp.json()["data"]["comment"]["id"]

    assert client.put(detail_url(comment_id), {"comment": "edited"}, format="json").status_code == 200
    assert Comment.objects.get(pk=comment_id).body == "edited"

    assert client.delete(detail_url(comment_id)).status_code == 200
    assert not Comment.objects.filter(pk=comment_id).exists()
    assert Log.objects.count() == 0


# --------------------------
# Per-user listing
# --------------------------
def test_recent_comments_for_user(client_for, user, other_user, project):
    now = timezone.now()
    for i in range(12):
        c = Comment.objects.create(entity_type="project", entity_id=project.pk, user=user, body=f"c{i}")
        Comment.objects.filter(pk=c.pk).update(created_at=now + timedelta(seconds=i))
    Comment.objects.create(entity_type="project", entity_id=project.pk, user=other_user, body="not mine")

    client = client_for(other_user)
    data = client.get(reverse("comment-by-user", args=[user.pk])).json()["data"]
    assert [c["comment"] for c in data["comments"]] == [f"c{i}" for i in range(11, 1, -1)]

    data = client.get(reverse("comment-by-user", args=[user.pk]), {"limit": 3}).json()["data"]
    assert [c["comment"] for c in data["comments"]] == ["c11", "c10", "c9"]


def test_comments_require_authentication(api_client, project):
    resp = api_client.get(thread_url("project", project.pk))
    assert resp.status_code == 401
    assert resp.json()["success"] is False


# --------------------------
# Walkthrough
# --------------------------
def test_thread_walkthrough(client_for, make_user, project):
    author, replier = make_user(), make_user()
    a, b = client_for(author), client_for(replier)

    resp = post_comment(a, "project", project.pk, "nice work")
    assert resp.status_code == 201
    first_id = resp.json()["data"]["comment"]["id"]

    resp = post_comment(b, "project", project.pk, "thanks", parent=first_id)
    assert resp.status_code == 201

    data = a.get(thread_url("project", project.pk)).json()["data"]
    assert data["total"] == 2
    assert data["topLevel"] == 1
    assert len(data["comments"]) == 1
    assert [r["comment"] for r in data["comments"][0]["replies"]] == ["thanks"]

    assert b.put(detail_url(first_id), {"comment": "mine now"}, format="json").status_code == 403

    assert a.delete(detail_url(first_id)).status_code == 200
    data = a.get(thread_url("project", project.pk)).json()["data"]
    assert data["comments"] == []
    assert data["total"] == 0


def test_recent_comments_for_unknown_user_is_not_found(client_for, user):
    client = client_for(user)
    assert client.get(reverse("comment-by-user", args=["0b7e1c53-5a3c-4f43-a0f1-2c4f0d7d6b1e"])).status_code == 404
    assert client.get(reverse("comment-by-user", args=["not-a-uuid"])).status_code == 404


def test_reply_to_a_reply_joins_the_top_level_thread(client_for, user, other_user, project):
    a, b = client_for(user), client_for(other_user)
    top_id = post_comment(a, "project", project.pk, "top").json()["data"]["comment"]["id"]
    reply_id = post_comment(b, "project", project.pk, "reply", parent=top_id).json()["data"]["comment"]["id"]

    resp = post_comment(a, "project", project.pk, "reply to reply", parent=reply_id)

    assert resp.status_code == 201
    assert resp.json()["data"]["comment"]["parentId"] == top_id
    data = a.get(thread_url("project", project.pk)).json()["data"]
    assert data["topLevel"] == 1
    assert [r["comment"] for r in data["comments"][0]["replies"]] == ["reply", "reply to reply"]
