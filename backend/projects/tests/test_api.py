import pytest
from django.core.files.uploadedfile import SimpleUploadedFile
from django.urls import reverse

from auditlog.models import Log
from projects.models import Document, Project, ProjectMember, ProjectRole, ProjectStatus, Task, TaskStatus

pytestmark = pytest.mark.django_db


def test_create_project_makes_creator_lead(client_for, user):
    resp = client_for(user).post(reverse("project-list"), {"name": "Clinic rollout"}, format="json")

    assert resp.status_code == 201
    project = Project.objects.get(name="Clinic rollout")
    assert project.created_by == user
    assert ProjectMember.objects.get(project=project, user=user).role == ProjectRole.LEAD
    assert Log.objects.filter(action="CREATE_PROJECT", entity_id=str(project.pk)).exists()


def test_project_end_date_before_start_is_rejected(client_for, user):
    payload = {"name": "Backwards", "start_date": "2025-05-10", "end_date": "2025-05-01"}
    resp = client_for(user).post(reverse("project-list"), payload, format="json")

    assert resp.status_code == 400
    assert "end_date" in resp.json()["errors"]


def test_only_lead_or_admin_can_update_project(client_for, project, other_user, admin_user):
    url = reverse("project-detail", args=[project.pk])

    assert client_for(other_user).patch(url, {"name": "Taken over"}, format="json").status_code == 403
    assert client_for(admin_user).patch(url, {"name": "Renamed by admin"}, format="json").status_code == 200
    project.refresh_from_db()
    assert project.name == "Renamed by admin"


def test_global_project_manager_is_not_a_project_lead(client_for, project, manager):
    url = reverse("project-detail", args=[project.pk])
    resp = client_for(manager).patch(url, {"name": "Not mine"}, format="json")
    assert resp.status_code == 403


def test_delete_project_is_soft(client_for, project, user):
    resp = client_for(user).delete(reverse("project-detail", args=[project.pk]))

    assert resp.status_code == 200
    project.refresh_from_db()
    assert project.status == ProjectStatus.CANCELLED
    assert Log.objects.filter(action="DELETE_PROJECT").exists()


def test_list_projects_is_wrapped(client_for, project, other_user):
    resp = client_for(other_user).get(reverse("project-list"))

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["data"]["count"] == 1


def test_add_and_remove_member(client_for, project, user, other_user):
    client = client_for(user)
    members_url = reverse("project-members", args=[project.pk])

    resp = client.post(members_url, {"user": str(other_user.pk), "role": "member"}, format="json")
    assert resp.status_code == 201

    dup = client.post(members_url, {"user": str(other_user.pk)}, format="json")
    assert dup.status_code == 409

    listed = client.get(members_url).json()["data"]["members"]
    assert {m["user"]["id"] for m in listed} == {str(user.pk), str(other_user.pk)}

    resp = client.delete(reverse("project-remove-member", args=[project.pk, other_user.pk]))
    assert resp.status_code == 200
    assert not ProjectMember.objects.filter(project=project, user=other_user).exists()
    assert set(Log.objects.filter(entity_id=str(project.pk)).values_list("action", flat=True)) >= {
        "ADD_PROJECT_MEMBER", "REMOVE_PROJECT_MEMBER",
    }


def test_lead_cannot_be_removed(client_for, project, user, admin_user):
    resp = client_for(admin_user).delete(reverse("project-remove-member", args=[project.pk, user.pk]))
    assert resp.status_code == 400
    assert ProjectMember.objects.filter(project=project, user=user).exists()


def test_task_lifecycle(client_for, project, user, other_user):
    client = client_for(user)
    resp = client.post(
        reverse("task-list"),
        {"project": str(project.pk), "title": "Draft survey", "assigned_to": str(other_user.pk)},
        format="json",
    )
    assert resp.status_code == 201
    task = Task.objects.get(title="Draft survey")
    assert task.created_by == user

    # assignee may move the status
    resp = client_for(other_user).post(
        reverse("task-set-status", args=[task.pk]), {"status": "completed"}, format="json"
    )
    assert resp.status_code == 200
    task.refresh_from_db()
    assert task.status == TaskStatus.COMPLETED
    assert task.completed_at is not None
    assert Log.objects.filter(action="UPDATE_TASK_STATUS", entity_id=str(task.pk)).exists()

    resp = client.post(reverse("task-set-status", args=[task.pk]), {"status": "in_progress"}, format="json")
    task.refresh_from_db()
    assert task.completed_at is None


def test_task_edit_rights(client_for, project, user, other_user, make_user):
    task = Task.objects.create(project=project, title="Budget", created_by=other_user)
    outsider = make_user()
    url = reverse("task-detail", args=[task.pk])

    assert client_for(outsider).patch(url, {"title": "x"}, format="json").status_code == 403
    # project lead
    assert client_for(user).patch(url, {"title": "Budget v2"}, format="json").status_code == 200
    # creator
    assert client_for(other_user).delete(url).status_code == 200
    assert not Task.objects.filter(pk=task.pk).exists()
    assert Log.objects.filter(action="DELETE_TASK", entity_id=str(task.pk)).exists()


def test_meeting_duration_bounds(client_for, project, user):
    url = reverse("meeting-list")
    base = {"title": "Kickoff", "project": str(project.pk), "meeting_date": "2025-06-01T09:00:00Z"}

    assert client_for(user).post(url, {**base, "duration": 0}, format="json").status_code == 400
    assert client_for(user).post(url, {**base, "duration": 1441}, format="json").status_code == 400
    resp = client_for(user).post(url, {**base, "duration": 90, "attendees": [str(user.pk)]}, format="json")
    assert resp.status_code == 201
    assert resp.json()["data"]["attendees"] == [str(user.pk)]


def test_document_upload_archive_and_delete(client_for, project, user):
    client = client_for(user)
    upload = SimpleUploadedFile("minutes.txt", b"hello world", content_type="text/plain")
    resp = client.post(
        reverse("document-list"),
        {"title": "Minutes", "type": "meeting_minutes", "project": str(project.pk), "file": upload},
        format="multipart",
    )
    assert resp.status_code == 201
    doc = Document.objects.get(title="Minutes")
    assert doc.file_size == 11
    assert doc.mime_type == "text/plain"
    assert Log.objects.filter(action="UPLOAD_DOCUMENT", entity_id=str(doc.pk)).exists()

    download = client.get(reverse("document-download", args=[doc.pk]))
    assert download.status_code == 200
    assert b"".join(download.streaming_content) == b"hello world"

    assert client.delete(reverse("document-detail", args=[doc.pk])).status_code == 200
    doc.refresh_from_db()
    assert doc.is_archived

    resp = client.delete(reverse("document-detail", args=[doc.pk]) + "?permanent=true")
    assert resp.status_code == 200
    assert not Document.objects.filter(pk=doc.pk).exists()
    actions = set(Log.objects.filter(entity_id=str(doc.pk)).values_list("action", flat=True))
    assert {"ARCHIVE_DOCUMENT", "DOWNLOAD_DOCUMENT", "DELETE_DOCUMENT_PERMANENT"} <= actions


def test_malformed_ids_are_not_found(client_for, project, user):
    client = client_for(user)
    dashes = "-" * 36
    assert client.get(f"/api/projects/{dashes}").status_code == 404
    assert client.delete(f"/api/projects/{project.pk}/members/{dashes}").status_code == 404
    assert client.post(f"/api/tasks/{dashes}/set-status", {"status": "completed"}, format="json").status_code == 404


def test_assign_task(client_for, project, user, other_user, make_user):
    task = Task.objects.create(project=project, title="Collect samples", created_by=other_user)
    url = reverse("task-assign", args=[task.pk])

    # the task creator is not the project lead
    assert client_for(other_user).patch(url, {"assigned_to": str(other_user.pk)}, format="json").status_code == 403

    client = client_for(user)
    resp = client.patch(url, {"assigned_to": str(other_user.pk)}, format="json")
    assert resp.status_code == 200
    assert resp.json()["data"]["task"]["assigned_to"] == str(other_user.pk)
    log = Log.objects.get(action="ASSIGN_TASK")
    assert log.old_value == {"assigned_to": None}
    assert log.new_value == {"assigned_to": str(other_user.pk)}

    resp = client.patch(url, {"assigned_to": None}, format="json")
    assert resp.status_code == 200
    task.refresh_from_db()
    assert task.assigned_to is None
    assert Log.objects.filter(action="UNASSIGN_TASK").exists()


def test_assign_task_validation(client_for, project, user, admin_user):
    task = Task.objects.create(project=project, title="Collect samples", created_by=user)
    url = reverse("task-assign", args=[task.pk])

    assert client_for(user).patch(url, {}, format="json").status_code == 400
    resp = client_for(admin_user).patch(url, {"assigned_to": "0b7e1c53-5a3c-4f43-a0f1-2c4f0d7d6b1e"}, format="json")
    assert resp.status_code == 404


def test_replacing_document_file_refreshes_metadata(client_for, project, user):
    client = client_for(user)
    first = SimpleUploadedFile("notes.txt", b"short", content_type="text/plain")
    resp = client.post(
        reverse("document-list"),
        {"title": "Notes", "type": "other", "project": str(project.pk), "file": first},
        format="multipart",
    )
    doc_id = resp.json()["data"]["id"]

    second = SimpleUploadedFile("notes.csv", b"a,b,c\n1,2,3\n", content_type="text/csv")
    resp = client.patch(reverse("document-detail", args=[doc_id]), {"file": second}, format="multipart")

    assert resp.status_code == 200
    doc = Document.objects.get(pk=doc_id)
    assert doc.file_size == 12
    assert doc.mime_type == "text/csv"
