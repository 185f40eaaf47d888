import logging
import mimetypes

from django.contrib.auth import get_user_model
from django.db import transaction
from django.http import FileResponse
from rest_framework.decorators import action
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.permissions import IsAuthenticated

from common.exceptions import Conflict, Forbidden, NotFound, ValidationFailed
from common.ids import UUID_RE
from common.mixins import AuditedActionsMixin, ScopedModelViewSet
from common.permissions import (
    IsCreatorLeadOrAdmin,
    IsProjectLeadOrAdmin,
    is_admin,
    is_author,
    is_project_lead,
)
from common.responses import created, ok

from .models import Document, Meeting, Project, ProjectMember, ProjectRole, ProjectStatus, Task
from .serializers import (
    AddMemberSerializer,
    DocumentSerializer,
    MeetingSerializer,
    ProjectMemberSerializer,
    ProjectSerializer,
    TaskAssignSerializer,
    TaskSerializer,
    TaskStatusSerializer,
)

User = get_user_model()
logger = logging.getLogger(__name__)


def can_assign(user, task):
    if is_admin(user):
        return True
    project = task.project
    if project is None:
        return is_author(user, task, "created_by_id")
    return is_author(user, project, "created_by_id") or is_project_lead(user, project.pk)


class ProjectViewSet(AuditedActionsMixin, ScopedModelViewSet):
    """
    /api/projects

    Edits, soft deletes and membership changes need the project's lead
    (ProjectMember.role == lead) or a global admin.
    """
    queryset = Project.objects.select_related("created_by", "team")
    serializer_class = ProjectSerializer
    permission_classes = (IsAuthenticated, IsProjectLeadOrAdmin)
    lookup_value_regex = UUID_RE
    filterset_fields = ("status", "category", "team")
    search_fields = ("name", "description", "category")
    ordering_fields = ("name", "start_date", "end_date", "created_at", "status")
    audit_entity = "project"
    audit_fields = ("name", "description", "status", "category", "start_date", "end_date", "budget", "team_id")

    def perform_create(self, serializer):
        with transaction.atomic():
            project = serializer.save(created_by=self.request.user)
            ProjectMember.objects.create(project=project, user=self.request.user, role=ProjectRole.LEAD)
        self._audit("create", project, new=self._audit_snapshot(project))
        return project

    def destroy(self, request, *args, **kwargs):
        project = self.get_object()
        old = self._audit_snapshot(project)
        project.status = ProjectStatus.CANCELLED
        project.save(update_fields=["status", "updated_at"])
        self._audit("delete", project, old=old, new={"status": ProjectStatus.CANCELLED.value},
                    description=f"project cancelled: {project}")
        return ok(message="Project deleted successfully")

    @action(detail=True, methods=["get", "post"])
    def members(self, request, pk=None):
        project = self.get_object()
        if request.method == "GET":
            members = project.memberships.select_related("user")
            return ok({"members": ProjectMemberSerializer(members, many=True).data})

        serializer = AddMemberSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = User.objects.filter(pk=serializer.validated_data["user"]).first()
        if user is None:
            raise NotFound("User not found.")
        if project.memberships.filter(user=user).exists():
            raise Conflict("User is already a member of this project.")
        member = ProjectMember.objects.create(
            project=project, user=user, role=serializer.validated_data["role"]
        )
        self._audit(
            "add_member", project, new={"user": user.pk, "role": member.role},
            description=f"{user.email} added to project {project.name}", action_name="ADD_PROJECT_MEMBER",
        )
        return created({"member": ProjectMemberSerializer(member).data}, message="Member added successfully")

    @action(detail=True, methods=["delete"], url_path=rf"members/(?P<user_id>{UUID_RE})")
    def remove_member(self, request, pk=None, user_id=None):
        project = self.get_object()
        member = project.memberships.filter(user_id=user_id).first()
        if member is None:
            raise NotFound("Member not found in this project.")
        if member.role == ProjectRole.LEAD:
            raise ValidationFailed("The project lead cannot be removed. Transfer the lead role first.")
        self._audit(
            "remove_member", project, old={"user": user_id, "role": member.role},
            description=f"Member {user_id} removed from project {project.name}", action_name="REMOVE_PROJECT_MEMBER",
        )
        member.delete()
        return ok(message="Member removed successfully")


class TaskViewSet(AuditedActionsMixin, ScopedModelViewSet):
    queryset = Task.objects.select_related("created_by", "assigned_to", "project")
    serializer_class = TaskSerializer
    permission_classes = (IsAuthenticated, IsCreatorLeadOrAdmin)
    lookup_value_regex = UUID_RE
    filterset_fields = ("project", "team", "status", "priority", "assigned_to")
    search_fields = ("title", "description")
    ordering_fields = ("title", "due_date", "priority", "status", "created_at")
    audit_entity = "task"
    audit_fields = ("title", "status", "priority", "project_id", "assigned_to_id", "due_date", "completed_at")

    def creation_kwargs(self):
        return {"created_by": self.request.user}

    @action(detail=True, methods=["post"], url_path="set-status", permission_classes=[IsAuthenticated])
    def set_status(self, request, pk=None):
        """Creator, assignee, project lead or admin."""
        task = self.get_object()
        allowed = is_author(request.user, task, "assigned_to_id")
        if not allowed:
            allowed = IsCreatorLeadOrAdmin().has_object_permission(request, self, task)
        if not allowed:
            raise Forbidden("Only the assignee, the creator, the project lead or an admin can change this task.")

        serializer = TaskStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        old = {"status": task.status}
        task.status = serializer.validated_data["status"]
        task.save()
        self._audit("status", task, old=old, new={"status": task.status, "completed_at": task.completed_at},
                    description=f"task status changed: {task}", action_name="UPDATE_TASK_STATUS")
        return ok({"task": TaskSerializer(task).data}, message="Task status updated")

    @action(detail=True, methods=["patch"], permission_classes=[IsAuthenticated])
    def assign(self, request, pk=None):
        """Project creator, project lead or admin; tasks outside a project: creator or admin."""
        task = self.get_object()
        if not can_assign(request.user, task):
            raise Forbidden("Only the project lead can assign tasks.")

        serializer = TaskAssignSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        assignee_id = serializer.validated_data["assigned_to"]
        assignee = None
        if assignee_id is not None:
            assignee = User.objects.filter(pk=assignee_id).first()
            if assignee is None:
                raise NotFound("User to assign not found.")

        old = {"assigned_to": task.assigned_to_id}
        task.assigned_to = assignee
        task.save(update_fields=["assigned_to", "updated_at"])
        if assignee is None:
            self._audit("unassign", task, old=old, new={"assigned_to": None},
                        description=f"task unassigned: {task}", action_name="UNASSIGN_TASK")
            message = "Task unassigned"
        else:
            self._audit("assign", task, old=old, new={"assigned_to": assignee.pk},
                        description=f"task assigned: {task} to {assignee.display_name}", action_name="ASSIGN_TASK")
            message = "Task assigned"
        return ok({"task": TaskSerializer(task).data}, message=message)


class MeetingViewSet(AuditedActionsMixin, ScopedModelViewSet):
    queryset = Meeting.objects.select_related("created_by", "project")
    serializer_class = MeetingSerializer
    permission_classes = (IsAuthenticated, IsCreatorLeadOrAdmin)
    lookup_value_regex = UUID_RE
    filterset_fields = ("project", "status")
    search_fields = ("title", "description", "location")
    ordering_fields = ("meeting_date", "title", "created_at")
    default_ordering = ("-meeting_date",)
    audit_entity = "meeting"
    audit_fields = ("title", "project_id", "meeting_date", "duration", "location", "status", "attendees")

    def creation_kwargs(self):
        return {"created_by": self.request.user}


class DocumentViewSet(AuditedActionsMixin, ScopedModelViewSet):
    """
    /api/documents

    DELETE archives the document; `?permanent=true` removes the row and
    the stored file.
    """
    queryset = Document.objects.select_related("uploaded_by", "project")
    serializer_class = DocumentSerializer
    permission_classes = (IsAuthenticated, IsCreatorLeadOrAdmin)
    parser_classes = (MultiPartParser, FormParser, JSONParser)
    creator_field = "uploaded_by_id"
    lookup_value_regex = UUID_RE
    filterset_fields = ("project", "meeting", "type", "is_archived")
    search_fields = ("title", "description")
    ordering_fields = ("title", "type", "created_at", "file_size")
    audit_entity = "document"
    audit_fields = ("title", "type", "file", "file_size", "mime_type", "project_id", "meeting_id", "is_archived")
    audit_actions = {"create": "UPLOAD_DOCUMENT", "delete": "DELETE_DOCUMENT_PERMANENT"}

    def _file_metadata(self):
        upload = self.request.FILES.get("file")
        if upload is None:
            return {}
        return {
            "file_size": upload.size,
            "mime_type": (
                getattr(upload, "content_type", None)
                or mimetypes.guess_type(upload.name)[0]
                or "application/octet-stream"
            ),
        }

    def creation_kwargs(self):
        return {"uploaded_by": self.request.user, **self._file_metadata()}

    def update_kwargs(self):
        # a replaced file brings its own size and type
        return self._file_metadata()

    def destroy(self, request, *args, **kwargs):
        document = self.get_object()
        if request.query_params.get("permanent") == "true":
            self.perform_destroy(document)
            return ok(message="Document permanently deleted")

        old = self._audit_snapshot(document)
        document.is_archived = True
        document.save(update_fields=["is_archived", "updated_at"])
        self._audit("archive", document, old=old, new=self._audit_snapshot(document), action_name="ARCHIVE_DOCUMENT")
        return ok(message="Document archived")

    def perform_destroy(self, instance):
        storage, name = instance.file.storage, instance.file.name
        super().perform_destroy(instance)
        if name:
            storage.delete(name)

    @action(detail=True, methods=["get"])
    def download(self, request, pk=None):
        document = self.get_object()
        if not document.file:
            raise NotFound("File not found.")
        self._audit("download", document, description=f"document downloaded: {document}",
                    action_name="DOWNLOAD_DOCUMENT")
        response = FileResponse(
            document.file.open("rb"),
            as_attachment=True,
            filename=document.file.name.rsplit("/", 1)[-1],
            content_type=document.mime_type or "application/octet-stream",
        )
        return response
