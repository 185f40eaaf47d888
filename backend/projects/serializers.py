from django.contrib.auth import get_user_model
from rest_framework import serializers

from identity.serializers import UserSummarySerializer

from .models import (
    Document,
    Meeting,
    Project,
    ProjectMember,
    ProjectRole,
    Task,
    TaskStatus,
)

User = get_user_model()


class ProjectMemberSerializer(serializers.ModelSerializer):
    user = UserSummarySerializer(read_only=True)

    class Meta:
        model = ProjectMember
        fields = ("id", "user", "role", "joined_at")
        read_only_fields = fields


class AddMemberSerializer(serializers.Serializer):
    user = serializers.UUIDField()
    role = serializers.ChoiceField(choices=ProjectRole.choices, default=ProjectRole.MEMBER)


class ProjectSerializer(serializers.ModelSerializer):
    created_by = UserSummarySerializer(read_only=True)
    members_count = serializers.SerializerMethodField()

    class Meta:
        model = Project
        fields = (
            "id", "name", "description", "status", "category", "target_group",
            "start_date", "end_date", "budget", "team", "created_by", "members_count",
            "created_at", "updated_at",
        )
        read_only_fields = ("id", "created_by", "members_count", "created_at", "updated_at")

    def get_members_count(self, obj):
        return obj.memberships.count()

    def validate(self, attrs):
        start = attrs.get("start_date", getattr(self.instance, "start_date", None))
        end = attrs.get("end_date", getattr(self.instance, "end_date", None))
        if start and end and end < start:
            raise serializers.ValidationError({"end_date": "End date must be on or after the start date."})
        return attrs


class TaskSerializer(serializers.ModelSerializer):
    created_by = UserSummarySerializer(read_only=True)
    assigned_to = serializers.PrimaryKeyRelatedField(
        queryset=User.objects.filter(is_active=True), required=False, allow_null=True
    )
    is_overdue = serializers.BooleanField(read_only=True)

    class Meta:
        model = Task
        fields = (
            "id", "project", "team", "title", "description", "status", "priority",
            "assigned_to", "created_by", "due_date", "completed_at", "is_overdue",
            "created_at", "updated_at",
        )
        read_only_fields = ("id", "created_by", "completed_at", "is_overdue", "created_at", "updated_at")
        extra_kwargs = {"title": {"min_length": 1}}


class TaskStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=TaskStatus.choices)


class TaskAssignSerializer(serializers.Serializer):
    # null unassigns
    assigned_to = serializers.UUIDField(allow_null=True)


class MeetingSerializer(serializers.ModelSerializer):
    created_by = UserSummarySerializer(read_only=True)
    attendees = serializers.ListField(child=serializers.UUIDField(), required=False)

    class Meta:
        model = Meeting
        fields = (
            "id", "title", "description", "project", "meeting_date", "duration",
            "location", "status", "agenda", "notes", "attendees", "created_by",
            "created_at", "updated_at",
        )
        read_only_fields = ("id", "created_by", "created_at", "updated_at")

    def validate_attendees(self, value):
        ids = list(dict.fromkeys(str(v) for v in value))
        known = {str(pk) for pk in User.objects.filter(pk__in=ids).values_list("pk", flat=True)}
        missing = [i for i in ids if i not in known]
        if missing:
            raise serializers.ValidationError(f"Unknown attendee(s): {', '.join(missing)}")
        return ids


class DocumentSerializer(serializers.ModelSerializer):
    uploaded_by = UserSummarySerializer(read_only=True)

    class Meta:
        model = Document
        fields = (
            "id", "title", "description", "type", "file", "file_size", "mime_type",
            "project", "meeting", "uploaded_by", "is_archived", "created_at", "updated_at",
        )
        read_only_fields = ("id", "file_size", "mime_type", "uploaded_by", "created_at", "updated_at")
