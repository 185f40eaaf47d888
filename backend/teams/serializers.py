from rest_framework import serializers

from identity.serializers import UserSummarySerializer

from .models import Team, TeamInvitation, TeamMember


class TeamMemberSerializer(serializers.ModelSerializer):
    user = UserSummarySerializer(read_only=True)

    class Meta:
        model = TeamMember
        fields = ("id", "user", "role", "joined_at")
        read_only_fields = fields


class TeamSerializer(serializers.ModelSerializer):
    manager = UserSummarySerializer(read_only=True)
    members = TeamMemberSerializer(many=True, read_only=True)
    project = serializers.SerializerMethodField()

    class Meta:
        model = Team
        fields = ("id", "name", "description", "status", "manager", "members", "project", "created_at", "updated_at")
        read_only_fields = ("id", "manager", "members", "project", "created_at", "updated_at")
        extra_kwargs = {"name": {"min_length": 2}}

    def get_project(self, obj):
        # a team usually backs a single project; expose the oldest one
        project = obj.projects.order_by("created_at").first()
        if project is None:
            return None
        return {"id": str(project.pk), "name": project.name, "status": project.status}


class TeamRefSerializer(serializers.ModelSerializer):
    class Meta:
        model = Team
        fields = ("id", "name")


class TeamInvitationSerializer(serializers.ModelSerializer):
    team = TeamRefSerializer(read_only=True)
    user = UserSummarySerializer(read_only=True)
    invited_by = UserSummarySerializer(read_only=True)

    class Meta:
        model = TeamInvitation
        fields = ("id", "team", "user", "invited_by", "role", "status", "message", "responded_at", "created_at")
        read_only_fields = fields


class SendInvitationSerializer(serializers.Serializer):
    team = serializers.UUIDField()
    user = serializers.UUIDField()
    role = serializers.CharField(max_length=50, required=False, allow_blank=True)
    message = serializers.CharField(required=False, allow_blank=True)


class RespondSerializer(serializers.Serializer):
    response = serializers.CharField()
