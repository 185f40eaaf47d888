from rest_framework import serializers

from identity.serializers import UserSummarySerializer

from .models import Comment


class CommentSerializer(serializers.ModelSerializer):
    entityType = serializers.CharField(source="entity_type", read_only=True)
    entityId = serializers.UUIDField(source="entity_id", read_only=True)
    comment = serializers.CharField(source="body", read_only=True)
    parentId = serializers.UUIDField(source="parent_id", read_only=True, allow_null=True)
    user = UserSummarySerializer(read_only=True)
    createdAt = serializers.DateTimeField(source="created_at", read_only=True)
    updatedAt = serializers.DateTimeField(source="updated_at", read_only=True)

    class Meta:
        model = Comment
        fields = ("id", "entityType", "entityId", "comment", "parentId", "user", "createdAt", "updatedAt")


class ThreadCommentSerializer(CommentSerializer):
    """Top-level comment with its direct replies (one level only)."""
    replies = CommentSerializer(many=True, read_only=True)

    class Meta(CommentSerializer.Meta):
        fields = CommentSerializer.Meta.fields + ("replies",)


class CreateCommentSerializer(serializers.Serializer):
    # presence and length are checked by the service so every violation
    # surfaces with the same error shape
    entityType = serializers.CharField(required=False, allow_blank=True, trim_whitespace=True)
    entityId = serializers.CharField(required=False, allow_blank=True)
    comment = serializers.CharField(required=False, allow_blank=True, trim_whitespace=False)
    parentId = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class UpdateCommentSerializer(serializers.Serializer):
    comment = serializers.CharField(required=False, allow_blank=True, trim_whitespace=False)
