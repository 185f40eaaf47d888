from rest_framework import viewsets

from auditlog.services.audit import request_context
from common.exceptions import ValidationFailed
from common.responses import created, ok

from . import services
from .serializers import (
    CommentSerializer,
    CreateCommentSerializer,
    ThreadCommentSerializer,
    UpdateCommentSerializer,
)

MAX_RECENT_LIMIT = 100


class CommentViewSet(viewsets.ViewSet):
    """
    /api/comments

    POST   /api/comments                          create (top-level or reply)
    GET    /api/comments/<entityType>/<entityId>  thread for an entity
    PUT    /api/comments/<id>                     author only
    DELETE /api/comments/<id>                     author or admin
    GET    /api/comments/user/<userId>?limit=     a user's latest comments
    """

    def create(self, request):
        serializer = CreateCommentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        comment = services.create_comment(
            entity_type=data.get("entityType"),
            entity_id=data.get("entityId"),
            author=request.user,
            body=data.get("comment"),
            parent_id=data.get("parentId") or None,
            context=request_context(request),
        )
        return created({"comment": CommentSerializer(comment).data}, message="Comment created successfully")

    def thread(self, request, entity_type=None, entity_id=None):
        thread = services.list_comments(entity_type, entity_id)
        return ok({
            "comments": ThreadCommentSerializer(thread.comments, many=True).data,
            "total": thread.total,
            "topLevel": thread.top_level,
        })

    def update(self, request, pk=None):
        serializer = UpdateCommentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        comment = services.update_comment(
            comment_id=pk,
            caller=request.user,
            body=serializer.validated_data.get("comment"),
            context=request_context(request),
        )
        return ok({"comment": CommentSerializer(comment).data}, message="Comment updated successfully")

    def destroy(self, request, pk=None):
        services.delete_comment(comment_id=pk, caller=request.user, context=request_context(request))
        return ok(message="Comment deleted successfully")

    def by_user(self, request, user_id=None):
        raw = request.query_params.get("limit")
        limit = None
        if raw:
            try:
                limit = min(int(raw), MAX_RECENT_LIMIT)
            except ValueError:
                raise ValidationFailed("limit must be an integer.", errors={"limit": "Must be an integer."})
            if limit < 1:
                raise ValidationFailed("limit must be positive.", errors={"limit": "Must be at least 1."})
        comments = services.recent_for_user(user_id, limit)
        return ok({"comments": CommentSerializer(comments, many=True).data})
