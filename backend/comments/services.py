"""
Comment threads attached to projects, documents, tasks and meetings.

Rules:
  * a reply's parent must exist and sit on the same (entity_type, entity_id)
  * replies to a reply are attached to the top-level comment above it
  * only the author may edit; the author or an admin may delete
  * deleting a comment removes its direct replies
  * listings: top-level newest first, replies oldest first

Every mutation is followed by a best-effort audit entry.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db.models import Prefetch

from auditlog.services.audit import EMPTY_CONTEXT, RequestContext, record
from common.exceptions import Forbidden, InvalidReference, NotFound, ValidationFailed
from common.ids import parse_uuid
from common.permissions import is_author, is_author_or_admin

from .models import Comment
from .registry import parse_entity_id, parse_entity_type, resolve

logger = logging.getLogger(__name__)

DEFAULT_RECENT_LIMIT = 10


def max_length() -> int:
    return int(getattr(settings, "COMMENT_MAX_LENGTH", 5000))


def clean_body(body) -> str:
    text = str(body).strip() if body is not None else ""
    if not text:
        raise ValidationFailed("Comment is required.", errors={"comment": "Comment cannot be empty."})
    limit = max_length()
    if len(text) > limit:
        raise ValidationFailed(
            f"Comment must be between 1 and {limit} characters.",
            errors={"comment": f"Ensure this field has no more than {limit} characters."},
        )
    return text


@dataclass
class Thread:
    comments: List[Comment]
    total: int
    top_level: int


def _with_author(qs):
    return qs.select_related("user")


def create_comment(*, entity_type, entity_id, author, body, parent_id=None,
                   context: RequestContext = EMPTY_CONTEXT) -> Comment:
    kind = parse_entity_type(entity_type) if entity_type else None
    missing = {
        "entityType": "Entity type is required." if not entity_type else None,
        "entityId": "Entity id is required." if not entity_id else None,
        "comment": "Comment is required." if not str(body or "").strip() else None,
    }
    if any(missing.values()):
        raise ValidationFailed("Fields entityType, entityId and comment are required.", errors=missing)

    entity = resolve(kind, entity_id)
    text = clean_body(body)

    parent = None
    if parent_id:
        parent = _find(parent_id)
        if parent is None:
            raise NotFound("Parent comment not found.")
        if parent.entity_type != kind or parent.entity_id != entity.pk:
            raise InvalidReference("Parent comment must be on the same entity.")
        # threads are two levels deep: answering a reply joins its parent's thread
        if parent.is_reply:
            parent = parent.parent

    comment = Comment.objects.create(
        entity_type=kind,
        entity_id=entity.pk,
        user=author,
        body=text,
        parent=parent,
    )

    record(
        action="CREATE_COMMENT",
        description=f"Comment created on {kind.value} #{entity.pk}{' (reply)' if parent else ''}",
        entity_type="comment",
        entity_id=comment.pk,
        new_value={
            "entityType": comment.entity_type,
            "entityId": comment.entity_id,
            "parentId": comment.parent_id,
        },
        performed_by=author,
        context=context,
    )
    return Comment.objects.select_related("user").get(pk=comment.pk)


def _find(comment_id) -> Optional[Comment]:
    try:
        pk = parse_entity_id(comment_id)
    except NotFound:
        return None
    return _with_author(Comment.objects).filter(pk=pk).first()


def list_comments(entity_type, entity_id) -> Thread:
    kind = parse_entity_type(entity_type)
    entity = resolve(kind, entity_id)

    on_entity = Comment.objects.filter(entity_type=kind, entity_id=entity.pk)
    replies = Prefetch("replies", queryset=_with_author(Comment.objects.order_by("created_at", "id")))
    top = list(
        _with_author(on_entity.filter(parent__isnull=True))
        .prefetch_related(replies)
        .order_by("-created_at", "-id")
    )
    return Thread(comments=top, total=on_entity.count(), top_level=len(top))


def _get(comment_id) -> Comment:
    comment = _find(comment_id)
    if comment is None:
        raise NotFound("Comment not found.")
    return comment


def update_comment(*, comment_id, caller, body, context: RequestContext = EMPTY_CONTEXT) -> Comment:
    comment = _get(comment_id)
    # admins may delete but never rewrite someone else's words
    if not is_author(caller, comment):
        raise Forbidden("You can only edit your own comments.")
    text = clean_body(body)

    old = {"comment": comment.body}
    comment.body = text
    comment.save(update_fields=["body", "updated_at"])

    record(
        action="UPDATE_COMMENT",
        description=f"Comment #{comment.pk} updated",
        entity_type="comment",
        entity_id=comment.pk,
        old_value=old,
        new_value={"comment": comment.body},
        performed_by=caller,
        context=context,
    )
    return comment


def delete_comment(*, comment_id, caller, context: RequestContext = EMPTY_CONTEXT) -> None:
    comment = _get(comment_id)
    if not is_author_or_admin(caller, comment):
        raise Forbidden("You can only delete your own comments.")

    # logged before the delete so the entry outlives a failing delete
    record(
        action="DELETE_COMMENT",
        description=f"Comment #{comment.pk} deleted",
        entity_type="comment",
        entity_id=comment.pk,
        old_value={
            "id": comment.pk,
            "entityType": comment.entity_type,
            "entityId": comment.entity_id,
            "comment": comment.body,
            "repliesCount": comment.replies.count(),
        },
        performed_by=caller,
        context=context,
    )
    comment.delete()
    logger.debug("Comment %s deleted by %s", comment_id, caller.pk)


def recent_for_user(user_id, limit: Optional[int] = None):
    pk = parse_uuid(user_id, "User not found.")
    if not get_user_model().objects.filter(pk=pk).exists():
        raise NotFound("User not found.")
    limit = limit or DEFAULT_RECENT_LIMIT
    return list(
        _with_author(Comment.objects.filter(user_id=pk))
        .order_by("-created_at", "-id")[:limit]
    )
