from django.conf import settings
from django.db import models

from common.models import BaseModel

from .registry import EntityType


class Comment(BaseModel):
    """
    A comment on a project, document, task or meeting.

    Threads are two-tier: a top-level comment (parent is null) and its
    direct replies. Replies share their parent's entity and go with it
    when it is deleted.
    """
    entity_type = models.CharField(max_length=20, choices=EntityType.choices)
    entity_id = models.UUIDField()
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="comments")
    body = models.TextField()
    parent = models.ForeignKey(
        "self", on_delete=models.CASCADE, null=True, blank=True, related_name="replies"
    )

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["entity_type", "entity_id"], name="comment_entity_idx"),
            models.Index(fields=["user"], name="comment_user_idx"),
            models.Index(fields=["parent"], name="comment_parent_idx"),
        ]

    def __str__(self):
        return f"{self.entity_type}#{self.entity_id}: {self.body[:40]}"

    @property
    def is_reply(self):
        return self.parent_id is not None
