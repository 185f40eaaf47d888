"""
Resolution of polymorphic (entity_type, entity_id) references.

The set of commentable kinds is closed: EntityType lists them, and every
member must have a backing model in `_backing_models`. `CommentsConfig.ready`
checks that at startup, so a new kind cannot be added half-way.
"""
import uuid

from django.db import models

from common.exceptions import InvalidEntityType, NotFound
from common.ids import parse_uuid


class EntityType(models.TextChoices):
    PROJECT = "project", "Project"
    DOCUMENT = "document", "Document"
    TASK = "task", "Task"
    MEETING = "meeting", "Meeting"


def _backing_models():
    from projects.models import Document, Meeting, Project, Task

    return {
        EntityType.PROJECT: Project,
        EntityType.DOCUMENT: Document,
        EntityType.TASK: Task,
        EntityType.MEETING: Meeting,
    }


def missing_backing_models():
    """EntityType members with no model behind them (empty when complete)."""
    known = _backing_models()
    return [member for member in EntityType if member not in known]


def parse_entity_type(value) -> EntityType:
    try:
        return EntityType(value)
    except ValueError:
        raise InvalidEntityType(
            f"Entity type must be one of: {', '.join(EntityType.values)}."
        ) from None


def parse_entity_id(value) -> uuid.UUID:
    return parse_uuid(value, "Entity not found.")


def resolve(entity_type, entity_id):
    """
    The record behind (entity_type, entity_id).

    InvalidEntityType is raised before any lookup; NotFound when the id
    does not exist in the backing table. Read-only.
    """
    kind = parse_entity_type(entity_type)
    pk = parse_entity_id(entity_id)
    model = _backing_models()[kind]
    obj = model.objects.filter(pk=pk).first()
    if obj is None:
        raise NotFound(f"{kind.label} not found.")
    return obj
