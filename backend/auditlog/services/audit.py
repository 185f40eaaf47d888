"""
Audit trail writer and queries.

`record` is best-effort: the business mutation that triggered it has already
happened (or is about to), so a failing audit write is reported on the
`auditlog` logger and swallowed. Callers always get either the new Log row
or None, never an exception.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, Optional

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import validate_ipv46_address
from django.db import models, transaction
from django.db.models import QuerySet
from django.db.models.fields.files import FieldFile
from django.utils import timezone

from auditlog.models import Log

logger = logging.getLogger(__name__)

REDACT_KEYS = {"password", "token", "access", "refresh"}
USER_AGENT_MAX = 500


@dataclass(frozen=True)
class RequestContext:
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


EMPTY_CONTEXT = RequestContext()


def _client_ip(request) -> Optional[str]:
    # X-Forwarded-For is client-controlled unless a proxy in front rewrites it
    forwarded = None
    if getattr(settings, "AUDIT_TRUST_X_FORWARDED_FOR", False):
        forwarded = request.META.get("HTTP_X_FORWARDED_FOR")
    ip = forwarded.split(",")[0].strip() if forwarded else request.META.get("REMOTE_ADDR")
    if not ip:
        return None
    try:
        validate_ipv46_address(ip)
    except ValidationError:
        return None
    return ip


def request_context(request) -> RequestContext:
    """Caller address and declared client string for the given request."""
    if request is None:
        return EMPTY_CONTEXT
    agent = request.META.get("HTTP_USER_AGENT") or None
    return RequestContext(
        ip_address=_client_ip(request),
        user_agent=agent[:USER_AGENT_MAX] if agent else None,
    )


def _jsonable(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, (uuid.UUID, Decimal)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, FieldFile):
        return value.name or None
    if isinstance(value, models.Model):
        return str(value.pk)
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_jsonable(v) for v in value]
    return str(value)


def _sanitize(data: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if data is None:
        return None
    out = {}
    for k, v in data.items():
        if str(k).lower() in REDACT_KEYS:
            out[k] = "***"
        else:
            out[k] = _jsonable(v)
    return out


def snapshot(obj, fields: Iterable[str]) -> Dict[str, Any]:
    """Field values of `obj` in a JSON-storable form."""
    return {f: _jsonable(getattr(obj, f, None)) for f in fields}


def record(*, action: str, description: str = "", entity_type: str, entity_id,
           old_value: Optional[Dict[str, Any]] = None,
           new_value: Optional[Dict[str, Any]] = None,
           performed_by, context: RequestContext = EMPTY_CONTEXT) -> Optional[Log]:
    if not getattr(settings, "AUDIT_LOG_ENABLED", True):
        return None

    actor_id = getattr(performed_by, "pk", performed_by)
    if actor_id is None:
        logger.warning("Audit entry %s %s#%s dropped: no actor", action, entity_type, entity_id)
        return None

    try:
        # own savepoint: a failed insert must not break the caller's transaction
        with transaction.atomic():
            return Log.objects.create(
                action=action[:100],
                description=description or None,
                entity_type=entity_type[:50],
                entity_id=str(entity_id)[:120],
                old_value=_sanitize(old_value),
                new_value=_sanitize(new_value),
                performed_by_id=actor_id,
                ip_address=context.ip_address,
                user_agent=context.user_agent,
                timestamp=timezone.now(),
            )
    except Exception:
        logger.exception("Audit log write failed: %s %s#%s by %s", action, entity_type, entity_id, actor_id)
        return None


# --------------------------
# Queries (newest first)
# --------------------------
def recent_logs(limit: int = 50) -> QuerySet:
    return Log.objects.select_related("performed_by").order_by("-timestamp", "-id")[:limit]


def logs_for_user(user_id, limit: int = 50) -> QuerySet:
    return Log.objects.filter(performed_by_id=user_id).order_by("-timestamp", "-id")[:limit]


def logs_for_entity(entity_type: str, entity_id) -> QuerySet:
    return (
        Log.objects.select_related("performed_by")
        .filter(entity_type=entity_type, entity_id=str(entity_id))
        .order_by("-timestamp", "-id")
    )


def logs_by_action(action: str, limit: int = 100) -> QuerySet:
    return Log.objects.filter(action=action).order_by("-timestamp", "-id")[:limit]


def logs_in_period(start: datetime, end: datetime) -> QuerySet:
    """Inclusive on both ends."""
    return Log.objects.filter(timestamp__range=(start, end)).order_by("-timestamp", "-id")
