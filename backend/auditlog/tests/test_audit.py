import uuid
from datetime import date, timedelta
from decimal import Decimal

import pytest
from django.db import DatabaseError
from django.test import RequestFactory
from django.utils import timezone

from auditlog.models import Log
from auditlog.services import audit
from auditlog.services.audit import RequestContext, record, request_context

pytestmark = pytest.mark.django_db


def _rec(user, **extra):
    fields = {"action": "CREATE_TASK", "entity_type": "task", "entity_id": uuid.uuid4(), "performed_by": user}
    fields.update(extra)
    return record(**fields)


def test_record_stores_sanitized_snapshots(user):
    entity_id = uuid.uuid4()
    log = record(
        action="UPDATE_USER",
        description="changed",
        entity_type="user",
        entity_id=entity_id,
        old_value={"password": "hunter2", "budget": Decimal("10.50"), "due": date(2025, 1, 2)},
        new_value={"owner": entity_id, "tags": ("a", "b")},
        performed_by=user,
        context=RequestContext(ip_address="2001:db8::1", user_agent="pytest"),
    )

    log.refresh_from_db()
    assert log.entity_id == str(entity_id)
    assert log.old_value == {"password": "***", "budget": "10.50", "due": "2025-01-02"}
    assert log.new_value == {"owner": str(entity_id), "tags": ["a", "b"]}
    assert log.ip_address == "2001:db8::1"
    assert log.user_agent == "pytest"
    assert log.performed_by == user


def test_record_failure_is_swallowed_and_reported(user, monkeypatch):
    def boom(*args, **kwargs):
        raise DatabaseError("disk full")

    reported = []
    monkeypatch.setattr(Log.objects, "create", boom)
    monkeypatch.setattr(audit.logger, "exception", lambda msg, *args: reported.append(msg % args))

    assert _rec(user) is None
    assert len(reported) == 1
    assert reported[0].startswith("Audit log write failed: CREATE_TASK task#")


def test_record_failure_keeps_outer_transaction_usable(user, monkeypatch):
    from django.db import transaction

    def boom(*args, **kwargs):
        raise DatabaseError("constraint")

    with transaction.atomic():
        monkeypatch.setattr(Log.objects, "create", boom)
        assert _rec(user) is None
        monkeypatch.undo()
        # the surrounding transaction still accepts writes
        assert _rec(user) is not None
    assert Log.objects.count() == 1


def test_record_can_be_disabled(user, settings):
    settings.AUDIT_LOG_ENABLED = False
    assert _rec(user) is None
    assert Log.objects.count() == 0


def test_record_without_actor_is_dropped():
    assert record(action="X", entity_type="task", entity_id=1, performed_by=None) is None
    assert Log.objects.count() == 0


def test_request_context_prefers_forwarded_for_when_trusted(settings):
    settings.AUDIT_TRUST_X_FORWARDED_FOR = True
    rf = RequestFactory()
    request = rf.get("/", HTTP_X_FORWARDED_FOR="203.0.113.7, 10.0.0.1", HTTP_USER_AGENT="x" * 600)
    ctx = request_context(request)
    assert ctx.ip_address == "203.0.113.7"
    assert len(ctx.user_agent) == 500


def test_request_context_ignores_forwarded_for_by_default(settings):
    settings.AUDIT_TRUST_X_FORWARDED_FOR = False
    request = RequestFactory().get("/", HTTP_X_FORWARDED_FOR="203.0.113.7", REMOTE_ADDR="198.51.100.2")
    assert request_context(request).ip_address == "198.51.100.2"


def test_request_context_drops_invalid_address(settings):
    settings.AUDIT_TRUST_X_FORWARDED_FOR = True
    request = RequestFactory().get("/", HTTP_X_FORWARDED_FOR="not-an-ip", REMOTE_ADDR="127.0.0.1")
    assert request_context(request).ip_address is None
    assert request_context(None) == audit.EMPTY_CONTEXT


def test_queries_are_newest_first(user, other_user):
    now = timezone.now()
    first = _rec(user, action="CREATE_TASK")
    second = _rec(other_user, action="DELETE_TASK")
    third = _rec(user, action="CREATE_TASK", entity_type="meeting", entity_id="m-1")
    for offset, log in enumerate((first, second, third)):
        Log.objects.filter(pk=log.pk).update(timestamp=now + timedelta(minutes=offset))

    assert [l.pk for l in audit.recent_logs(2)] == [third.pk, second.pk]
    assert [l.pk for l in audit.logs_for_user(user.pk)] == [third.pk, first.pk]
    assert [l.pk for l in audit.logs_for_entity("meeting", "m-1")] == [third.pk]
    assert [l.pk for l in audit.logs_by_action("CREATE_TASK")] == [third.pk, first.pk]
    window = audit.logs_in_period(now + timedelta(minutes=1), now + timedelta(minutes=2))
    assert [l.pk for l in window] == [third.pk, second.pk]
