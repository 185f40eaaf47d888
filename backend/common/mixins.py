# backend/common/mixins.py
from __future__ import annotations

from typing import Iterable, Dict, Any, Optional

from django.db.models import Q, Model
from django.core.exceptions import FieldDoesNotExist
from rest_framework import status
from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response
from rest_framework.viewsets import ModelViewSet

from auditlog.services.audit import record, request_context, snapshot


# -----------------------------
# Pagination
# -----------------------------
class DefaultPagination(PageNumberPagination):
    page_size = 25
    page_size_query_param = "page_size"
    max_page_size = 200


# -----------------------------
# Base MVSet
# -----------------------------
class ScopedModelViewSet(ModelViewSet):
    """
    Opinionated base ViewSet:

    - Adds simple "q" search (icontains across `search_fields`) and "order" (comma-separated).
    - Exact filters come from `filterset_fields` through django-filter.
    - Successful payloads are wrapped as {"success": true, "data": ...}.

    Override:
      - `search_fields` (tuple of field names)
      - `ordering_fields` (tuple of field names allowed for ordering)
      - `default_ordering` (sequence)
    """
    pagination_class = DefaultPagination

    search_fields: Iterable[str] = tuple()
    ordering_fields: Iterable[str] = tuple()
    default_ordering: Iterable[str] = ("-created_at",)

    # ---- Queryset plumbing ----
    def _model_class(self) -> type[Model]:
        if hasattr(self, "queryset") and self.queryset is not None:
            return self.queryset.model
        return self.get_serializer().Meta.model  # type: ignore[attr-defined]

    def _has_field(self, field_name: str) -> bool:
        try:
            self._model_class()._meta.get_field(field_name)
            return True
        except FieldDoesNotExist:
            return False

    def _apply_search(self, qs):
        q = self.request.query_params.get("q")
        if not q:
            return qs
        # If no search_fields defined, try common ones
        fields = tuple(self.search_fields) or tuple(
            f for f in ("name", "title", "description") if self._has_field(f)
        )
        if not fields:
            return qs
        cond = Q()
        for f in fields:
            cond |= Q(**{f"{f}__icontains": q})
        return qs.filter(cond)

    def _apply_ordering(self, qs):
        order_param = self.request.query_params.get("order")
        fields_allowed = set(self.ordering_fields or ())
        if order_param:
            items = [s.strip() for s in order_param.split(",") if s.strip()]
            cleaned = []
            for it in items:
                base = it[1:] if it.startswith("-") else it
                if not fields_allowed or base in fields_allowed:
                    cleaned.append(it)
            if cleaned:
                return qs.order_by(*cleaned)
        return qs.order_by(*self.default_ordering) if self.default_ordering else qs

    def get_queryset(self):
        if hasattr(self, "queryset") and self.queryset is not None:
            qs = self.queryset.all()
        else:
            qs = self._model_class().objects.all()
        qs = self._apply_search(qs)
        qs = self._apply_ordering(qs)
        return qs

    # ---- Response envelope ----
    def finalize_response(self, request, response, *args, **kwargs):
        data = getattr(response, "data", None)
        if isinstance(response, Response) and response.status_code < 400 and not (isinstance(data, dict) and "success" in data):
            if response.status_code == status.HTTP_204_NO_CONTENT:
                response.status_code = status.HTTP_200_OK
                response.data = {"success": True}
            else:
                response.data = {"success": True, "data": data}
        return super().finalize_response(request, response, *args, **kwargs)


# -----------------------------
# Audit
# -----------------------------
class AuditedActionsMixin:
    """
    Attach to ViewSets you want to auto-audit.

    Set `audit_entity` ("task", "meeting", ...) and `audit_fields` (fields to
    snapshot). Actions are recorded as CREATE_<ENTITY>, UPDATE_<ENTITY>,
    DELETE_<ENTITY> unless `audit_actions` renames a verb.
    """
    audit_entity: str = ""
    audit_fields: Iterable[str] = tuple()
    audit_actions: Dict[str, str] = {}

    def _audit_snapshot(self, obj) -> Dict[str, Any]:
        return snapshot(obj, self.audit_fields)

    def _audit(self, verb: str, obj, old: Optional[Dict[str, Any]] = None,
               new: Optional[Dict[str, Any]] = None, description: str = "",
               action_name: Optional[str] = None):
        entity = self.audit_entity or obj.__class__.__name__.lower()
        return record(
            action=action_name or self.audit_actions.get(verb) or f"{verb}_{entity}".upper(),
            description=description or f"{entity} {verb.lower()}d: {obj}",
            entity_type=entity,
            entity_id=obj.pk,
            old_value=old,
            new_value=new,
            performed_by=self.request.user,
            context=request_context(self.request),
        )

    def creation_kwargs(self) -> Dict[str, Any]:
        """Extra attributes stamped on new rows (e.g. the creating user)."""
        return {}

    def update_kwargs(self) -> Dict[str, Any]:
        return {}

    def perform_create(self, serializer):
        obj = serializer.save(**self.creation_kwargs())
        self._audit("create", obj, new=self._audit_snapshot(obj))
        return obj

    def perform_update(self, serializer):
        old = self._audit_snapshot(serializer.instance)
        obj = serializer.save(**self.update_kwargs())
        self._audit("update", obj, old=old, new=self._audit_snapshot(obj))
        return obj

    def perform_destroy(self, instance):
        # log first so the record survives a failing delete
        self._audit("delete", instance, old=self._audit_snapshot(instance))
        return super().perform_destroy(instance)
