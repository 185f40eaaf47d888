"""
API error taxonomy and the exception handler that renders it.

Every error leaves the API as:

    {"success": false, "message": "...", "code": "...", "errors": {...}}

`errors` is only present for field-level validation failures.
"""
import logging

from django.core.exceptions import PermissionDenied as DjangoPermissionDenied
from django.core.exceptions import ValidationError as DjangoValidationError
from django.http import Http404
from rest_framework import exceptions as drf_exceptions
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


# Unauthorized / Forbidden / NotFound reuse DRF's own classes so that
# authentication backends and permission classes raise them natively.
Unauthorized = drf_exceptions.NotAuthenticated
Forbidden = drf_exceptions.PermissionDenied
NotFound = drf_exceptions.NotFound


class InvalidEntityType(drf_exceptions.APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Unsupported entity type."
    default_code = "invalid_entity_type"


class InvalidReference(drf_exceptions.APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Referenced record does not belong to the same entity."
    default_code = "invalid_reference"


class ValidationFailed(drf_exceptions.APIException):
    """
    Structural validation failure. `errors` maps field name -> message.
    """
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Validation failed."
    default_code = "validation_failed"

    def __init__(self, detail=None, errors=None, code=None):
        super().__init__(detail=detail, code=code)
        self.errors = {k: str(v) for k, v in (errors or {}).items() if v}


class Conflict(drf_exceptions.APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Resource already exists."
    default_code = "conflict"


def _first_message(value):
    if isinstance(value, (list, tuple)):
        return _first_message(value[0]) if value else ""
    if isinstance(value, dict):
        for v in value.values():
            return _first_message(v)
        return ""
    return str(value)


def _field_errors(data):
    if not isinstance(data, dict):
        return {}
    return {
        field: _first_message(value)
        for field, value in data.items()
        if field not in ("detail", "non_field_errors")
    }


def _django_field_errors(exc):
    if not hasattr(exc, "error_dict"):
        return {}
    return {field: _first_message(messages) for field, messages in exc.message_dict.items()}


def _error_code(exc, status_code):
    if hasattr(exc, "default_code"):
        return exc.default_code
    code_map = {
        400: "bad_request",
        401: "unauthorized",
        403: "forbidden",
        404: "not_found",
        405: "method_not_allowed",
        409: "conflict",
        429: "too_many_requests",
    }
    return code_map.get(status_code, "error")


def api_exception_handler(exc, context):
    """DRF EXCEPTION_HANDLER producing the {success, message, errors} envelope."""
    if isinstance(exc, Http404):
        exc = drf_exceptions.NotFound()
    elif isinstance(exc, DjangoPermissionDenied):
        exc = drf_exceptions.PermissionDenied()
    elif isinstance(exc, DjangoValidationError):
        # model-level validation (bad lookup values, clean()) that escaped a serializer
        exc = ValidationFailed(exc.messages[0] if exc.messages else None, errors=_django_field_errors(exc))

    response = exception_handler(exc, context)

    if response is None:
        view = context.get("view") if isinstance(context, dict) else None
        logger.error("Unhandled exception in %s: %s", view.__class__.__name__ if view else "?", exc, exc_info=exc)
        return Response(
            {
                "success": False,
                "message": "An unexpected error occurred. Please try again later.",
                "code": "internal_error",
            },
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    # Missing and rejected credentials both surface as 401.
    if isinstance(exc, (drf_exceptions.NotAuthenticated, drf_exceptions.AuthenticationFailed)):
        response.status_code = status.HTTP_401_UNAUTHORIZED

    body = {
        "success": False,
        "message": "",
        "code": _error_code(exc, response.status_code),
    }

    if isinstance(exc, ValidationFailed):
        body["message"] = str(exc.detail)
        if exc.errors:
            body["errors"] = exc.errors
    elif isinstance(exc, drf_exceptions.ValidationError):
        errors = _field_errors(response.data)
        body["message"] = _first_message(response.data) or "Validation failed."
        body["code"] = "validation_failed"
        if errors:
            body["errors"] = errors
    else:
        body["message"] = _first_message(response.data) if response.data else str(exc)

    response.data = body
    return response
