import re
import uuid

import pytest
from django.core.exceptions import ValidationError

from common.exceptions import NotFound, api_exception_handler
from common.ids import UUID_RE, parse_uuid


def test_model_validation_error_is_a_400_envelope():
    exc = ValidationError({"end_date": ["End date must be on or after the start date."]})

    response = api_exception_handler(exc, {})

    assert response.status_code == 400
    assert response.data["success"] is False
    assert response.data["code"] == "validation_failed"
    assert response.data["errors"] == {"end_date": "End date must be on or after the start date."}


def test_bad_lookup_value_is_a_400_not_a_500():
    exc = ValidationError('"------" is not a valid UUID.', code="invalid")

    response = api_exception_handler(exc, {})

    assert response.status_code == 400
    assert response.data["message"] == '"------" is not a valid UUID.'
    assert "errors" not in response.data


def test_uuid_pattern_is_strict():
    pattern = re.compile(rf"^{UUID_RE}$")
    assert pattern.match(str(uuid.uuid4()))
    assert pattern.match(str(uuid.uuid4()).upper())
    assert not pattern.match("-" * 36)
    assert not pattern.match("a" * 36)


def test_parse_uuid():
    value = uuid.uuid4()
    assert parse_uuid(value) is value
    assert parse_uuid(str(value)) == value
    for bad in ("-" * 36, "", None, 42):
        with pytest.raises(NotFound):
            parse_uuid(bad)
