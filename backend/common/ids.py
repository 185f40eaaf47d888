import uuid

from .exceptions import NotFound

# canonical 8-4-4-4-12 form, used as router lookup_value_regex
UUID_RE = r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}"


def parse_uuid(value, message="Not found."):
    """`value` as a UUID, or NotFound when it is not one."""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError, AttributeError):
        raise NotFound(message) from None
