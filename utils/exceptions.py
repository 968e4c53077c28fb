from typing import Any, Dict, Iterable, List, Mapping, Optional

from schemas.server import FIELD_MESSAGES, REQUIRED_MESSAGES, VERSION_FIELD


IP_TAKEN_MESSAGE = "This IP address is already assigned to another server."
NAME_TAKEN_MESSAGE = "The name has already been taken for this provider."
STALE_VERSION_MESSAGE = "This server was modified by another user. Please refresh and try again."
NOT_FOUND_MESSAGE = "Server not found."


class ServerWriteError(ValueError):
    """Base for rejections the caller can recover from by changing input."""

    message = "The given data was invalid."

    def __init__(self, errors: Dict[str, List[str]], message: Optional[str] = None):
        self.errors = errors
        if message:
            self.message = message
        super().__init__(self.message)


class FieldValidationError(ServerWriteError):
    message = "The given data was invalid."

    @classmethod
    def from_error_list(cls, error_list: Iterable[Mapping[str, Any]]) -> "FieldValidationError":
        """Build from pydantic ``errors()`` output, one message per field."""
        errors: Dict[str, List[str]] = {}
        for error in error_list:
            field = _field_from_loc(error.get("loc", ()))
            if error.get("type") == "missing":
                text = REQUIRED_MESSAGES.get(field, f"The {field.replace('_', ' ')} field is required.")
            else:
                text = FIELD_MESSAGES.get(field, error.get("msg", "Invalid value."))
            messages = errors.setdefault(field, [])
            if text not in messages:
                messages.append(text)
        return cls(errors)


class UniquenessConflict(ServerWriteError):
    """Duplicate ip_address or (name, provider); ``field`` is the first one reported."""

    def __init__(self, field: str, *more_fields: str):
        self.field = field
        errors = {
            name: [IP_TAKEN_MESSAGE if name == "ip_address" else NAME_TAKEN_MESSAGE]
            for name in (field,) + more_fields
        }
        super().__init__(errors, errors[field][0])


class StaleVersionConflict(ServerWriteError):
    def __init__(self):
        self.field = VERSION_FIELD
        super().__init__({VERSION_FIELD: [STALE_VERSION_MESSAGE]}, STALE_VERSION_MESSAGE)


class ServerNotFound(ServerWriteError):
    def __init__(self, server_id: Any = None):
        self.server_id = server_id
        super().__init__({}, NOT_FOUND_MESSAGE)


def _field_from_loc(loc) -> str:
    parts = [p for p in loc if p not in ("body", "query", "path")]
    for part in parts:
        if isinstance(part, str):
            return part
    return "__root__"
