"""Error taxonomy for metacrud operations.

Operations never raise across their boundary for expected failures. They
return an ApiError value instead, and the caller (usually an HTTP layer)
decides how to render it.

- ApiError: immutable error value with a machine-readable code
- ErrorType: the taxonomy of codes an operation can produce
- new_error: the error sink used by every operation
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any


class ErrorType(Enum):
    """Application error codes."""

    OBJECT_NOT_EXIST = "ObjectNotExist"
    OBJECT_DUPLICATED = "ObjectDuplicated"
    NO_OBJECT_UPDATED = "NoObjectUpdated"
    NO_OBJECT_DELETED = "NoObjectDeleted"
    MISSING_PARAM = "MissingParam"
    INVALID_PARAM = "InvalidParam"
    QUOTA_EXCEED = "QuotaExceed"
    PERMISSION_DENIED = "PermissionDenied"
    OPERATION_FAILED = "OperationFailed"
    INTERNAL_ERROR = "InternalError"


# Message templates keyed by the number of fields supplied.
# {1}, {2} are replaced by the first and second field.
_MESSAGES: dict[ErrorType, dict[int, str]] = {
    ErrorType.OBJECT_NOT_EXIST: {
        0: "Object does not exist!",
        1: "{1} does not exist!",
    },
    ErrorType.OBJECT_DUPLICATED: {
        0: "Object duplicated!",
        1: "{1} already exists!",
        2: "{1} with same {2} already exists!",
    },
    ErrorType.NO_OBJECT_UPDATED: {
        0: "No object updated!",
        1: "No {1} updated!",
    },
    ErrorType.NO_OBJECT_DELETED: {
        0: "No object deleted!",
        1: "No {1} deleted!",
    },
    ErrorType.MISSING_PARAM: {
        1: "Missing param {1}!",
    },
    ErrorType.INVALID_PARAM: {
        1: "Invalid param {1}!",
        2: "Invalid param {1}: {2}!",
    },
    ErrorType.QUOTA_EXCEED: {
        0: "Quota exceed!",
        1: "Quota exceed: {1}!",
    },
    ErrorType.PERMISSION_DENIED: {
        0: "Permission denied!",
        1: "Permission denied: {1}!",
    },
    ErrorType.OPERATION_FAILED: {
        1: "Operation failed: {1}!",
    },
    ErrorType.INTERNAL_ERROR: {
        1: "Internal error: {1}!",
        2: "Internal error: {1} {2}!",
    },
}


@dataclass(frozen=True)
class ApiError:
    """A typed error value returned by an operation.

    Attributes:
        code: Taxonomy code (e.g., "InternalError", "ObjectNotExist")
        message: Human-readable message
        fields: Template fields; for internal errors the first one is the
            failure reason (e.g., "InsertFailed")
        data: Optional extra payload for the caller
    """

    code: str
    message: str
    fields: tuple[str, ...] = ()
    data: Any = None

    @property
    def reason(self) -> str | None:
        """The internal failure reason, if any."""
        return self.fields[0] if self.fields else None

    def with_message(self, message: str) -> ApiError:
        return replace(self, message=message)

    def with_data(self, data: Any) -> ApiError:
        return replace(self, data=data)

    def with_error_data(self, exc: BaseException) -> ApiError:
        return replace(self, data={"error": str(exc)})

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            result["data"] = self.data
        return result

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


def _render(error_type: ErrorType, fields: tuple[str, ...]) -> str:
    templates = _MESSAGES[error_type]
    count = len(fields)
    if count not in templates:
        # Use the richest template that the supplied fields can fill
        usable = [n for n in templates if n <= count]
        count = max(usable) if usable else min(templates)

    message = templates[count]
    for i in range(1, count + 1):
        value = fields[i - 1] if i <= len(fields) else ""
        message = message.replace(f"{{{i}}}", value)
    return message


def new_error(error_type: ErrorType, *fields: str) -> ApiError:
    """Build an ApiError from a taxonomy code and template fields.

    Example:
        new_error(ErrorType.INTERNAL_ERROR, "InsertFailed", "User")
    """
    str_fields = tuple(str(f) for f in fields)
    return ApiError(
        code=error_type.value,
        message=_render(error_type, str_fields),
        fields=str_fields,
    )


def is_error(value: Any) -> bool:
    """Check if an operation result is an error value."""
    return isinstance(value, ApiError)
