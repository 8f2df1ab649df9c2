from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(slots=True)
class DdbError(Exception):
    """Base error for DynamoDB operations.

    The API layer translates these into its own error responses; this package
    only guarantees the taxonomy.
    """

    message: str
    operation: str | None = None
    table_name: str | None = None
    key: dict[str, Any] | None = None
    aws_request_id: str | None = None
    retryable: bool = False
    cause: Exception | None = None

    def __str__(self) -> str:
        return self.message


# --- caller errors (raised before any backend call) ---


@dataclass(slots=True)
class InvalidKey(DdbError):
    pass


@dataclass(slots=True)
class InvalidItem(DdbError):
    pass


@dataclass(slots=True)
class InvalidCursor(DdbError):
    pass


@dataclass(slots=True)
class DdbNotFound(DdbError):
    pass


# --- backend errors ---


@dataclass(slots=True)
class BackendFailure(DdbError):
    pass


@dataclass(slots=True)
class DdbConflict(BackendFailure):
    pass


@dataclass(slots=True)
class DdbValidation(BackendFailure):
    pass


@dataclass(slots=True)
class DdbThrottled(BackendFailure):
    pass


@dataclass(slots=True)
class DdbUnavailable(BackendFailure):
    pass


@dataclass(slots=True)
class DdbInternal(BackendFailure):
    pass
