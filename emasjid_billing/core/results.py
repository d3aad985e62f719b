from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorCode(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    CAPACITY_EXCEEDED = "CAPACITY_EXCEEDED"
    TENANT_NOT_ELIGIBLE = "TENANT_NOT_ELIGIBLE"
    VALIDATION_ERROR = "VALIDATION_ERROR"


@dataclass(frozen=True)
class ServiceError:
    code: ErrorCode
    message: str
    details: Optional[dict] = None


@dataclass(frozen=True)
class Result(Generic[T]):
    """
    Outcome of a billing operation: either a value or a typed error.

    An error result means nothing the operation flushed may be kept; the
    caller rolls the session back (see `finalize`).
    """

    value: Optional[T] = None
    error: Optional[ServiceError] = None
    meta: dict = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def code(self) -> Optional[ErrorCode]:
        return self.error.code if self.error else None


def success(value: Any = None, **meta: Any) -> Result:
    return Result(value=value, meta=meta)


def failure(code: ErrorCode, message: str, details: Optional[dict] = None) -> Result:
    return Result(error=ServiceError(code=code, message=message, details=details))
