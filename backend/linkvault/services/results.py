"""Typed outcomes returned by the session service."""
from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    UNAUTHORIZED = "unauthorized"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"
    INTERNAL = "internal"


class ErrorCode:
    """Stable machine-readable error codes."""

    VALIDATION_FAILED = "validation_failed"
    INVALID_CREDENTIALS = "invalid_credentials"
    INVALID_REFRESH_TOKEN = "invalid_refresh_token"
    INVALID_ACCESS_TOKEN = "invalid_access_token"
    EMAIL_TAKEN = "email_taken"
    NOT_FOUND = "not_found"
    TOO_MANY_REQUESTS = "too_many_requests"
    INTERNAL_ERROR = "internal_error"


@dataclass(frozen=True)
class ServiceError:
    kind: ErrorKind
    code: str
    message: str
    errors: dict[str, list[str]] | None = None


@dataclass(frozen=True)
class Result(Generic[T]):
    """Either a success value or a ``ServiceError``, never both."""

    value: T | None = None
    error: ServiceError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: ServiceError) -> "Result[T]":
        return cls(error=error)


def validation_failed(errors: dict[str, list[str]]) -> ServiceError:
    return ServiceError(
        kind=ErrorKind.VALIDATION,
        code=ErrorCode.VALIDATION_FAILED,
        message="One or more validation errors occurred.",
        errors=errors,
    )


def internal_error() -> ServiceError:
    return ServiceError(
        kind=ErrorKind.INTERNAL,
        code=ErrorCode.INTERNAL_ERROR,
        message="An unexpected error occurred.",
    )
