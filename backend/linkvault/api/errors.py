"""Translation of service outcomes and exceptions into problem documents."""
import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from linkvault.config import get_settings
from linkvault.services.results import ErrorCode, ErrorKind, ServiceError, internal_error, validation_failed

logger = logging.getLogger(__name__)

PROBLEM_MEDIA_TYPE = "application/problem+json"

TOO_MANY_REQUESTS = ServiceError(
    kind=ErrorKind.RATE_LIMITED,
    code=ErrorCode.TOO_MANY_REQUESTS,
    message="Too many attempts. Try again later.",
)

STATUS_BY_KIND = {
    ErrorKind.VALIDATION: (status.HTTP_400_BAD_REQUEST, "Validation failed"),
    ErrorKind.UNAUTHORIZED: (status.HTTP_401_UNAUTHORIZED, "Unauthorized"),
    ErrorKind.CONFLICT: (status.HTTP_409_CONFLICT, "Conflict"),
    ErrorKind.NOT_FOUND: (status.HTTP_404_NOT_FOUND, "Not found"),
    ErrorKind.RATE_LIMITED: (status.HTTP_429_TOO_MANY_REQUESTS, "Too many requests"),
    ErrorKind.INTERNAL: (status.HTTP_500_INTERNAL_SERVER_ERROR, "Server error"),
}


class ServiceErrorException(Exception):
    """Raised from dependencies to short-circuit a request with a ServiceError."""

    def __init__(self, error: ServiceError):
        super().__init__(error.message)
        self.error = error


def _correlation_id(request: Request) -> str | None:
    return getattr(request.state, "correlation_id", None)


def problem_response(request: Request, error: ServiceError, detail: str | None = None) -> JSONResponse:
    """Render a ServiceError as an RFC 7807 problem document."""
    status_code, title = STATUS_BY_KIND[error.kind]
    body = {
        "type": f"https://httpstatuses.com/{status_code}",
        "title": title,
        "status": status_code,
        "detail": detail or error.message,
        "code": error.code,
        "instance": request.url.path,
        "correlationId": _correlation_id(request),
    }
    if error.errors:
        body["errors"] = error.errors

    headers = {"WWW-Authenticate": "Bearer"} if status_code == status.HTTP_401_UNAUTHORIZED else None
    return JSONResponse(body, status_code=status_code, headers=headers, media_type=PROBLEM_MEDIA_TYPE)


async def service_error_handler(request: Request, exc: ServiceErrorException) -> JSONResponse:
    return problem_response(request, exc.error)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors: dict[str, list[str]] = {}
    for item in exc.errors():
        field = ".".join(str(part) for part in item.get("loc", ()) if part != "body") or "body"
        errors.setdefault(field, []).append(item.get("msg", "Invalid value."))
    return problem_response(request, validation_failed(errors))


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning("Rate limit %s exceeded for %s %s", exc.detail, request.method, request.url.path)
    response = problem_response(request, TOO_MANY_REQUESTS)
    response.headers["Retry-After"] = str(exc.limit.limit.get_expiry())
    return response


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unhandled exception for %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )
    detail = str(exc) if get_settings().is_development else None
    return problem_response(request, internal_error(), detail=detail)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ServiceErrorException, service_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
