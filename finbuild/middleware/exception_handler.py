"""Global exception handlers for the FastAPI application.

Domain errors map to their own status code; everything unexpected is
logged with its stack trace and answered with a generic 500.  Traces are
never sent to clients.
"""

import logging
import uuid

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from finbuild.errors import FinBuildError, MissingVariableError, RateLimitedError, format_error_response

logger = logging.getLogger(__name__)

_TITLES = {
    400: "Bad Request",
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not Found",
    409: "Conflict",
    422: "Unprocessable Entity",
    502: "Bad Gateway",
    503: "Service Unavailable",
}


def _get_request_id(request: Request) -> str:
    """Request id set by :class:`RequestIDMiddleware`, or a fresh UUID-4."""
    return getattr(request.state, "request_id", None) or str(uuid.uuid4())


def _error_json(request: Request, status_code: int, detail: object, error: str | None = None,
                headers: dict | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=format_error_response(
            error=error or _TITLES.get(status_code, "Error"),
            detail=detail,
            request_id=_get_request_id(request),
        ),
        headers=headers,
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all -- 500 with no detail."""
    logger.error(
        "Unhandled exception on %s %s [request_id=%s]",
        request.method, request.url.path, _get_request_id(request),
        exc_info=exc,
    )
    return _error_json(request, status.HTTP_500_INTERNAL_SERVER_ERROR,
                       "Internal server error", error="Internal Server Error")


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    logger.warning(
        "HTTP %s on %s %s: %s", exc.status_code, request.method, request.url.path, exc.detail,
    )
    return _error_json(request, exc.status_code, exc.detail, headers=getattr(exc, "headers", None))


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    logger.warning("Validation error on %s %s: %s", request.method, request.url.path, errors)
    return _error_json(request, status.HTTP_422_UNPROCESSABLE_ENTITY, errors, error="Validation failed")


async def finbuild_error_handler(request: Request, exc: FinBuildError) -> JSONResponse:
    """Map a domain error to its ``status_code``.

    Missing template variables are listed by name; a persistent rate limit
    carries a ``Retry-After`` hint.
    """
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc)
    detail: object = str(exc)
    headers = None
    if isinstance(exc, MissingVariableError):
        detail = {"message": str(exc), "missing": exc.missing}
    elif isinstance(exc, RateLimitedError):
        headers = {"Retry-After": "30"}
    return _error_json(request, exc.status_code, detail, headers=headers)


async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    """Bare ``ValueError`` from a library call is a client input problem."""
    return _error_json(request, status.HTTP_400_BAD_REQUEST, str(exc))


def setup_exception_handlers(app: FastAPI) -> None:
    """Register every handler on *app*.  Call before including routers."""
    app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(FinBuildError, finbuild_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(ValueError, value_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, global_exception_handler)  # type: ignore[arg-type]
