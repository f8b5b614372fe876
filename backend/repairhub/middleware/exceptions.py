"""Error taxonomy and the handlers that render it.

Every error response has the same body:

    {"error": {"code": "ERROR_CODE", "message": "...", "details": {...}}}

    ValidationFailed        400  business rule rejected the request, nothing written
    PermissionDeniedError   403  caller may not act on this centro/corner
    ResourceNotFoundError   404
    ConflictError           409  state does not allow the operation
    request body invalid    422  pydantic field errors under details.errors
    UpstreamError           502  payment provider or email service failed
    database unreachable    503

Idempotent short-circuits ("Already processed") are successes and never
reach these handlers.
"""

import logging
from typing import Union

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError, OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class RepairHubException(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, error_code: str | None = None):
        self.message = message
        if error_code:
            self.error_code = error_code
        super().__init__(message)


class ValidationFailed(RepairHubException):
    """Request rejected by a business rule before any write."""
    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "VALIDATION_FAILED"


class PermissionDeniedError(RepairHubException):
    status_code = status.HTTP_403_FORBIDDEN
    error_code = "PERMISSION_DENIED"


class ResourceNotFoundError(RepairHubException):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "RESOURCE_NOT_FOUND"

    def __init__(self, resource: str, identifier: str):
        super().__init__(f"{resource} not found: {identifier}")


class ConflictError(RepairHubException):
    status_code = status.HTTP_409_CONFLICT
    error_code = "CONFLICT"


class UpstreamError(RepairHubException):
    """An external collaborator (payment provider, email service) failed."""
    status_code = status.HTTP_502_BAD_GATEWAY
    error_code = "UPSTREAM_ERROR"

    def __init__(self, service: str, message: str):
        self.service = service
        super().__init__(f"{service}: {message}")


# Constraint failures that escape the services, keyed by a fragment of the
# driver message (postgres and sqlite spell them alike).
INTEGRITY_ERRORS = (
    ("unique", status.HTTP_409_CONFLICT, "DUPLICATE_RECORD", "A record with this value already exists"),
    ("foreign key", status.HTTP_422_UNPROCESSABLE_ENTITY, "FOREIGN_KEY_VIOLATION", "Referenced record does not exist"),
    ("not null", status.HTTP_422_UNPROCESSABLE_ENTITY, "NULL_VALUE_NOT_ALLOWED", "Required field is missing"),
)


def error_body(
    status_code: int,
    code: str,
    message: str,
    details: Union[dict, list, None] = None,
) -> JSONResponse:
    error = {"code": code, "message": message}
    if details:
        error["details"] = details
    return JSONResponse(status_code=status_code, content={"error": error})


async def repairhub_exception_handler(request: Request, exc: RepairHubException) -> JSONResponse:
    log = logger.error if exc.status_code >= 500 else logger.warning
    log("%s on %s %s: %s", exc.error_code, request.method, request.url.path, exc.message)
    return error_body(exc.status_code, exc.error_code, exc.message)


async def http_exception_handler(
    request: Request,
    exc: Union[HTTPException, StarletteHTTPException],
) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("HTTP %s on %s %s: %s", exc.status_code, request.method, request.url.path, exc.detail)
    response = error_body(exc.status_code, f"HTTP_{exc.status_code}", str(exc.detail))
    for name, value in (getattr(exc, "headers", None) or {}).items():
        response.headers[name] = value
    return response


async def validation_exception_handler(
    request: Request,
    exc: Union[RequestValidationError, ValidationError],
) -> JSONResponse:
    logger.warning("Validation error on %s", request.url.path)
    errors = [
        {
            "field": " -> ".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    return error_body(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "VALIDATION_ERROR",
        "Validation error",
        {"errors": errors},
    )


async def integrity_exception_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    logger.error("Integrity error on %s: %s", request.url.path, exc)
    driver_message = str(getattr(exc, "orig", exc)).lower()
    for fragment, status_code, code, message in INTEGRITY_ERRORS:
        if fragment in driver_message:
            return error_body(status_code, code, message)
    return error_body(
        status.HTTP_422_UNPROCESSABLE_ENTITY, "INTEGRITY_ERROR", "Database constraint violation"
    )


async def operational_exception_handler(request: Request, exc: OperationalError) -> JSONResponse:
    logger.error("Database unavailable on %s: %s", request.url.path, exc)
    return error_body(
        status.HTTP_503_SERVICE_UNAVAILABLE,
        "DATABASE_UNAVAILABLE",
        "Database temporarily unavailable. Please try again.",
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return error_body(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "INTERNAL_SERVER_ERROR",
        "An unexpected error occurred. Please try again later.",
    )


def register_exception_handlers(app):
    app.add_exception_handler(RepairHubException, repairhub_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(ValidationError, validation_exception_handler)
    app.add_exception_handler(IntegrityError, integrity_exception_handler)
    app.add_exception_handler(OperationalError, operational_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
