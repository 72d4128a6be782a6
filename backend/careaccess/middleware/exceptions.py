"""Domain exceptions and the handlers that render them.

Services raise the CareAccessError subclasses below; routers never catch
them. The handlers registered here turn them into the standard error body:

    {
        "error": {
            "code": "ERROR_CODE",
            "message": "Human-readable error message",
            "details": {...}  // Optional additional details
        }
    }
"""

import logging

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError, OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class CareAccessError(Exception):
    """Base exception for authorization-core errors."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: str = "INTERNAL_ERROR",
        details: dict | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details
        super().__init__(self.message)


class NotFoundError(CareAccessError):
    """Referenced entity or row is absent."""

    def __init__(self, resource: str, identifier: str, message: str | None = None):
        self.resource = resource
        self.identifier = identifier
        super().__init__(
            message=message or f"{resource} not found: {identifier}",
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="NOT_FOUND",
        )


class ConflictError(CareAccessError):
    """Unique-constraint violation, or entity still referenced on delete."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            error_code="CONFLICT",
            details=details,
        )


class CircularDependencyError(CareAccessError):
    """An implication edge would create or close a cycle."""

    def __init__(self, parent_id: str, child_id: str, path: list[str] | None = None):
        self.parent_id = parent_id
        self.child_id = child_id
        self.path = path or []
        details = {"path": self.path} if self.path else None
        super().__init__(
            message=(
                f"Implication {parent_id} -> {child_id} would create a circular dependency"
            ),
            status_code=status.HTTP_409_CONFLICT,
            error_code="CIRCULAR_DEPENDENCY",
            details=details,
        )


class BadRequestError(CareAccessError):
    """Malformed input, e.g. unknown ids in a bulk operation."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            error_code="BAD_REQUEST",
            details=details,
        )


class PermissionDeniedError(CareAccessError):
    """Caller lacks a permission required by the route."""

    def __init__(self, message: str = "Permission denied"):
        super().__init__(
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
            error_code="PERMISSION_DENIED",
        )


def create_error_response(
    status_code: int,
    message: str,
    error_code: str = "ERROR",
    details: dict | None = None,
) -> JSONResponse:
    """Render the `{"error": {...}}` body; `details` is omitted when empty."""
    error = {"code": error_code, "message": message}
    if details:
        error["details"] = details
    return JSONResponse(status_code=status_code, content={"error": error})


def _request_extra(request: Request) -> dict:
    return {"path": request.url.path, "method": request.method}


# Unique constraints that can still surface from a race between the
# service-level check and the insert
CONSTRAINT_MESSAGES = {
    "uq_organization_roles_one_primary": (
        "PRIMARY_ROLE_CONFLICT",
        "User already has a primary role in this organization",
    ),
    "uq_organization_roles_assignment": (
        "DUPLICATE_ASSIGNMENT",
        "Role is already assigned to this user in this organization",
    ),
    "uq_user_custom_permissions_grant": (
        "DUPLICATE_GRANT",
        "Permission is already granted to this user in this context",
    ),
    "uq_user_custom_permissions_system_grant": (
        "DUPLICATE_GRANT",
        "Permission is already granted to this user system-wide",
    ),
}


# ── Handlers ─────────────────────────────────────────────────

async def careaccess_exception_handler(
    request: Request,
    exc: CareAccessError,
) -> JSONResponse:
    logger.warning(
        f"{exc.error_code} on {request.method} {request.url.path}: {exc.message}",
        extra=_request_extra(request),
    )
    return create_error_response(
        exc.status_code, exc.message, exc.error_code, exc.details
    )


async def http_exception_handler(
    request: Request,
    exc: StarletteHTTPException,
) -> JSONResponse:
    """401s from the token dependencies and 404/405 from routing."""
    return create_error_response(
        exc.status_code, str(exc.detail), f"HTTP_{exc.status_code}"
    )


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError | ValidationError,
) -> JSONResponse:
    errors = [
        {
            "field": ".".join(str(part) for part in error["loc"]),
            "message": error["msg"],
        }
        for error in exc.errors()
    ]
    logger.warning(
        f"Validation failed on {request.url.path}: {len(errors)} error(s)",
        extra=_request_extra(request),
    )
    return create_error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "Validation error",
        "VALIDATION_ERROR",
        {"errors": errors},
    )


async def integrity_exception_handler(
    request: Request,
    exc: IntegrityError,
) -> JSONResponse:
    """Map a constraint violation to a 409, by constraint name where known."""
    raw = str(exc.orig if exc.orig is not None else exc)
    logger.error(f"Integrity error on {request.url.path}: {raw}", extra=_request_extra(request))

    for constraint, (error_code, message) in CONSTRAINT_MESSAGES.items():
        if constraint in raw:
            return create_error_response(status.HTTP_409_CONFLICT, message, error_code)

    if "unique" in raw.lower():
        return create_error_response(
            status.HTTP_409_CONFLICT, "A record with this value already exists", "DUPLICATE_RECORD"
        )
    return create_error_response(
        status.HTTP_409_CONFLICT, "Database constraint violation", "INTEGRITY_ERROR"
    )


async def operational_exception_handler(
    request: Request,
    exc: OperationalError,
) -> JSONResponse:
    logger.error(f"Database unavailable on {request.url.path}: {exc}", extra=_request_extra(request))
    return create_error_response(
        status.HTTP_503_SERVICE_UNAVAILABLE,
        "Database temporarily unavailable",
        "DATABASE_UNAVAILABLE",
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.url.path}", extra=_request_extra(request))
    return create_error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "An unexpected error occurred",
        "INTERNAL_SERVER_ERROR",
    )


def register_exception_handlers(app) -> None:
    handlers = [
        (CareAccessError, careaccess_exception_handler),
        (StarletteHTTPException, http_exception_handler),
        (RequestValidationError, validation_exception_handler),
        (ValidationError, validation_exception_handler),
        (IntegrityError, integrity_exception_handler),
        (OperationalError, operational_exception_handler),
        (Exception, unhandled_exception_handler),
    ]
    for exc_class, handler in handlers:
        app.add_exception_handler(exc_class, handler)
