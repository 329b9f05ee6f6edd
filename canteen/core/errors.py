"""
API Error Types and Exception Handlers

Every failure leaves the API in the same envelope the React client reads:

    {"success": false, "message": "...", "errors": [...]}

Route handlers raise the APIError subclasses below; anything unexpected is
caught by the catch-all handler, logged, and reported as a 500.
"""

import logging
import re
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from canteen.core.config import get_settings

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Base class for errors that map directly onto an HTTP response."""

    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(
        self,
        message: Optional[str] = None,
        errors: Optional[list[Any]] = None,
        status_code: Optional[int] = None,
    ):
        self.message = message or self.default_message
        self.errors = errors
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class BadRequestError(APIError):
    status_code = 400
    default_message = "Bad request"


class AuthenticationError(APIError):
    status_code = 401
    default_message = "Authentication required"


class ForbiddenError(APIError):
    status_code = 403
    default_message = "Insufficient permissions"


class NotFoundError(APIError):
    status_code = 404
    default_message = "Resource not found"


class ConflictError(APIError):
    status_code = 409
    default_message = "Resource already exists"


def error_body(message: str, errors: Optional[list[Any]] = None) -> dict[str, Any]:
    body: dict[str, Any] = {"success": False, "message": message}
    if errors:
        body["errors"] = errors
    return body


# Postgres: Key (username)=(x) already exists. / SQLite: UNIQUE constraint failed: users.username
_PG_DUPLICATE = re.compile(r"Key \((?P<field>[^)]+)\)=")
_SQLITE_DUPLICATE = re.compile(r"UNIQUE constraint failed: \w+\.(?P<field>\w+)")


def duplicate_field(exc: IntegrityError) -> Optional[str]:
    """Extract the offending column from a unique-constraint violation."""
    text = str(exc.orig)
    for pattern in (_PG_DUPLICATE, _SQLITE_DUPLICATE):
        match = pattern.search(text)
        if match:
            return match.group("field")
    return None


# =============================================================================
# HANDLERS
# =============================================================================

async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.message, exc.errors),
    )


async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
            "message": err.get("msg"),
        }
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content=error_body("Validation failed", errors),
    )


async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    field = duplicate_field(exc)
    logger.warning(f"Integrity error on {request.url.path}: {exc.orig}")
    message = f"{field} already exists" if field else "Duplicate entry found"
    return JSONResponse(status_code=400, content=error_body(message))


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    if exc.status_code == 404 and message == "Not Found":
        message = "API endpoint not found"
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(message),
        headers=getattr(exc, "headers", None),
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")
    settings = get_settings()

    return JSONResponse(
        status_code=500,
        content=error_body(
            str(exc) if settings.debug else "Internal server error"
        ),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)
