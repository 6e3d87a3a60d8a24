"""Custom exception types and handlers for consistent error responses.

Every error leaves the API as:

    {"error": {"code": "...", "message": "...", "details": {...}}}

Authorization failures, validation failures on item updates and lookups
raise the `StockITException` subclasses below; the handlers translate
them (and framework/database errors) into that shape.
"""

import logging
from typing import Union

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class StockITException(Exception):
    """Base exception for StockIT application errors."""

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


class UnauthorizedError(StockITException):
    """No credential was presented."""

    def __init__(self, message: str = "Access denied. No token provided"):
        super().__init__(
            message=message,
            status_code=status.HTTP_401_UNAUTHORIZED,
            error_code="UNAUTHORIZED",
        )


class ForbiddenError(StockITException):
    """A credential was presented but does not allow the action.

    Covers invalid and expired tokens as well as role/store mismatches.
    """

    def __init__(self, message: str = "Forbidden"):
        super().__init__(
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
            error_code="FORBIDDEN",
        )


class NotFoundError(StockITException):
    def __init__(self, resource: str, identifier: object = None):
        message = f"{resource} not found"
        if identifier is not None:
            message = f"{resource} not found: {identifier}"
        super().__init__(
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="NOT_FOUND",
        )


class ConflictError(StockITException):
    """Duplicate user, category, etc."""

    def __init__(self, message: str):
        super().__init__(
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            error_code="CONFLICT",
        )


class BadRequestError(StockITException):
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            error_code="BAD_REQUEST",
            details=details,
        )


# ── Day-breakdown validation (item history writes) ──────────

class BreakdownError(StockITException):
    """Base for dayBreakdown validation failures."""

    def __init__(self, message: str, error_code: str):
        super().__init__(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            error_code=error_code,
        )


class InvalidBreakdownError(BreakdownError):
    def __init__(self, message: str):
        super().__init__(f"Invalid dayBreakdown: {message}", "INVALID_BREAKDOWN")


class BreakdownExceedsRequiredError(BreakdownError):
    def __init__(self, day_idx: int, qty: float, cap: int):
        self.day_idx = day_idx
        self.qty = qty
        self.cap = cap
        super().__init__(
            f"Day breakdown exceeds required for dayIdx {day_idx}: {qty:g} > {cap}",
            "BREAKDOWN_EXCEEDS_REQUIRED",
        )


class BreakdownMismatchError(BreakdownError):
    def __init__(self, total: float, quantity: int):
        self.total = total
        self.quantity = quantity
        super().__init__(
            "Day breakdown total must match quantity",
            "BREAKDOWN_MISMATCH",
        )


# ── Response helpers ─────────────────────────────────────────

def create_error_response(
    status_code: int,
    message: str,
    error_code: str = "ERROR",
    details: Union[dict, list, None] = None,
    headers: dict | None = None,
) -> JSONResponse:
    body = {"code": error_code, "message": message}
    if details:
        body["details"] = details
    return JSONResponse(status_code=status_code, content={"error": body}, headers=headers)


def _request_context(request: Request) -> dict:
    return {"path": request.url.path, "method": request.method}


# ── Handlers ─────────────────────────────────────────────────

async def stockit_exception_handler(request: Request, exc: StockITException) -> JSONResponse:
    # 401/403 are routine; log them below warning level
    level = logging.INFO if exc.status_code in (401, 403) else logging.WARNING
    logger.log(
        level,
        "%s %s -> %s %s: %s",
        request.method,
        request.url.path,
        exc.status_code,
        exc.error_code,
        exc.message,
    )

    headers = None
    if exc.status_code == status.HTTP_401_UNAUTHORIZED:
        headers = {"WWW-Authenticate": "Bearer"}

    return create_error_response(
        exc.status_code, exc.message, exc.error_code, exc.details, headers
    )


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("HTTP %s on %s: %s", exc.status_code, request.url.path, exc.detail)
    return create_error_response(
        exc.status_code,
        str(exc.detail),
        f"HTTP_{exc.status_code}",
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = [
        {
            "field": ".".join(str(part) for part in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    logger.info("Validation error on %s: %d problem(s)", request.url.path, len(errors))
    return create_error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "Validation error",
        "VALIDATION_ERROR",
        {"errors": errors},
    )


# Substring of the driver message -> (status, code, message)
_INTEGRITY_ERRORS = (
    ("unique", status.HTTP_409_CONFLICT, "DUPLICATE_RECORD",
     "A record with this value already exists"),
    ("foreign key", status.HTTP_422_UNPROCESSABLE_ENTITY, "FOREIGN_KEY_VIOLATION",
     "Referenced record does not exist"),
    ("not null", status.HTTP_422_UNPROCESSABLE_ENTITY, "NULL_VALUE_NOT_ALLOWED",
     "Required field is missing"),
)


async def integrity_exception_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    driver_message = str(getattr(exc, "orig", exc)).lower()
    logger.warning("Integrity error on %s: %s", request.url.path, driver_message)

    for needle, status_code, error_code, message in _INTEGRITY_ERRORS:
        if needle in driver_message:
            return create_error_response(status_code, message, error_code)
    return create_error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "Database constraint violation",
        "INTEGRITY_ERROR",
    )


async def operational_exception_handler(
    request: Request, exc: OperationalError
) -> JSONResponse:
    logger.error("Database unavailable on %s: %s", request.url.path, exc)
    return create_error_response(
        status.HTTP_503_SERVICE_UNAVAILABLE,
        "Database temporarily unavailable. Please try again.",
        "DATABASE_UNAVAILABLE",
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unhandled exception on %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
        extra=_request_context(request),
    )
    # Internal details stay in the log
    return create_error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "An unexpected error occurred. Please try again later.",
        "INTERNAL_SERVER_ERROR",
    )


def register_exception_handlers(app) -> None:
    """Register all custom exception handlers with the FastAPI app."""
    app.add_exception_handler(StockITException, stockit_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(IntegrityError, integrity_exception_handler)
    app.add_exception_handler(OperationalError, operational_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
