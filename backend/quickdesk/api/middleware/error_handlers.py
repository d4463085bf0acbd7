"""
Error Handlers

Centralized exception handlers for the FastAPI application. Every error
leaves the API in the same envelope:

    {"success": false, "message": ..., "error": {"code": ..., "details": ...}}
"""

from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from pymongo.errors import PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

from ...config.settings import settings
from ...domain.errors import DomainError
from ...utils.logger import get_logger, get_correlation_id

logger = get_logger(__name__)


HTTP_ERROR_CODES = {
    400: "BAD_REQUEST",
    401: "AUTHENTICATION_ERROR",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    413: "PAYLOAD_TOO_LARGE",
}


def _envelope(message: str, code: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {
        "success": False,
        "message": message,
        "error": {
            "code": code,
            "details": details or {}
        }
    }


def _response(status_code: int, content: Dict[str, Any], headers: Optional[Dict[str, str]] = None) -> JSONResponse:
    response_headers = {"X-Correlation-Id": get_correlation_id() or ""}
    if headers:
        response_headers.update(headers)
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(content),
        headers=response_headers
    )


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    """
    Handle domain-specific errors (business logic errors).

    These are expected errors that occur during normal operation,
    such as validation failures, not found errors, permission denied, etc.
    """
    logger.warning(
        f"Domain error: {exc.error_code} - {exc.message}",
        extra={"error_code": exc.error_code}
    )
    return _response(exc.http_status, exc.to_dict())


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """
    Handle HTTPException raised by routes, dependencies and the router.

    Routes raise HTTPException with an envelope already in `detail`; those
    pass through unchanged. Anything else (unknown route, wrong method) is
    wrapped.
    """
    if isinstance(exc.detail, dict) and "error" in exc.detail:
        content = exc.detail
    elif exc.status_code == status.HTTP_404_NOT_FOUND and exc.detail == "Not Found":
        content = _envelope("Route not found", "NOT_FOUND", {"path": request.url.path})
    else:
        content = _envelope(
            str(exc.detail),
            HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR")
        )
    return _response(exc.status_code, content, headers=getattr(exc, "headers", None))


async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """
    Handle request validation errors.

    These occur when request data doesn't match expected schema.
    """
    logger.warning(
        f"Validation error: {exc.errors()}, "
        f"path={request.url.path}, "
        f"method={request.method}"
    )
    errors = [
        {"field": ".".join(str(p) for p in e.get("loc", ())), "message": e.get("msg")}
        for e in exc.errors()
    ]
    return _response(
        status.HTTP_400_BAD_REQUEST,
        _envelope("Validation failed", "VALIDATION_ERROR", {"errors": errors})
    )


async def database_error_handler(request: Request, exc: PyMongoError) -> JSONResponse:
    """Handle MongoDB failures that escaped the repositories."""
    logger.error(f"Database error: {exc}", exc_info=True)
    details = {} if settings.is_production else {"error": str(exc)}
    return _response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        _envelope("Database error", "DATABASE_ERROR", details)
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handle unexpected errors.

    These are unhandled exceptions that should not occur during normal operation.
    Logs full stack trace for debugging.
    """
    logger.error(f"Unexpected error: {exc}", exc_info=True)
    details = {"hint": "Check server logs for details"}
    if not settings.is_production:
        details["error"] = str(exc)
    return _response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        _envelope("Internal server error", "INTERNAL_ERROR", details)
    )


def register_error_handlers(app: FastAPI) -> None:
    """
    Register all exception handlers with the FastAPI application.

    Args:
        app: The FastAPI application instance
    """
    app.add_exception_handler(DomainError, domain_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(PyMongoError, database_error_handler)
    app.add_exception_handler(Exception, general_exception_handler)
