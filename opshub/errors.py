"""Application error taxonomy and FastAPI exception handlers.

Services raise the ``AppError`` subclasses below instead of ``HTTPException``
so they stay usable outside a request. The handlers registered by
``register_exception_handlers`` render every error as the JSON envelope
``{"success": false, "message": ..., "error": ...}``.
"""

import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from opshub.config import get_settings

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base class for errors that map to an HTTP response.

    Attributes:
        message: Human-readable message returned to the caller.
        error: Optional machine-oriented detail.
    """

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, error: Any = None):
        super().__init__(message)
        self.message = message
        self.error = error


class ValidationError(AppError):
    """Malformed or missing input."""

    status_code = status.HTTP_400_BAD_REQUEST


class ForbiddenError(AppError):
    """The acting principal may not perform the operation."""

    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(AppError):
    """Missing invitation, organization, role or token."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(AppError):
    """Duplicate email/invitation/username or an illegal state transition."""

    status_code = status.HTTP_409_CONFLICT


class InternalError(AppError):
    """Unexpected store or transport failure."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


def error_envelope(message: str, error: Any = None) -> dict:
    """Build the error response body.

    Args:
        message: Human-readable message.
        error: Optional detail, omitted when None.

    Returns:
        dict: Response body.
    """
    body = {"success": False, "message": message}
    if error is not None:
        body["error"] = error
    return body


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render an AppError."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(error_envelope(exc.message, exc.error)),
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render request body/query validation failures as ValidationError."""
    errors = [
        {"field": ".".join(str(part) for part in err["loc"][1:]), "message": err["msg"]}
        for err in exc.errors()
    ]
    message = errors[0]["message"] if errors else "Invalid request"
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=jsonable_encoder(error_envelope(message, errors)),
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Render HTTPException (authentication, routing) in the envelope format."""
    return JSONResponse(
        status_code=exc.status_code,
        content=error_envelope(str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log unexpected exceptions and return a generic 500."""
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    settings = get_settings()
    detail = str(exc) if settings.environment == "development" else None
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_envelope("Failed to process request", detail),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the envelope handlers to an application.

    Args:
        app: FastAPI application instance.
    """
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
