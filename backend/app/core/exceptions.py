"""
Global exception handlers for FastAPI application.
"""

from fastapi import Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from loguru import logger
from sqlalchemy.exc import TimeoutError as SQLAlchemyTimeoutError

from app.utils.exceptions import (
    ArtReviewException,
    NotFoundError,
    ConflictError,
    InvalidStateError,
    InvalidInputError,
    LinkUnavailableError,
    ForbiddenError,
    UnauthenticatedError,
    NotAuthorizedApproverError,
    RequestClosedError,
    StorageError,
)
from app.core.logging import log_error, redact_path
from app.utils.formatters import format_error_response


# Most specific first; the first isinstance match wins.
_STATUS_MAP = (
    (LinkUnavailableError, status.HTTP_404_NOT_FOUND),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (InvalidStateError, status.HTTP_409_CONFLICT),
    (RequestClosedError, status.HTTP_409_CONFLICT),
    (InvalidInputError, status.HTTP_400_BAD_REQUEST),
    (UnauthenticatedError, status.HTTP_401_UNAUTHORIZED),
    (ForbiddenError, status.HTTP_403_FORBIDDEN),
    (NotAuthorizedApproverError, status.HTTP_403_FORBIDDEN),
    (StorageError, status.HTTP_502_BAD_GATEWAY),
)


def status_code_for(exc: ArtReviewException) -> int:
    """Map a domain exception to its HTTP status code."""
    for exc_type, code in _STATUS_MAP:
        if isinstance(exc, exc_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def art_review_exception_handler(request: Request, exc: ArtReviewException) -> JSONResponse:
    """Handle domain exceptions."""
    status_code = status_code_for(exc)
    error_response = format_error_response(exc, status_code)

    if status_code >= 500:
        logger.opt(exception=exc).error(f"Art review exception: {exc.message}")
    elif isinstance(exc, LinkUnavailableError):
        logger.debug(f"Share link rejected: {exc.__class__.__name__}")
    else:
        logger.info(f"{exc.__class__.__name__}: {exc.message}")

    headers = {"WWW-Authenticate": "Bearer"} if status_code == status.HTTP_401_UNAUTHORIZED else None
    return JSONResponse(status_code=status_code, content=error_response, headers=headers)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle Pydantic validation errors."""
    errors = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error.get("loc", []))
        errors.append({
            "field": field,
            "message": error.get("msg"),
            "type": error.get("type")
        })

    error_response = {
        "error": "ValidationError",
        "detail": "Request validation failed",
        "status_code": status.HTTP_422_UNPROCESSABLE_ENTITY,
        "errors": errors
    }

    logger.warning(f"Validation error: {errors}")

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=error_response
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle generic exceptions."""
    if isinstance(exc, SQLAlchemyTimeoutError):
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "error": "ServiceUnavailable",
                "detail": "Database is busy (connection pool exhausted). Please retry in a moment.",
                "status_code": status.HTTP_503_SERVICE_UNAVAILABLE,
            },
            headers={"Retry-After": "3"},
        )

    error_response = {
        "error": exc.__class__.__name__,
        "detail": "Internal server error",
        "status_code": status.HTTP_500_INTERNAL_SERVER_ERROR
    }

    log_error(exc, {"method": request.method, "path": redact_path(request.url.path)})

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_response
    )
