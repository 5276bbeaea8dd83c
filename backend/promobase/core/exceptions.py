"""
Error taxonomy for the contact core and the FastAPI handlers that serialize it.
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging
from typing import Any, Optional


logger = logging.getLogger(__name__)

# status.HTTP_422_UNPROCESSABLE_ENTITY is deprecated in current Starlette
HTTP_422_UNPROCESSABLE = 422


class AppException(Exception):
    """Base application exception."""
    def __init__(self, message: str, status_code: int = 500, details: Any = None):
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(self.message)


class ValidationError(AppException):
    """A contact failed the validation gate; nothing was written."""

    def __init__(self, field: Optional[str], value: Any, message: str, index: Optional[int] = None):
        self.field = field
        self.value = value
        self.index = index
        details = {"field": field, "value": _printable(value)}
        if index is not None:
            details["index"] = index
        prefix = f"{field}: " if field else ""
        super().__init__(f"{prefix}{message}", HTTP_422_UNPROCESSABLE, details)


class ConstraintError(AppException):
    """Uniqueness violation raised by the relational backend."""

    def __init__(self, field: Optional[str], value: Any, contact_id: Optional[str] = None):
        self.field = field
        self.value = value
        self.contact_id = contact_id
        label = field or "record"
        super().__init__(
            f"A contact with this {label} already exists",
            status.HTTP_409_CONFLICT,
            {"field": field, "value": _printable(value), "contact_id": contact_id},
        )


class ContactNotFoundError(AppException):
    """Referenced contact id does not exist."""

    def __init__(self, contact_id: str):
        self.contact_id = contact_id
        super().__init__(
            f"Contact not found: {contact_id}",
            status.HTTP_404_NOT_FOUND,
            {"contact_id": contact_id},
        )


class BackendUnavailableError(AppException):
    """The relational backend could not be initialized."""

    def __init__(self, message: str):
        super().__init__(message, status.HTTP_503_SERVICE_UNAVAILABLE)


class TransactionError(AppException):
    """
    A chunked bulk operation failed part way.

    The failing chunk was rolled back; chunks committed before it stay.
    """

    def __init__(
        self,
        committed_chunks: int,
        committed_records: int,
        total_records: int,
        cause: Exception,
    ):
        self.committed_chunks = committed_chunks
        self.committed_records = committed_records
        self.total_records = total_records
        self.cause = cause
        super().__init__(
            f"Bulk write failed after {committed_records} of {total_records} records: {cause}",
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            {
                "committed_chunks": committed_chunks,
                "committed_records": committed_records,
                "total_records": total_records,
                "cause": type(cause).__name__,
                "cause_details": getattr(cause, "details", None),
            },
        )


class MergeUsageError(AppException):
    """combine() called with an empty or self-referencing others list."""

    def __init__(self, message: str):
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


def _printable(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return repr(value)


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handle custom application exceptions."""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        f"Application exception: {exc.message}",
        extra={
            "status_code": exc.status_code,
            "path": request.url.path,
            "details": exc.details,
        },
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": {
                "message": exc.message,
                "details": exc.details,
                "path": request.url.path,
            }
        },
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Handle HTTP exceptions."""
    logger.warning(
        f"HTTP exception: {exc.detail}",
        extra={
            "status_code": exc.status_code,
            "path": request.url.path,
        },
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": {
                "message": exc.detail,
                "status_code": exc.status_code,
                "path": request.url.path,
            }
        },
    )


def _serialize_validation_errors(errors: list) -> list:
    """Convert validation errors to JSON-serializable format."""
    serialized = []
    for error in errors:
        serialized_error = {}
        for key, value in error.items():
            if key == "ctx" and isinstance(value, dict):
                serialized_error[key] = {
                    ctx_key: str(ctx_value) if isinstance(ctx_value, Exception) else ctx_value
                    for ctx_key, ctx_value in value.items()
                }
            elif isinstance(value, Exception):
                serialized_error[key] = str(value)
            else:
                serialized_error[key] = value
        serialized.append(serialized_error)
    return serialized


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle request validation errors."""
    serialized_errors = _serialize_validation_errors(exc.errors())

    logger.warning(
        f"Validation error: {serialized_errors}",
        extra={
            "path": request.url.path,
            "errors": serialized_errors,
        },
    )

    return JSONResponse(
        status_code=HTTP_422_UNPROCESSABLE,
        content={
            "error": {
                "message": "Validation error",
                "details": serialized_errors,
                "path": request.url.path,
            }
        },
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.exception(
        f"Unhandled exception: {str(exc)}",
        extra={
            "path": request.url.path,
            "exception_type": type(exc).__name__,
        },
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": {
                "message": "Internal server error",
                "path": request.url.path,
            }
        },
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI app."""
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
