"""Error taxonomy and JSON error responses."""

from typing import List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from core.logging import get_logger, log_with_context

logger = get_logger(__name__)


class BluhatchError(Exception):
    """Base class for errors that end an operation and reach the caller."""

    status_code = 500
    public_message = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.public_message
        super().__init__(self.message)


class ValidationError(BluhatchError):
    """Input rejected before any side effect took place."""

    status_code = 400
    public_message = "Missing required fields"

    def __init__(self, message: Optional[str] = None, fields: Optional[List[str]] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.fields = fields or []
        if status_code is not None:
            self.status_code = status_code


class NotFoundError(BluhatchError):
    """
    Record missing or owned by someone else.

    The two cases are indistinguishable to the caller.
    """

    status_code = 404
    public_message = "Not found"


class ConflictError(BluhatchError):
    status_code = 409
    public_message = "Conflict"


class StoreFailure(BluhatchError):
    """Blob or record persistence failed; nothing partial was kept."""

    status_code = 500
    public_message = "Failed to store evidence"


def error_response(message: str, code: int = 500, **extra) -> JSONResponse:
    """Create the standard ``{"success": false, "error": ...}`` envelope."""
    content = {"success": False, "error": message}
    content.update(extra)
    return JSONResponse(status_code=code, content=content)


def validation_error_response(
    message: str,
    code: int = 400,
    fields: Optional[List[str]] = None,
    hints: Optional[List[str]] = None
) -> JSONResponse:
    """Create a validation error response with actionable hints."""
    if not hints:
        hints = []
        text = " ".join([message] + (fields or [])).lower()

        if "evidence_type" in text or "category" in text:
            hints.append("evidence_type must be one of: before, progress, after, defect, approval")
        if "file" in text:
            hints.append("Send the artifact as multipart field 'file' (JPEG, PNG or PDF)")
        if "gps" in text:
            hints.append("Latitude must be within [-90, 90], longitude within [-180, 180], accuracy >= 0")
        if "hash" in text:
            hints.append("file_hash must be a 64-character SHA-256 hex digest")

    extra = {"hints": hints[:3]}
    if fields:
        extra["fields"] = fields
    return error_response(message, code, **extra)


def register_error_handlers(app: FastAPI) -> None:
    """Map the error taxonomy onto HTTP responses."""

    @app.exception_handler(ValidationError)
    async def _validation_error(request: Request, exc: ValidationError) -> JSONResponse:
        log_with_context(logger, "info", f"Validation failed: {exc.message}", request=request, fields=exc.fields)
        return validation_error_response(exc.message, exc.status_code, fields=exc.fields)

    @app.exception_handler(StoreFailure)
    async def _store_failure(request: Request, exc: StoreFailure) -> JSONResponse:
        log_with_context(logger, "error", f"Store failure: {exc.message}", request=request)
        return error_response(exc.message, exc.status_code)

    @app.exception_handler(BluhatchError)
    async def _bluhatch_error(request: Request, exc: BluhatchError) -> JSONResponse:
        log_with_context(logger, "warning", f"{type(exc).__name__}: {exc.message}", request=request)
        return error_response(exc.message, exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def _request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        fields = []
        for error in exc.errors():
            loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path", "form")]
            if loc and loc[0] not in fields:
                fields.append(loc[0])
        log_with_context(logger, "info", "Request validation failed", request=request, fields=fields)
        message = "Missing required fields" if any(e.get("type") == "missing" for e in exc.errors()) else "Invalid request"
        return validation_error_response(message, 400, fields=fields)

    @app.exception_handler(StarletteHTTPException)
    async def _http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        response = error_response(str(exc.detail), exc.status_code)
        if exc.headers:
            response.headers.update(exc.headers)
        return response

    @app.exception_handler(Exception)
    async def _unhandled_error(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            f"Unhandled error: {exc}",
            extra={"path": request.url.path, "method": request.method},
            exc_info=exc,
        )
        return error_response("Internal server error", 500)
