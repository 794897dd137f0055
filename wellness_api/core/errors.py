# wellness_api/core/errors.py
# Error taxonomy shared by the services and mapped to HTTP responses in main.py.
import logging
from typing import Any, Dict, Optional

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class InvalidRequestError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "VALIDATION_ERROR"


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"


class AccessDeniedError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "ACCESS_DENIED"


class ConflictError(AppError):
    status_code = status.HTTP_409_CONFLICT
    code = "CONFLICT"


class DataIntegrityError(AppError):
    """Cyclic or orphaned hierarchy data. The hierarchy engine logs and truncates instead of raising."""
    status_code = status.HTTP_409_CONFLICT
    code = "DATA_INTEGRITY"


class UpstreamServiceError(AppError):
    """The store, the auth provider or the LLM failed. Clients only ever see a generic message."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "UPSTREAM_ERROR"
    public_message = "An upstream service failed. Please try again later."


class InvalidAudioError(InvalidRequestError):
    code = "INVALID_AUDIO"


class TranscriptionUnauthorizedError(UpstreamServiceError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "UNAUTHORIZED"
    public_message = "The transcription service rejected our credentials."


class ServiceUnavailableError(UpstreamServiceError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "SERVICE_UNAVAILABLE"
    public_message = "The transcription service is unavailable."


def _error_body(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> dict:
    return {"success": False, "error": {"code": code, "message": message, "details": details or {}}}


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if isinstance(exc, UpstreamServiceError):
        logger.error("%s %s failed upstream: %s %s", request.method, request.url.path, exc.message, exc.details)
        return JSONResponse(status_code=exc.status_code, content=_error_body(exc.code, exc.public_message))
    if isinstance(exc, AccessDeniedError):
        logger.info("Access denied on %s: %s", request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=_error_body(exc.code, exc.message, exc.details))


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Missing or malformed request fields become a 400 with a field-level detail map."""
    details = {}
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path", "form")]
        details[".".join(loc) or "request"] = err.get("msg", "Invalid value")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=_error_body(InvalidRequestError.code, "Request validation failed", details),
    )
