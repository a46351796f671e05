"""Exception handlers for the FastAPI application."""

import logging

from fastapi import Request, status
from fastapi.exceptions import HTTPException, RequestValidationError
from fastapi.responses import JSONResponse

from auth.errors import ErrorClassification
from auth.exceptions import AuthException

logger = logging.getLogger(__name__)


def create_error_response(status_code: int, message: str, data: dict | None = None) -> JSONResponse:
    """Create a standardized error response."""
    content = {"error": message}
    content.update(data or {})
    return JSONResponse(status_code=status_code, content=content)


def classification_response(error: ErrorClassification) -> JSONResponse:
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


def to_exception(error: ErrorClassification) -> AuthException:
    return AuthException(
        error.message,
        status_code=error.status_code,
        data={"kind": str(error.kind), "action": str(error.action)},
    )


async def auth_exception_handler(request: Request, exc: AuthException) -> JSONResponse:
    return create_error_response(exc.status_code, exc.message, exc.data)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return create_error_response(exc.status_code, str(exc.detail))


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies are local input errors, reported as 400 like other invalid input."""
    error_details = []
    for error in exc.errors():
        field = error["loc"][-1] if error.get("loc") else "unknown"
        message = error.get("msg", "")
        if message.startswith("Value error, "):
            message = message[13:]
        error_details.append({"field": str(field), "message": message})

    return create_error_response(
        status.HTTP_400_BAD_REQUEST,
        "Invalid request",
        {"kind": "invalid-input", "action": "retry-same-step", "validation_errors": error_details},
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "Unhandled exception occurred",
        extra={"path": request.url.path, "method": request.method},
    )
    return create_error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")
