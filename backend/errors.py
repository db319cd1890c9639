"""
API error taxonomy and exception handlers.

Every error response has the shape ``{"message": ..., "error": <CODE>}``.
Validation failures additionally list each offending field under ``errors``.
"""

import logging
import traceback
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class ErrorCode:
    """Machine-readable error codes returned in the ``error`` field."""

    # 400
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_CURRENT_PASSWORD = "INVALID_CURRENT_PASSWORD"
    INVALID_TASK_IDS = "INVALID_TASK_IDS"
    INVALID_OPERATION = "INVALID_OPERATION"
    MISSING_STATUS = "MISSING_STATUS"
    MISSING_PRIORITY = "MISSING_PRIORITY"

    # 401
    NO_TOKEN = "NO_TOKEN"
    INVALID_TOKEN = "INVALID_TOKEN"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"

    # 403
    INSUFFICIENT_PERMISSIONS = "INSUFFICIENT_PERMISSIONS"

    # 404
    NOT_FOUND = "NOT_FOUND"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    TASK_NOT_FOUND = "TASK_NOT_FOUND"

    # 409
    USER_EXISTS = "USER_EXISTS"

    # 429
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"

    # 500
    SERVER_ERROR = "SERVER_ERROR"


# Fallback codes for errors raised by the framework itself (unknown route, bad method)
_STATUS_CODES = {
    400: ErrorCode.VALIDATION_ERROR,
    401: ErrorCode.NO_TOKEN,
    403: ErrorCode.INSUFFICIENT_PERMISSIONS,
    404: ErrorCode.NOT_FOUND,
    405: "METHOD_NOT_ALLOWED",
    429: ErrorCode.RATE_LIMIT_EXCEEDED,
}


class ApiError(HTTPException):
    """HTTPException carrying a machine-readable error code."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = ErrorCode.SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        errors: Optional[List[Dict[str, Any]]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        super().__init__(status_code=type(self).status_code, detail=message, headers=headers)
        self.code = code or type(self).code
        self.errors = errors


class BadRequestError(ApiError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = ErrorCode.VALIDATION_ERROR


class AuthError(ApiError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = ErrorCode.INVALID_TOKEN

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message, code=code, headers={"WWW-Authenticate": "Bearer"})


class ForbiddenError(ApiError):
    status_code = status.HTTP_403_FORBIDDEN
    code = ErrorCode.INSUFFICIENT_PERMISSIONS


class NotFoundError(ApiError):
    status_code = status.HTTP_404_NOT_FOUND
    code = ErrorCode.NOT_FOUND


class ConflictError(ApiError):
    status_code = status.HTTP_409_CONFLICT
    code = ErrorCode.USER_EXISTS


def error_body(message: str, code: str, **extra: Any) -> Dict[str, Any]:
    body = {"message": message, "error": code}
    body.update(extra)
    return body


def _field_errors(exc: RequestValidationError) -> List[Dict[str, str]]:
    field_errors = []
    for error in exc.errors():
        # Drop the "body"/"query"/"path" prefix from the location
        location = [str(part) for part in error.get("loc", ())[1:]]
        message = error.get("msg", "Invalid value")
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        field_errors.append({"field": ".".join(location) or "body", "message": message})
    return field_errors


def register_exception_handlers(app: FastAPI, is_development: bool) -> None:
    """Install the handlers that render every error as ``{message, error}``."""

    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError):
        extra = {"errors": exc.errors} if exc.errors else {}
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.detail, exc.code, **extra),
            headers=exc.headers,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        field_errors = _field_errors(exc)
        logger.info(f"Validation failed for {request.method} {request.url.path}: {field_errors}")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=error_body("Validation failed", ErrorCode.VALIDATION_ERROR, errors=field_errors),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        message = exc.detail
        if exc.status_code == status.HTTP_404_NOT_FOUND and message == "Not Found":
            message = "Route not found"
        code = _STATUS_CODES.get(exc.status_code, ErrorCode.SERVER_ERROR)
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(str(message), code),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
        if is_development:
            body = error_body(
                "Something went wrong!",
                str(exc) or exc.__class__.__name__,
                stack=traceback.format_exception(type(exc), exc, exc.__traceback__),
            )
        else:
            body = error_body("Something went wrong!", ErrorCode.SERVER_ERROR)
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=body)
