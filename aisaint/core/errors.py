"""Error taxonomy and FastAPI error handlers."""

import logging
from typing import Optional
from uuid import uuid4

from fastapi import HTTPException
from fastapi.responses import JSONResponse
from starlette.requests import Request

from aisaint.core.logging import get_request_id


class AppError(Exception):
    code = "app_error"
    status_code = 500

    def __init__(self, message: str, *, code: Optional[str] = None, status_code: Optional[int] = None, request_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.request_id = request_id


class UnauthenticatedError(AppError):
    code = "unauthenticated"
    status_code = 401


class ValidationError(AppError, ValueError):
    code = "validation_error"
    status_code = 400


class QuotaExceededError(AppError):
    code = "quota_exceeded"
    status_code = 403


class UpstreamError(AppError):
    """Text generation failed (missing credential, transport error, bad output)."""
    code = "upstream_error"
    status_code = 502


class StorageError(Exception):
    """Raised by the conversation store on driver/database failures.

    Never surfaced to callers: the chat and history services absorb it as a
    degraded-storage condition.
    """

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        super().__init__(f"storage operation failed: {operation}")
        self.operation = operation
        self.cause = cause


def _request_id_for(request: Request) -> str:
    return getattr(request.state, "request_id", None) or get_request_id() or uuid4().hex


def error_response(request: Request, status_code: int, code: str, message: str, request_id: Optional[str] = None) -> JSONResponse:
    """Render the error envelope shared by every failing route."""
    rid = request_id or _request_id_for(request)
    level = logging.ERROR if status_code >= 500 else logging.WARNING
    logging.getLogger("aisaint").log(
        level,
        "request.failed",
        extra={"request_id": rid, "error_code": code, "status": status_code, "path": request.url.path},
    )
    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": code, "message": message, "request_id": rid}, "detail": message},
        headers={"x-request-id": rid},
    )


async def app_error_handler(request: Request, exc: AppError):
    return error_response(request, exc.status_code, exc.code, exc.message, exc.request_id)


async def http_error_handler(request: Request, exc: HTTPException):
    code = "not_found" if exc.status_code == 404 else "http_error"
    return error_response(request, exc.status_code, code, str(exc.detail or "HTTP error"))


async def unhandled_exception_handler(request: Request, exc: Exception):
    logging.getLogger("aisaint").error(
        "unhandled.exception",
        exc_info=(type(exc), exc, exc.__traceback__),
        extra={"error_code": "internal_error"},
    )
    return error_response(request, 500, "internal_error", "Unexpected error")
