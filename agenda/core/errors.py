"""
Application errors and the handlers that render them.

Every error response, whatever raised it, has the same JSON shape and echoes
the request id.
"""

import builtins
import logging
from typing import Any, Dict, Optional
from uuid import uuid4

from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.requests import Request

from agenda.core.logging import get_request_id

_logger = logging.getLogger("agenda")


class AppError(Exception):
    code = "app_error"
    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        request_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.request_id = request_id
        self.details = dict(details or {})


class ValidationError(AppError, ValueError):
    code = "validation_error"
    status_code = 400


class UnauthorizedError(AppError):
    code = "unauthorized"
    status_code = 401


class NotFoundError(AppError, ValueError):
    code = "not_found"
    status_code = 404


class PlanNotLoadedError(AppError):
    """Raised when a company has no resolvable plan."""
    code = "plan_not_loaded"
    status_code = 403


class PermissionDeniedError(AppError, builtins.PermissionError):
    """Raised when the company's plan does not include a feature."""
    code = "plan_permission_denied"
    status_code = 403

    def __init__(self, message: str, *, required_permission: str, **kwargs):
        details = kwargs.pop("details", None) or {}
        details["required_permission"] = required_permission
        super().__init__(message, details=details, **kwargs)
        self.required_permission = required_permission


class ProfessionalLimitError(AppError):
    """Raised when adding a professional would exceed the plan headcount."""
    code = "professional_limit_reached"
    status_code = 403

    def __init__(self, message: str, *, limit: int, current: int, **kwargs):
        details = kwargs.pop("details", None) or {}
        details.update({"limit": limit, "current": current})
        super().__init__(message, details=details, **kwargs)
        self.limit = limit
        self.current = current


class PlanFetchError(Exception):
    """Plan-info request failed (network error or non-2xx status)."""

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class AppointmentFetchError(PlanFetchError):
    """Appointment-list request failed (network error, non-2xx status or bad payload)."""


class EventStreamError(Exception):
    """Event-stream handshake was refused by the server."""

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def _request_id_for(request: Request) -> str:
    return getattr(request.state, "request_id", None) or get_request_id() or str(uuid4())


def error_response(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    *,
    request_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    """Normalized error body: {"error": {code, message, request_id, **details}, "detail": message}."""
    rid = request_id or _request_id_for(request)
    error = {"code": code, "message": message, "request_id": rid, **(details or {})}
    response = JSONResponse(status_code=status_code, content={"error": error, "detail": message})
    response.headers["x-request-id"] = rid
    return response


async def app_error_handler(request: Request, exc: AppError):
    level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    _logger.log(level, "app.error", extra={
        "request_id": exc.request_id or _request_id_for(request),
        "error_code": exc.code,
        "status": exc.status_code,
    })
    return error_response(
        request, exc.status_code, exc.code, exc.message,
        request_id=exc.request_id, details=exc.details,
    )


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    code = "not_found" if exc.status_code == 404 else "http_error"
    _logger.warning("http.error", extra={"error_code": code, "status": exc.status_code})
    return error_response(request, exc.status_code, code, str(exc.detail or "HTTP error"))


async def unhandled_exception_handler(request: Request, exc: Exception):
    _logger.error("unhandled.exception", exc_info=exc, extra={"error_code": "internal_error"})
    return error_response(request, 500, "internal_error", "Unexpected error")
