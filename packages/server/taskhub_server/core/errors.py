"""
Typed service errors.

Every error a service raises on purpose is a ``ServiceError``. They are
HTTPExceptions so routes need no translation layer, and carry a stable
``code`` so clients can tell "you can't do this" apart from "this broke".
"""

from __future__ import annotations

from typing import Optional

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from taskhub_shared.schemas.common import DenyReason, ErrorDetail, ErrorResponse


class ServiceError(HTTPException):
    status_code = 400
    code = "bad_request"

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        headers: Optional[dict[str, str]] = None,
    ):
        super().__init__(status_code=type(self).status_code, detail=message, headers=headers)
        self.message = message
        if code is not None:
            self.code = code


class AuthenticationFailed(ServiceError):
    status_code = 401
    code = "unauthenticated"


class AccessDenied(ServiceError):
    status_code = 403

    def __init__(self, reason: DenyReason, message: str):
        super().__init__(message, code=reason.value)
        self.reason = reason


class InvalidJoinCode(AccessDenied):
    def __init__(self, message: str = "Invalid join code"):
        super().__init__(DenyReason.INVALID_CODE, message)


class ResourceNotFound(ServiceError):
    status_code = 404
    code = "not_found"


class InvariantViolation(ServiceError):
    """The operation would break a membership invariant; nothing was written."""
    status_code = 409
    code = "invariant_violation"


class Conflict(ServiceError):
    status_code = 409
    code = "conflict"


def error_body(code: str, message: str, status: int) -> dict:
    return ErrorResponse(error=ErrorDetail(code=code, message=message, status=status)).model_dump()


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.code, exc.message, exc.status_code),
        headers=exc.headers,
    )


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Routing errors (unknown path, wrong method) in the same envelope."""
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body("http_error", str(exc.detail), exc.status_code),
        headers=getattr(exc, "headers", None),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()))
    message = f"{location}: {first.get('msg', 'invalid request')}" if location else "Invalid request"
    return JSONResponse(
        status_code=422,
        content=error_body("validation_error", message, 422),
    )
