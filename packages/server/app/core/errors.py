"""
Typed failures and the JSON error envelope.

Every domain failure is an ``AppError`` (an ``HTTPException``) carrying a
stable machine code. Handlers registered by ``register_error_handlers``
render all of them, plus request validation errors and unexpected
exceptions, as::

    {"error": {"code": "...", "message": "...", "status": 400}}
"""

from __future__ import annotations

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import JSONResponse

from app.core.config import get_settings

log = structlog.get_logger()


class AppError(HTTPException):
    status_code: int = 500
    code: str = "INTERNAL_ERROR"
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(status_code=type(self).status_code, detail=self.message)


# 400 ----------------------------------------------------------------------

class ValidationError(AppError):
    status_code = 400
    code = "VALIDATION_ERROR"
    default_message = "Invalid request"


class InvalidOrExpiredToken(AppError):
    status_code = 400
    code = "INVALID_OR_EXPIRED_TOKEN"
    default_message = "Invalid or expired token"


class AlreadyMember(AppError):
    status_code = 400
    code = "ALREADY_MEMBER"
    default_message = "User with this email already exists in your company"


class CannotRemoveOwner(AppError):
    status_code = 400
    code = "CANNOT_REMOVE_OWNER"
    default_message = "Cannot delete company owner"


# 401 ----------------------------------------------------------------------

class Unauthenticated(AppError):
    status_code = 401
    code = "UNAUTHENTICATED"
    default_message = "Not authorized to access this route"


class InvalidCredentials(AppError):
    status_code = 401
    code = "INVALID_CREDENTIALS"
    default_message = "Invalid credentials"


class InvitationPending(InvalidCredentials):
    code = "INVITATION_PENDING"
    default_message = (
        "Please accept your invitation first. Check your email for the invite link."
    )


# 403 ----------------------------------------------------------------------

class Forbidden(AppError):
    status_code = 403
    code = "FORBIDDEN"
    default_message = "Not authorized to perform this action"


class NotOrganizationMember(Forbidden):
    code = "NOT_ORGANIZATION_MEMBER"
    default_message = "You are not a member of this organization"


# 404 ----------------------------------------------------------------------

class NotFound(AppError):
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Not found"


# 409 ----------------------------------------------------------------------

class Conflict(AppError):
    status_code = 409
    code = "CONFLICT"
    default_message = "Conflict"


class DuplicateMembership(Conflict):
    code = "DUPLICATE_MEMBERSHIP"
    default_message = "User is already a member of this organization"


class GenerationExhausted(Conflict):
    code = "GENERATION_EXHAUSTED"
    default_message = "Failed to generate unique organization ID"


# 502 ----------------------------------------------------------------------

class ExternalDependencyFailure(AppError):
    status_code = 502
    code = "EXTERNAL_DEPENDENCY_FAILURE"
    default_message = "An external service failed. Please try again later."


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------

def error_body(code: str, message: str, status: int) -> dict:
    return {"error": {"code": code, "message": message, "status": status}}


async def _app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.code, exc.message, exc.status_code),
    )


async def _http_error_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body("HTTP_ERROR", str(exc.detail), exc.status_code),
        headers=getattr(exc, "headers", None),
    )


async def _validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    messages = []
    for err in exc.errors():
        field = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        messages.append(f"{field}: {err.get('msg')}" if field else err.get("msg"))
    return JSONResponse(
        status_code=400,
        content=error_body("VALIDATION_ERROR", "; ".join(messages) or "Invalid request", 400),
    )


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    log.exception("request.unhandled_error", path=request.url.path, method=request.method)
    message = "Internal server error"
    if get_settings().debug:
        message = f"{type(exc).__name__}: {exc}"
    return JSONResponse(status_code=500, content=error_body("INTERNAL_ERROR", message, 500))


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, _app_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
