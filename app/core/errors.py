from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from loguru import logger


class AppError(Exception):
    status_code: int = 400
    code: str = "error"
    detail: str = "Request failed"

    def __init__(self, detail: str | None = None, *, errors: list[dict[str, Any]] | None = None):
        self.detail = detail or self.detail
        self.errors = errors
        super().__init__(self.detail)


class ValidationError(AppError):
    status_code = 400
    code = "validation_error"
    detail = "Invalid input"

    @classmethod
    def field(cls, field: str, message: str) -> "ValidationError":
        return cls(message, errors=[{"field": field, "message": message}])


class NotFound(AppError):
    status_code = 404
    code = "not_found"
    detail = "Not found"


class Unauthorized(AppError):
    status_code = 401
    code = "unauthorized"
    detail = "Not authenticated"


class Forbidden(AppError):
    status_code = 403
    code = "forbidden"
    detail = "Access denied"


class Conflict(AppError):
    status_code = 409
    code = "conflict"
    detail = "Conflict"


class InvalidCredentials(Unauthorized):
    code = "invalid_credentials"
    detail = "Invalid username or password"


class ExpiredOrInvalidRenewalCredential(Unauthorized):
    code = "invalid_refresh_token"
    detail = "Invalid or expired refresh token"


class DuplicateUsername(Conflict):
    code = "duplicate_username"
    detail = "Username already exists"


class ForbiddenRoleDeletion(Forbidden):
    code = "forbidden_role_deletion"
    detail = "Cannot delete admin users"


class AgentAssigned(Conflict):
    code = "agent_assigned"
    detail = "Agent is still assigned to events"


class GiftInUse(Conflict):
    code = "gift_in_use"
    detail = "Gift has been chosen by guests"


class InvalidStatus(ValidationError):
    code = "invalid_status"
    detail = "Invalid status value"


class EventNotActive(Forbidden):
    code = "event_not_active"
    detail = "Event is not active yet"


class DuplicateRegistration(Conflict):
    code = "duplicate_registration"
    detail = "Guest already registered for this event"


class InvalidCode(NotFound):
    code = "invalid_code"
    detail = "Invalid OTP"


class AlreadyRedeemed(Conflict):
    code = "already_redeemed"
    detail = "OTP already used"


class CodeAllocationFailed(AppError):
    status_code = 503
    code = "code_allocation_failed"
    detail = "Could not allocate a verification code, please retry"


def _body(exc: AppError) -> dict[str, Any]:
    body: dict[str, Any] = {"detail": exc.detail, "code": exc.code}
    if exc.errors:
        body["errors"] = exc.errors
    return body


async def handle_app_error(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("{} {} -> {}: {}", request.method, request.url.path, exc.code, exc.detail)
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(status_code=exc.status_code, content=_body(exc), headers=headers)


async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = []
    for err in exc.errors():
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path", "form")]
        errors.append({"field": ".".join(loc) or "request", "message": err.get("msg", "Invalid value")})
    return JSONResponse(
        status_code=ValidationError.status_code,
        content={"detail": ValidationError.detail, "code": ValidationError.code, "errors": errors},
    )


async def catch_unexpected(request: Request, call_next) -> Response:
    """Last-resort boundary: log once and answer a generic 500."""
    try:
        return await call_next(request)
    except Exception:
        logger.exception("Unhandled error on {} {}", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"detail": "Internal server error", "code": "server_error"})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, handle_app_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation)
    # an Exception handler would run in ServerErrorMiddleware, which re-raises
    app.middleware("http")(catch_unexpected)
