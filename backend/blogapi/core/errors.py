from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


logger = logging.getLogger("blog.auth")


class AuthError(Exception):
    """
    Base class for auth-subsystem failures mapped to HTTP responses.

    Services raise these; the HTTP layer never inspects them beyond the
    registered exception handler.
    """

    status_code: int = 400
    error_code: str = "bad_request"
    message: str = "Bad request"
    field: Optional[str] = None

    def __init__(self, message: Optional[str] = None, *, field: Optional[str] = None) -> None:
        if message is not None:
            self.message = message
        if field is not None:
            self.field = field
        super().__init__(self.message)

    def errors(self) -> list[dict]:
        if not self.field:
            return []
        return [{"field": self.field, "message": self.message}]


class InvalidCredentials(AuthError):
    status_code = 401
    error_code = "invalid_credentials"
    message = "Invalid credentials"


class Unauthorized(AuthError):
    status_code = 401
    error_code = "unauthorized"
    message = "Not authenticated"


class Forbidden(AuthError):
    status_code = 403
    error_code = "forbidden"
    message = "Forbidden"


class NotFound(AuthError):
    status_code = 404
    error_code = "not_found"
    message = "Not found"


class RateLimited(AuthError):
    status_code = 429
    error_code = "rate_limited"
    message = "Too many requests"

    def __init__(self, retry_after_seconds: int = 0) -> None:
        super().__init__()
        self.retry_after_seconds = retry_after_seconds


class CodeNotFound(AuthError):
    error_code = "code_not_found"
    message = "Confirmation code is incorrect"
    field = "code"


class AlreadyConfirmed(AuthError):
    error_code = "already_confirmed"
    message = "Confirmation code has already been applied"
    field = "code"


class CodeExpired(AuthError):
    error_code = "code_expired"
    message = "Confirmation code is expired"
    field = "code"


class NoSuchUser(AuthError):
    error_code = "no_such_user"
    message = "No user with such email"
    field = "email"


class InvalidRecoveryCode(AuthError):
    error_code = "invalid_recovery_code"
    message = "Recovery code is incorrect or expired"
    field = "recoveryCode"


class ValidationFailed(AuthError):
    """Field-level failure; may carry several field errors."""

    error_code = "validation_failed"
    message = "Validation failed"

    def __init__(self, field_errors: list[tuple[str, str]]) -> None:
        super().__init__()
        self.field_errors = field_errors

    def errors(self) -> list[dict]:
        return [{"field": f, "message": m} for f, m in self.field_errors]


def error_response(exc: AuthError) -> JSONResponse:
    content: dict = {"detail": exc.message, "code": exc.error_code}
    errors = exc.errors()
    if errors:
        content["errorsMessages"] = errors

    headers = None
    if isinstance(exc, RateLimited) and exc.retry_after_seconds:
        headers = {"Retry-After": str(exc.retry_after_seconds)}
    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


def _validation_failure(exc: RequestValidationError) -> ValidationFailed:
    field_errors: list[tuple[str, str]] = []
    seen = set()
    for err in exc.errors():
        loc = [str(p) for p in err.get("loc", ()) if p != "body"]
        field = loc[-1] if loc else "body"
        # First error per field only
        if field in seen:
            continue
        seen.add(field)
        field_errors.append((field, str(err.get("msg") or "Invalid value")))
    return ValidationFailed(field_errors)


def register_exception_handlers(app: FastAPI) -> None:
    """Translate AuthError subclasses and body validation errors into JSON responses."""

    @app.exception_handler(AuthError)
    async def handle_auth_error(request: Request, exc: AuthError):
        if exc.status_code >= 500:
            logger.error("auth_error path=%s code=%s", request.url.path, exc.error_code)
        else:
            logger.info("auth_error path=%s code=%s", request.url.path, exc.error_code)
        return error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        failure = _validation_failure(exc)
        logger.info("validation_error path=%s fields=%s", request.url.path, [f for f, _ in failure.field_errors])
        return error_response(failure)
