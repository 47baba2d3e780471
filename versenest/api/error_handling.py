"""Exception handlers rendering every failure as the standard error envelope.

    {"success": false, "error": {"code", "message", "timestamp"}}

Validation failures add "details"; rate limiting adds "retryAfter". Stack
traces and internal messages never reach the client.
"""

import logging
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from versenest.api.cookies import clear_auth_cookies
from versenest.core.errors import (
    AccountBannedError,
    AccountInactiveError,
    AppError,
    IdentityNotFoundError,
    InvalidTokenError,
    RateLimitError,
)
from versenest.middleware.request_gate import ACCESS_COOKIE, REFRESH_COOKIE

logger = logging.getLogger(__name__)

_STATUS_TO_CODE = {
    400: "BAD_REQUEST",
    401: "AUTHENTICATION_ERROR",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    422: "VALIDATION_ERROR",
    429: "RATE_LIMITED",
    500: "INTERNAL_ERROR",
    503: "SERVICE_UNAVAILABLE",
}

# Failures after which any credential cookie the client holds is useless
_STALE_CREDENTIAL_ERRORS = (
    InvalidTokenError,
    IdentityNotFoundError,
    AccountInactiveError,
    AccountBannedError,
)


def error_response(
    status_code: int,
    code: str,
    message: str,
    *,
    details: Any = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    error: dict[str, Any] = {
        "code": code,
        "message": message,
        "timestamp": datetime.now(UTC).isoformat(),
    }
    if details is not None:
        error["details"] = details
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": error},
        headers=headers,
    )


def _validation_details(exc: RequestValidationError) -> list[dict[str, Any]]:
    # Drop "input": it may echo a submitted password back
    return [
        {
            "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
            "message": err.get("msg", "Invalid value"),
            "type": err.get("type"),
        }
        for err in exc.errors()
    ]


def register_exception_handlers(app: FastAPI) -> None:
    """Install consistent exception handlers for application and framework errors."""

    @app.exception_handler(AppError)
    async def handle_app_error(request: Request, exc: AppError) -> JSONResponse:
        log_fn = logger.error if exc.status_code >= 500 else logger.info
        log_fn(
            f"{request.method} {request.url.path} -> {exc.status_code} {exc.error_code}"
        )

        headers: dict[str, str] = {}
        if exc.status_code == 401:
            headers["WWW-Authenticate"] = "Bearer"
        if isinstance(exc, RateLimitError):
            headers["Retry-After"] = str(exc.retry_after)

        response = JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": exc.to_dict()},
            headers=headers or None,
        )
        if isinstance(exc, _STALE_CREDENTIAL_ERRORS) and (
            ACCESS_COOKIE in request.cookies or REFRESH_COOKIE in request.cookies
        ):
            clear_auth_cookies(response)
        return response

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        details = _validation_details(exc)
        logger.info(f"{request.method} {request.url.path} -> 422 ({len(details)} field errors)")
        return error_response(422, "VALIDATION_ERROR", "Validation failed", details=details)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        code = _STATUS_TO_CODE.get(exc.status_code, "HTTP_ERROR")
        message = exc.detail if isinstance(exc.detail, str) else "Request failed"
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} -> {exc.status_code}")
            message = "An unexpected error occurred"
        return error_response(exc.status_code, code, message, headers=exc.headers)

    @app.exception_handler(Exception)
    async def handle_uncaught(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(
            f"Unhandled {type(exc).__name__} on {request.method} {request.url.path}"
        )
        return error_response(500, "INTERNAL_ERROR", "An unexpected error occurred")
