from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


def _error_payload(
    *,
    error: str,
    type_: str,
    code: str | None = None,
    details: Any | None = None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {"error": error, "code": code, "type": type_}
    if details is not None:
        payload["details"] = details
    return payload


class StudioError(Exception):
    """Base exception for the studio.

    Raised from services and step functions; the API translates it through the
    handlers registered in `register_exception_handlers`.
    """

    status_code: int = 400
    default_code: str | None = None

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        status_code: int | None = None,
        details: Any | None = None,
    ) -> None:
        self.message = message
        self.code = code if code is not None else self.default_code
        self.status_code = status_code if status_code is not None else self.status_code
        self.details = details
        super().__init__(message)


class InvalidInputError(StudioError):
    status_code = 400
    default_code = "invalid_input"


class AuthenticationError(StudioError):
    status_code = 401
    default_code = "authentication_required"


class PermissionDeniedError(StudioError):
    status_code = 403
    default_code = "permission_denied"


class AccessDeniedError(StudioError):
    """Studio entitlement is missing, disabled or expired."""

    status_code = 403
    default_code = "studio_access_denied"


class NotFoundError(StudioError):
    status_code = 404
    default_code = "not_found"


class StepLockedError(StudioError):
    """A workflow step was used before the steps it depends on were confirmed."""

    status_code = 409
    default_code = "step_locked"


class ProviderNotConfiguredError(StudioError):
    status_code = 400
    default_code = "provider_not_configured"


class ProviderError(StudioError):
    status_code = 502
    default_code = "provider_error"


class FetchError(StudioError):
    status_code = 502
    default_code = "fetch_error"


class ConfigurationError(StudioError):
    status_code = 500
    default_code = "configuration_error"


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(StudioError)
    async def _studio_exception_handler(_request: Request, exc: StudioError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_payload(
                error=exc.message,
                code=exc.code,
                type_=exc.__class__.__name__,
                details=exc.details,
            ),
        )

    @app.exception_handler(RequestValidationError)
    async def _validation_exception_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content=_error_payload(
                error="Validation error",
                code="validation_error",
                type_=exc.__class__.__name__,
                details=exc.errors(),
            ),
        )

    @app.exception_handler(StarletteHTTPException)
    async def _http_exception_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        detail = getattr(exc, "detail", None)
        if isinstance(detail, str):
            error = detail
            details = None
        else:
            error = "Request failed"
            details = detail
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_payload(error=error, code="http_exception", type_=exc.__class__.__name__, details=details),
        )

    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(_request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled exception: %s", exc)
        return JSONResponse(
            status_code=500,
            content=_error_payload(error="Internal server error", code="internal_error", type_="InternalServerError"),
        )
