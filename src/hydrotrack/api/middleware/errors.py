"""Error handling for consistent JSON error responses.

Every error leaves the API with the same body:

    {"error": <code>, "message": <text>, "detail": {...}, "request_id": <id>}

Service-layer errors (hydrotrack.services.errors) carry their own status
code and detail, so they are rendered directly; request schema failures
are rendered by the RequestValidationError handler registered on the app.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from hydrotrack.api.middleware.request_id import get_request_id
from hydrotrack.services.errors import ServiceError

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Base exception for errors raised by the HTTP layer itself."""

    def __init__(
        self,
        error: str,
        message: str,
        status_code: int = 400,
        detail: dict[str, Any] | None = None,
    ) -> None:
        """Initialize API error.

        Args:
            error: Machine-readable error code (e.g., "unauthorized").
            message: Human-readable error description.
            status_code: HTTP status code to return.
            detail: Optional additional details.
        """
        self.error = error
        self.message = message
        self.status_code = status_code
        self.detail = detail
        super().__init__(message)


class AuthenticationError(APIError):
    """Missing or malformed actor identity (401)."""

    def __init__(
        self, message: str = "Authentication required", detail: dict[str, Any] | None = None
    ) -> None:
        super().__init__(
            error="unauthorized",
            message=message,
            status_code=401,
            detail=detail,
        )


def build_error_response(
    error: str,
    message: str,
    status_code: int,
    detail: dict[str, Any] | None = None,
) -> JSONResponse:
    """Build a standardized error response.

    Args:
        error: Machine-readable error code.
        message: Human-readable description.
        status_code: HTTP status code.
        detail: Optional additional details.

    Returns:
        JSONResponse with consistent error structure.
    """
    body: dict[str, Any] = {
        "error": error,
        "message": message,
    }

    request_id = get_request_id()
    if request_id:
        body["request_id"] = request_id

    if detail:
        body["detail"] = detail

    return JSONResponse(status_code=status_code, content=body)


def service_error_response(exc: ServiceError) -> JSONResponse:
    """Render a service-layer error."""
    log = logger.warning if exc.status_code >= 409 else logger.info
    log(
        "Request rejected: %s",
        exc.message,
        extra={"error_code": exc.error_code, "status_code": exc.status_code},
    )
    return build_error_response(
        error=exc.error_code,
        message=exc.message,
        status_code=exc.status_code,
        detail=exc.detail,
    )


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Catch exceptions escaping the routers and return JSON errors.

    Handles:
    - ServiceError and subclasses: lifecycle service errors
    - APIError and subclasses: HTTP-layer errors
    - HTTPException: FastAPI's built-in HTTP errors
    - Generic exceptions: unexpected errors (logged, returns 500)
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Response]
    ) -> Response:
        try:
            return await call_next(request)
        except ServiceError as exc:
            return service_error_response(exc)
        except APIError as exc:
            return build_error_response(
                error=exc.error,
                message=exc.message,
                status_code=exc.status_code,
                detail=exc.detail,
            )
        except HTTPException as exc:
            return build_error_response(
                error="http_error",
                message=str(exc.detail),
                status_code=exc.status_code,
            )
        except Exception:
            logger.exception(
                "Unexpected error processing request: %s %s",
                request.method,
                request.url.path,
            )
            return build_error_response(
                error="internal_error",
                message="An internal error occurred",
                status_code=500,
            )


def register_exception_handlers(app: FastAPI) -> None:
    """Render request validation and service errors in the common format.

    FastAPI handles RequestValidationError before middleware sees it, so
    it needs an app-level handler. Service errors get one too so they are
    rendered the same way when raised from a dependency.
    """

    async def _request_validation(_: Request, exc: RequestValidationError) -> JSONResponse:
        errors: dict[str, list[str]] = {}
        for err in exc.errors():
            loc = [str(part) for part in err["loc"] if part not in ("body", "query", "path")]
            errors.setdefault(".".join(loc) or "body", []).append(err["msg"])
        return build_error_response(
            error="validation_error",
            message="Request validation failed",
            status_code=422,
            detail={"errors": errors},
        )

    async def _service_error(_: Request, exc: ServiceError) -> JSONResponse:
        return service_error_response(exc)

    async def _api_error(_: Request, exc: APIError) -> JSONResponse:
        return build_error_response(exc.error, exc.message, exc.status_code, exc.detail)

    app.add_exception_handler(RequestValidationError, _request_validation)
    app.add_exception_handler(ServiceError, _service_error)
    app.add_exception_handler(APIError, _api_error)
