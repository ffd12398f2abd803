"""HTTP exception handlers for FastAPI.

Maps typed voxrelay exceptions to HTTP responses with the correct status codes.
Error bodies share one shape: ``{"error": {"message", "type", "code"}}``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi.responses import JSONResponse

from voxrelay.exceptions import (
    InvalidRequestError,
    ServiceNotConfiguredError,
    SessionNotFoundError,
    TransportConflictError,
    VoxRelayError,
)
from voxrelay.logging import get_logger

if TYPE_CHECKING:
    from fastapi import FastAPI, Request

logger = get_logger("server.errors")


def _error_response(status_code: int, message: str, error_type: str, code: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": {
                "message": message,
                "type": error_type,
                "code": code,
            }
        },
    )


def _get_request_id(request: Request) -> str | None:
    """Extract request_id from request state, if available."""
    return getattr(request.state, "request_id", None)


async def _handle_invalid_request(request: Request, exc: InvalidRequestError) -> JSONResponse:
    logger.warning(
        "invalid_request",
        detail=exc.detail,
        request_id=_get_request_id(request),
    )
    return _error_response(400, str(exc), "invalid_request_error", "invalid_request")


async def _handle_session_not_found(request: Request, exc: SessionNotFoundError) -> JSONResponse:
    logger.warning(
        "session_not_found",
        client_id=exc.client_id,
        request_id=_get_request_id(request),
    )
    return _error_response(404, str(exc), "session_not_found_error", "session_not_found")


async def _handle_transport_conflict(
    request: Request, exc: TransportConflictError
) -> JSONResponse:
    logger.warning(
        "transport_conflict",
        client_id=exc.client_id,
        request_id=_get_request_id(request),
    )
    return _error_response(409, str(exc), "transport_conflict_error", "transport_conflict")


async def _handle_not_configured(
    request: Request, exc: ServiceNotConfiguredError
) -> JSONResponse:
    logger.error(
        "service_not_configured",
        service=exc.service_name,
        request_id=_get_request_id(request),
    )
    return JSONResponse(
        status_code=503,
        content={
            "error": {
                "message": str(exc),
                "type": "service_not_configured_error",
                "code": "service_unavailable",
            }
        },
        headers={"Retry-After": "5"},
    )


async def _handle_voxrelay_error(request: Request, exc: VoxRelayError) -> JSONResponse:
    logger.error(
        "unhandled_voxrelay_error",
        error=str(exc),
        error_type=type(exc).__name__,
        request_id=_get_request_id(request),
        exc_info=True,
    )
    return _error_response(500, "Internal server error", "internal_error", "internal_error")


async def _handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "unexpected_error",
        error=str(exc),
        error_type=type(exc).__name__,
        request_id=_get_request_id(request),
        exc_info=True,
    )
    return _error_response(500, "Internal server error", "internal_error", "internal_error")


def register_error_handlers(app: FastAPI) -> None:
    """Register all exception handlers on the FastAPI app."""
    app.add_exception_handler(InvalidRequestError, _handle_invalid_request)  # type: ignore[arg-type]
    app.add_exception_handler(SessionNotFoundError, _handle_session_not_found)  # type: ignore[arg-type]
    app.add_exception_handler(TransportConflictError, _handle_transport_conflict)  # type: ignore[arg-type]
    app.add_exception_handler(ServiceNotConfiguredError, _handle_not_configured)  # type: ignore[arg-type]
    app.add_exception_handler(VoxRelayError, _handle_voxrelay_error)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _handle_unexpected_error)
