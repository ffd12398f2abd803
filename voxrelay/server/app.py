"""FastAPI application factory for voxrelay."""

from __future__ import annotations

import asyncio
import contextlib
import uuid
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

import voxrelay
from voxrelay.config.settings import ServerSettings
from voxrelay.logging import get_logger
from voxrelay.server.error_handlers import register_error_handlers
from voxrelay.server.routes import fallback, health, realtime

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from voxrelay.session.orchestrator import SessionOrchestrator

logger = get_logger("server.app")


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Assign a unique request_id to each HTTP request."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request.state.request_id = str(uuid.uuid4())
        return await call_next(request)


async def _idle_sweeper(app: FastAPI) -> None:
    """Periodically tear down polling sessions that stopped polling."""
    while True:
        await asyncio.sleep(app.state.sweep_interval_s)
        orchestrator: SessionOrchestrator | None = app.state.orchestrator
        if orchestrator is None:
            continue
        try:
            await orchestrator.registry.sweep_idle(app.state.polling_idle_timeout_s)
        except Exception:
            logger.exception("idle_sweep_failed")


def create_app(
    orchestrator: SessionOrchestrator | None = None,
    server_settings: ServerSettings | None = None,
    cors_origins: list[str] | None = None,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        orchestrator: Session orchestrator (optional, None only for health
            endpoint tests; session routes answer 503 without it).
        server_settings: Sweeper cadence, idle timeout, frame size limit.
        cors_origins: List of allowed CORS origins (optional).

    Returns:
        Configured FastAPI application.
    """
    settings = server_settings or ServerSettings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        sweeper = asyncio.create_task(_idle_sweeper(app), name="idle-sweeper")
        try:
            yield
        finally:
            sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sweeper
            if app.state.orchestrator is not None:
                await app.state.orchestrator.registry.close_all()

    app = FastAPI(
        title="voxrelay",
        version=voxrelay.__version__,
        description="Realtime voice session orchestrator (STT -> LLM -> TTS)",
        lifespan=lifespan,
    )

    app.state.orchestrator = orchestrator
    app.state.sweep_interval_s = settings.sweep_interval_s
    app.state.polling_idle_timeout_s = settings.polling_idle_timeout_s
    app.state.max_audio_frame_bytes = settings.max_audio_frame_bytes

    if cors_origins:
        from fastapi.middleware.cors import CORSMiddleware

        app.add_middleware(
            CORSMiddleware,
            allow_origins=cors_origins,
            allow_credentials="*" not in cors_origins,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.add_middleware(RequestIDMiddleware)

    register_error_handlers(app)

    app.include_router(health.router)
    app.include_router(fallback.router)
    app.include_router(realtime.router)

    return app
