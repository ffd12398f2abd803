"""FastAPI dependencies for injection of the orchestrator and request limits."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import Request  # noqa: TC002

from voxrelay.exceptions import ServiceNotConfiguredError

if TYPE_CHECKING:
    from voxrelay.session.orchestrator import SessionOrchestrator


def get_orchestrator(request: Request) -> SessionOrchestrator:
    """Return the SessionOrchestrator from app state.

    Raises:
        ServiceNotConfiguredError: If no orchestrator was passed to create_app().
    """
    orchestrator = request.app.state.orchestrator
    if orchestrator is None:
        raise ServiceNotConfiguredError("SessionOrchestrator")
    return orchestrator  # type: ignore[no-any-return]


def get_max_audio_bytes(request: Request) -> int:
    return request.app.state.max_audio_frame_bytes  # type: ignore[no-any-return]
