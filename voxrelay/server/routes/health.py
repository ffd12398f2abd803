"""Health check endpoint."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request

import voxrelay

router = APIRouter()


@router.get("/health")
async def health(request: Request) -> dict[str, Any]:
    """Runtime health check.

    ``"ok"`` when collaborators are configured, ``"degraded"`` otherwise.
    Includes the number of live sessions.
    """
    orchestrator = getattr(request.app.state, "orchestrator", None)
    response: dict[str, Any] = {
        "status": "ok" if orchestrator is not None else "degraded",
        "version": voxrelay.__version__,
    }
    if orchestrator is not None:
        response["sessions"] = len(orchestrator.registry)
    return response
