"""Integration self-test: probe each collaborator and report reachability."""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING

from voxrelay._types import ServiceCheckResult
from voxrelay.logging import get_logger
from voxrelay.server.models.events import IntegrationTestReport, ServiceResult

if TYPE_CHECKING:
    from collections.abc import Callable

    from voxrelay.providers.interface import (
        ResponseGenerator,
        SpeechRecognizer,
        SpeechSynthesizer,
    )
    from voxrelay.providers.loader import Collaborators

    Probe = SpeechRecognizer | ResponseGenerator | SpeechSynthesizer

logger = get_logger("session.integration")


class IntegrationTestRunner:
    """Probes recognizer, generator, and synthesizer in that order.

    Each probe is bounded by ``timeout_s``; a probe that raises, times out,
    or returns False is reported as an error. The run never raises.
    """

    def __init__(
        self,
        collaborators: Collaborators,
        timeout_s: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._collaborators = collaborators
        self._timeout_s = timeout_s
        self._clock = clock

    async def run(self) -> IntegrationTestReport:
        started = self._clock()
        checks = [
            await self._probe(self._collaborators.recognizer),
            await self._probe(self._collaborators.generator),
            await self._probe(self._collaborators.synthesizer),
        ]
        report = IntegrationTestReport(
            success=all(c.status == "success" for c in checks),
            results=[
                ServiceResult(
                    service=c.service,
                    status=c.status,  # type: ignore[arg-type]
                    latency=c.latency_ms,
                    error=c.error,
                    details=c.details,
                )
                for c in checks
            ],
            total_latency=self._elapsed_ms(started),
        )
        logger.info(
            "integration_test_complete",
            success=report.success,
            total_latency_ms=report.total_latency,
        )
        return report

    async def _probe(self, collaborator: Probe) -> ServiceCheckResult:
        started = self._clock()
        error: str | None = None
        try:
            reachable = await asyncio.wait_for(collaborator.check(), timeout=self._timeout_s)
        except asyncio.TimeoutError:
            reachable = False
            error = f"No response within {self._timeout_s}s"
        except Exception as exc:
            reachable = False
            error = str(exc) or type(exc).__name__
        else:
            if not reachable:
                error = "Connection failed"

        result = ServiceCheckResult(
            service=collaborator.name,
            status="success" if reachable else "error",
            latency_ms=self._elapsed_ms(started),
            error=error,
        )
        if error is not None:
            logger.warning("integration_probe_failed", service=result.service, error=error)
        return result

    def _elapsed_ms(self, started: float) -> int:
        return round((self._clock() - started) * 1000)
