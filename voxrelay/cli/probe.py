"""`voxrelay probe` command: checks a running server end to end."""

from __future__ import annotations

import asyncio
import sys
import uuid
from typing import Any

import click

from voxrelay._types import TransportMode
from voxrelay.cli.main import cli
from voxrelay.config.settings import get_settings
from voxrelay.logging import configure_logging

DEFAULT_SERVER_URL = get_settings().client.server_url


@cli.command()
@click.option(
    "--server",
    default=DEFAULT_SERVER_URL,
    show_default=True,
    help="voxrelay server URL.",
)
@click.option(
    "--mode",
    type=click.Choice([m.value for m in TransportMode]),
    default=TransportMode.SOCKET.value,
    show_default=True,
    help="Transport to probe with.",
)
@click.option("--timeout", default=30.0, type=float, show_default=True, help="Seconds to wait.")
def probe(server: str, mode: str, timeout: float) -> None:
    """Connect to a server and run its integration self-test.

    Requires the server to be running (voxrelay serve). Exits non-zero if
    the connection fails or any collaborator is unreachable.
    """
    configure_logging(level="WARNING")
    try:
        report = asyncio.run(_probe(server, TransportMode(mode), timeout))
    except (ConnectionError, asyncio.TimeoutError) as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    results = report.get("results", [])
    name_w = max([len(str(r.get("service", ""))) for r in results] + [7])
    click.echo(f"{'SERVICE':<{name_w}}  {'STATUS':<7}  {'LATENCY':>8}  ERROR")
    for r in results:
        latency = f"{r.get('latency', 0)}ms"
        click.echo(
            f"{r.get('service', '?'):<{name_w}}  {r.get('status', '?'):<7}  "
            f"{latency:>8}  {r.get('error', '')}"
        )
    click.echo(f"Total: {report.get('totalLatency', 0)}ms")

    if not report.get("success"):
        sys.exit(1)


async def _probe(server: str, mode: TransportMode, timeout: float) -> dict[str, Any]:
    from voxrelay.client.transport import VoiceTransport
    from voxrelay.config.settings import ClientSettings
    from voxrelay.server.models.events import RunIntegrationTestCommand, now_ms

    loop = asyncio.get_running_loop()
    result: asyncio.Future[dict[str, Any]] = loop.create_future()

    def on_message(event: dict[str, Any]) -> None:
        if result.done():
            return
        if event.get("type") == "integration_test_results":
            result.set_result(event.get("results", {}))
        elif event.get("type") == "error" and event.get("code") == "integration_test_failed":
            result.set_result({"success": False, "results": []})

    settings = ClientSettings(server_url=server, max_reconnect_attempts=0)
    transport = VoiceTransport(
        f"probe-{uuid.uuid4().hex[:12]}",
        mode=mode,
        settings=settings,
        on_message=on_message,
    )
    try:
        if not await transport.connect():
            msg = f"could not connect to {server} ({transport.status.value})"
            raise ConnectionError(msg)
        click.echo(f"Connected to {server} over {mode.value}.")
        await transport.send_control_message(RunIntegrationTestCommand(timestamp=now_ms()))
        return await asyncio.wait_for(result, timeout=timeout)
    finally:
        await transport.disconnect()
