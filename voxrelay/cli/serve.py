"""`voxrelay serve` command: starts the API server."""

from __future__ import annotations

import asyncio
import signal
import sys

import click

from voxrelay.cli.main import cli
from voxrelay.config.settings import get_settings
from voxrelay.exceptions import CollaboratorLoadError
from voxrelay.logging import configure_logging, get_logger

logger = get_logger("cli.serve")

_s = get_settings()
DEFAULT_HOST = _s.server.host
DEFAULT_PORT = _s.server.port


@cli.command()
@click.option("--host", default=DEFAULT_HOST, show_default=True, help="API server host.")
@click.option("--port", default=DEFAULT_PORT, type=int, show_default=True, help="HTTP port.")
@click.option(
    "--cors-origins",
    default=_s.server.cors_origins,
    show_default=True,
    help="CORS origins (comma-separated). Ex: http://localhost:3000",
)
@click.option(
    "--log-format",
    type=click.Choice(["console", "json"]),
    default="console",
    show_default=True,
    help="Log format.",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    default="INFO",
    show_default=True,
    help="Log level.",
)
def serve(
    host: str,
    port: int,
    cors_origins: str,
    log_format: str,
    log_level: str,
) -> None:
    """Start the voxrelay server with the configured collaborators.

    Collaborators are loaded from VOXRELAY_RECOGNIZER, VOXRELAY_GENERATOR,
    and VOXRELAY_SYNTHESIZER (dotted module paths).
    """
    configure_logging(log_format=log_format, level=log_level)
    origins = [o.strip() for o in cors_origins.split(",") if o.strip()] if cors_origins else []
    asyncio.run(_serve(host, port, cors_origins=origins))


async def _serve(
    host: str,
    port: int,
    *,
    cors_origins: list[str] | None = None,
) -> None:
    """Main async flow for serve."""
    import uvicorn

    from voxrelay.providers.loader import load_collaborators
    from voxrelay.server.app import create_app
    from voxrelay.session.orchestrator import SessionOrchestrator

    settings = get_settings()

    # 1. Load collaborators
    try:
        collaborators = load_collaborators(settings.providers)
    except CollaboratorLoadError as exc:
        logger.error("collaborators_not_loaded", error=str(exc))
        click.echo(f"Error: {exc}", err=True)
        click.echo(
            "Set VOXRELAY_RECOGNIZER, VOXRELAY_GENERATOR and VOXRELAY_SYNTHESIZER "
            "to the modules implementing each collaborator.",
            err=True,
        )
        sys.exit(1)

    # 2. Create app
    orchestrator = SessionOrchestrator(
        collaborators,
        session_settings=settings.session,
        pipeline_settings=settings.pipeline,
    )
    app = create_app(
        orchestrator=orchestrator,
        server_settings=settings.server,
        cors_origins=cors_origins,
    )

    logger.info(
        "server_starting",
        host=host,
        port=port,
        recognizer=collaborators.recognizer.name,
        generator=collaborators.generator.name,
        synthesizer=collaborators.synthesizer.name,
    )

    # 3. Setup shutdown
    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def _handle_signal(s: signal.Signals) -> None:
        logger.info("shutdown_signal", signal=s.name)
        shutdown_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _handle_signal, sig)

    # 4. Run uvicorn (protocol-level keepalive pings on every socket)
    config = uvicorn.Config(
        app,
        host=host,
        port=port,
        log_level="warning",
        ws_ping_interval=settings.server.ws_keepalive_interval_s,
        ws_ping_timeout=settings.server.ws_keepalive_interval_s,
    )
    server = uvicorn.Server(config)

    server_task = asyncio.create_task(server.serve())

    _done, _ = await asyncio.wait(
        [server_task, asyncio.create_task(shutdown_event.wait())],
        return_when=asyncio.FIRST_COMPLETED,
    )

    # 5. Graceful shutdown (lifespan tears down remaining sessions)
    if not server_task.done():
        server.should_exit = True
        await server_task

    logger.info("server_stopped")
