"""Log setup shared by the server, the client transport and the CLI.

Every module gets its logger from :func:`get_logger`, which tags each line
with a ``component`` (``"session.pipeline"``, ``"client.transport"``...).
Socket handlers wrap their receive loop in :func:`bound_client`, so lines
logged anywhere below them also carry ``client_id``.

``VOXRELAY_LOG_FORMAT=json`` switches to one JSON object per line, with
exceptions rendered as structured tracebacks. Anything else gets the
colored console renderer.
"""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from collections.abc import Iterator

# Per-request INFO lines: one per poll from every fallback client.
_CHATTY_LOGGERS = ("uvicorn.access", "httpx", "websockets.client", "websockets.server")

_configured = False


def configure_logging(
    log_format: str | None = None,
    level: str | None = None,
) -> None:
    """Install the structlog pipeline on the root logger, once per process.

    Later calls are no-ops, so the CLI can configure explicitly before any
    module-level :func:`get_logger` triggers the defaults.

    Args:
        log_format: ``"json"`` or ``"console"``. Falls back to
            ``VOXRELAY_LOG_FORMAT``, then ``"console"``.
        level: Level name. Falls back to ``VOXRELAY_LOG_LEVEL``, then ``"INFO"``.
    """
    global _configured
    if _configured:
        return

    as_json = (log_format or os.environ.get("VOXRELAY_LOG_FORMAT", "console")) == "json"
    level_name = (level or os.environ.get("VOXRELAY_LOG_LEVEL", "INFO")).upper()

    shared: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if as_json:
        shared.append(structlog.processors.dict_tracebacks)
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level_name, logging.INFO))

    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _configured = True


def get_logger(component: str) -> structlog.stdlib.BoundLogger:
    configure_logging()
    return structlog.get_logger().bind(component=component)  # type: ignore[no-any-return]


@contextmanager
def bound_client(client_id: str) -> Iterator[None]:
    """Tag every log line in the block with ``client_id``."""
    with structlog.contextvars.bound_contextvars(client_id=client_id):
        yield
