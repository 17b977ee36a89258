"""Structured logging for the bridge.

Every module logs through ``structlog.get_logger()`` with an event name
and key/value context, e.g.::

    logger.info("poll_complete", fetched=3, checkpoint=...)

Hosts that already configure structlog can skip :func:`setup_logging`;
the bridge only relies on ``merge_contextvars`` being in their chain for
the ``adapter_id`` binding to show up.
"""

from __future__ import annotations

import logging
import sys
from typing import TextIO

import structlog

_SHARED_PROCESSORS: list[structlog.types.Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
]


def _renderer(json: bool) -> structlog.types.Processor:
    if json:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=False)


def setup_logging(
    *,
    json: bool = True,
    level: str | int = "INFO",
    adapter_id: str | None = None,
    stream: TextIO | None = None,
) -> None:
    """Send bridge and stdlib log records to one handler as structlog events.

    *level* is a level name (any case) or number.  *adapter_id*, when set,
    is bound into the structlog context so every line carries it; any
    previously bound context is cleared either way.  Output goes to
    *stream*, standard output by default.
    """
    structlog.configure(
        processors=[
            *_SHARED_PROCESSORS,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(stream if stream is not None else sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_SHARED_PROCESSORS,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(json),
            ],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper() if isinstance(level, str) else level)

    structlog.contextvars.clear_contextvars()
    if adapter_id is not None:
        structlog.contextvars.bind_contextvars(adapter_id=adapter_id)
