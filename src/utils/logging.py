"""Logging setup for Dream Weaver.

All records, including those from plain ``logging.getLogger(__name__)``
loggers, are rendered by structlog. While a generation runs, its id is bound
into structlog's context variables so every line logged by the pipeline (and
by the tasks it spawns) carries ``generation_id``.
"""

import logging
import sys
from contextlib import contextmanager
from typing import Iterator

import structlog

# Libraries that log every request or query at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "aiosqlite", "uvicorn.access")

GENERATION_ID_KEY = "generation_id"


def _processors() -> list:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def setup_logging(log_level: str = "INFO", json_output: bool = False) -> None:
    """Route stdlib and structlog records through one renderer.

    Args:
        log_level: Root level name, e.g. ``INFO``
        json_output: Render one JSON object per line instead of console text
    """
    shared = _processors()
    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    )

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(log_level.upper())

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


@contextmanager
def generation_context(generation_id: str) -> Iterator[None]:
    """Bind ``generation_id`` to log records inside the block.

    The previous binding is restored on exit, so concurrent runs in separate
    tasks never see each other's id.
    """
    with structlog.contextvars.bound_contextvars(**{GENERATION_ID_KEY: generation_id}):
        yield


def current_generation_id() -> str | None:
    """Return the generation id bound in the current context, if any."""
    return structlog.contextvars.get_contextvars().get(GENERATION_ID_KEY)
