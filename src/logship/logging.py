"""Structured logging configuration using structlog.

Call ``configure_logging()`` once when the agent starts to set up the
processor pipeline and bind a ``run_id`` to every log event emitted by the
tailer and sender during that run.

Processor pipeline (applied in order to every log event):

  1. merge_contextvars   — pulls run_id and the bound source into the event
  2. add_log_level       — adds  level="info" / "warning" / …
  3. TimeStamper         — adds  timestamp="2026-03-01T02:41:55Z"
  4. JSONRenderer        — renders as a single JSON line  (format=json)
     ConsoleRenderer     — renders as coloured key=value  (format=text)

Every event also names the module that emitted it (``logger=...``).
While a ``FileTailer`` reads, its events carry ``directory``; while a
``Sender`` sends, its events (and the encoder's) carry ``repo``.  Both come
from :func:`log_context`:

    {"event": "start tail new file", "file": "app.log.2",
     "logger": "logship.tailer", "directory": "/var/log/app",
     "run_id": "a3f7b29c", "level": "info", "timestamp": "…"}
"""

import logging as _stdlib
import sys
import uuid
from collections.abc import Iterator
from contextlib import contextmanager

import structlog
from structlog._config import BoundLoggerLazyProxy

from logship.config import Settings, get_settings


def configure_logging(settings: Settings | None = None) -> str:
    """Configure structlog for this process and return the run_id.

    Calling again reconfigures the pipeline and binds a fresh run_id.

    Args:
        settings: Pre-loaded settings; loads from ``get_settings()`` if None.

    Returns:
        run_id — 8-character hex string present on every log event this run.
    """
    if settings is None:
        settings = get_settings()

    level_int = getattr(_stdlib, settings.logging.level, _stdlib.INFO)

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    renderer = (
        structlog.processors.JSONRenderer()
        if settings.logging.format == "json"
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(level_int),
        context_class=dict,
        # stdout belongs to whatever embeds the agent.  Loggers are not
        # cached so module-level loggers follow a later reconfiguration.
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )

    run_id = uuid.uuid4().hex[:8]
    structlog.contextvars.bind_contextvars(run_id=run_id)

    return run_id


def get_logger(name: str = "logship") -> structlog.BoundLogger:
    """Return a structlog logger whose events carry ``logger=name``.

    Pass ``__name__`` to associate the logger with the calling module::

        log = get_logger(__name__)
        log.info("schema refreshed", fields=["a1", "ab"])
    """
    # ``get_logger(logger=...)`` collides with wrap_logger's ``logger``
    # parameter, so build the same lazy proxy get_logger would return.
    return BoundLoggerLazyProxy(None, initial_values={"logger": name}, logger_factory_args=())


@contextmanager
def log_context(**context: object) -> Iterator[None]:
    """Bind *context* to every event logged in this thread inside the block.

    Nested blocks add to the outer context; on exit the previous values are
    restored.  ``run_id`` bound by :func:`configure_logging` is kept.
    """
    with structlog.contextvars.bound_contextvars(**context):
        yield
