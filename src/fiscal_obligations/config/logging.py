"""Structured logging for the obligation engine.

Every event carries the engine context bound by ``configure_logging``
(service, levy tag, timezone); events emitted inside ``run_context`` also
carry the run id and trigger kind, so one generation run can be followed
across the orchestrator, guard and storage loggers.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Literal
from uuid import uuid4

import structlog

from fiscal_obligations.config.settings import get_settings

SERVICE_NAME = "fiscal_obligations"

# Transport loggers that log every request at INFO.
NOISY_LOGGERS = ("httpx", "httpcore")


def configure_logging(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] | None = None,
    format: Literal["json", "console"] | None = None,
) -> None:
    """Configure structlog and the stdlib root logger for the engine.

    Args:
        level: Log level. Defaults to ``LOG_LEVEL``.
        format: ``json`` for log shippers, ``console`` for terminals.
            Defaults to ``LOG_FORMAT``.
    """
    settings = get_settings()
    log_level = level or settings.log_level
    log_format = format or settings.log_format

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, log_level),
    )
    transport_level = logging.DEBUG if log_level == "DEBUG" else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(transport_level)

    if log_format == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.bind_contextvars(
        service=SERVICE_NAME,
        levy_tag=settings.levy_tag,
        timezone=settings.timezone,
    )


@contextmanager
def run_context(trigger: str, run_id: str | None = None) -> Iterator[str]:
    """Tag every event logged inside the block with one generation run.

    Args:
        trigger: Trigger kind value, e.g. ``periodic``.
        run_id: Identifier to bind. A random one is generated when omitted.

    Yields:
        The bound run id.
    """
    run_id = run_id or uuid4().hex[:12]
    with structlog.contextvars.bound_contextvars(run_id=run_id, trigger=trigger):
        yield run_id
