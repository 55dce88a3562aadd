"""structlog setup shared by the API process and the scheduler jobs.

Application code logs events (``logger.info("catalog_rebuilt", games=42)``);
stdlib loggers from uvicorn, apscheduler and sqlalchemy are passed through
the same processor chain so one stream carries everything. Output is JSON
lines when ``LOG_FORMAT=json`` or in production, colored key/value text
otherwise.

Per-request and per-job fields (``request_id``, ``job``) are bound through
structlog's contextvars, so anything logged while handling a request or
running a job carries them without being passed around.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from tybee.config import Settings

SERVICE_NAME = "tybee"

# Libraries that are chatty at INFO
_QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "apscheduler")


def _tag_service(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def _build_chain() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        _tag_service,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def configure_logging(settings: Settings | None = None) -> None:
    """Install the structlog pipeline and a single stdout handler on the root logger."""
    if settings is None:
        from tybee.config import get_settings

        settings = get_settings()

    level = logging.getLevelName(settings.log_level.value)
    chain = _build_chain()

    renderer: Processor
    if settings.use_json_logs:
        renderer = structlog.processors.JSONRenderer()
        chain_for_structlog = [*chain, structlog.processors.format_exc_info, renderer]
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)
        chain_for_structlog = [*chain, renderer]

    structlog.configure(
        processors=chain_for_structlog,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(processor=renderer, foreign_pre_chain=chain)
    )
    handler.setLevel(level)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def bind_request_id(request_id: str) -> None:
    """Attach ``request_id`` to every log entry emitted by the current request."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id)


def unbind_request_id() -> None:
    structlog.contextvars.unbind_contextvars("request_id")


def log_context(**kwargs: Any) -> structlog.contextvars.bound_contextvars:
    """Bind fields for the duration of a ``with`` block, e.g. ``log_context(job="copy_sync")``."""
    return structlog.contextvars.bound_contextvars(**kwargs)
