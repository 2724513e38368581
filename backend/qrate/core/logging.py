"""
Structured logging configuration using structlog.

JSON lines in production, coloured console output in development. Every
entry carries the environment, and any `event_code` is upper-cased so one
party's traffic can be grepped with a single key whatever the caller typed.

Store fallbacks and mirror failures are logged rather than surfaced to
callers, so the log stream is the place to watch for store divergence
(`store_fallback_write`, `store_mirror_failed`, `store_unavailable`).
"""

import logging
import sys

import structlog
from structlog.typing import EventDict, WrappedLogger

from qrate.core.config import get_settings

_HANDLER_NAME = "qrate"
_QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "aiosqlite")


def _normalize_event_code(_: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
    code = event_dict.get("event_code")
    if isinstance(code, str):
        event_dict["event_code"] = code.upper()
    return event_dict


def _environment_adder(environment: str):
    def add_environment(_: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("env", environment)
        return event_dict

    return add_environment


def setup_logging() -> None:
    settings = get_settings()
    production = settings.ENVIRONMENT == "production"

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        _environment_adder(settings.ENVIRONMENT),
        _normalize_event_code,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if production:
        shared_processors.append(structlog.processors.format_exc_info)
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ]
        )
    )

    root_logger = logging.getLogger()
    # Lifespan may run more than once per process (tests, reloads)
    for existing in list(root_logger.handlers):
        if existing.get_name() == _HANDLER_NAME:
            root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
