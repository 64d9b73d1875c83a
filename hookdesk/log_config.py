"""Structlog configuration shared by the hook entry point and the daemon.

Everything goes to stderr: a hook's stdout is read by the coding CLI as its
JSON response, so a stray log line there would corrupt the protocol.
"""

from __future__ import annotations

import logging
import logging.config
import os
import sys
from typing import IO

import structlog

from hookdesk.settings import settings

LOG_FILE_MAX_BYTES = 5_000_000

# uvicorn's own loggers; access lines are replaced by the request middleware.
_UVICORN_LEVELS = {"uvicorn": None, "uvicorn.error": None, "uvicorn.access": logging.WARNING}


def _shared_processors() -> list:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]


def _renderer(log_format: str):
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=False)


def configure_logging(*, level: str | None = None, stream: IO[str] | None = None) -> None:
    """Configure structlog + stdlib logging from ``HOOKDESK_LOG_*`` settings.

    Args:
        level: Override for ``HOOKDESK_LOG_LEVEL``.
        stream: Console stream; defaults to ``sys.stderr``.
    """
    log_level = getattr(logging, (level or settings.log_level()).upper(), logging.INFO)
    shared = _shared_processors()

    structlog.configure(
        processors=[
            *shared,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    console = structlog.stdlib.ProcessorFormatter(
        processor=_renderer(settings.log_format()), foreign_pre_chain=shared
    )
    handlers: dict[str, dict] = {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "console",
            "stream": stream or sys.stderr,
        }
    }
    formatters: dict[str, dict] = {"console": {"()": lambda: console}}

    log_file = settings.log_file()
    if log_file:
        os.makedirs(os.path.dirname(os.path.abspath(log_file)), exist_ok=True)
        # Files are always JSON so they can be grepped across processes.
        as_json = structlog.stdlib.ProcessorFormatter(
            processor=structlog.processors.JSONRenderer(), foreign_pre_chain=shared
        )
        formatters["file"] = {"()": lambda: as_json}
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "formatter": "file",
            "filename": log_file,
            "maxBytes": LOG_FILE_MAX_BYTES,
            "backupCount": 1,
            "encoding": "utf-8",
        }

    names = list(handlers)
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": formatters,
            "handlers": handlers,
            "root": {"handlers": names, "level": log_level},
            "loggers": {
                name: {"handlers": names, "level": override or log_level, "propagate": False}
                for name, override in _UVICORN_LEVELS.items()
            },
        }
    )
