"""structlog setup: colored console plus a JSONL file under output/logs.

Event names are dotted and stable (``sync.complete``, ``webhook.mail.unauthorized``);
variable data goes in key/value pairs, never in the event string.
"""

from __future__ import annotations

import logging
import re
from contextlib import contextmanager
from typing import Any, Iterator

import structlog

from meetwatch.config import LOG_FILE, LOG_LEVEL, VERBOSE_LOGGING

BoundLogger = structlog.stdlib.BoundLogger

_configured = False

# Keys whose values are mail addresses; the local part is masked in the JSONL file
_ADDRESS_KEYS = frozenset({"email", "email_address", "sender", "recipient", "user_email", "organizer"})
_ADDRESS = re.compile(r"([^@\s<]{1,2})[^@\s<]*@")

_QUIET_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine", "uvicorn.access")


def _level() -> int:
    if VERBOSE_LOGGING:
        return logging.DEBUG
    if LOG_LEVEL.isdigit():
        return int(LOG_LEVEL)
    return logging.getLevelNamesMapping().get(LOG_LEVEL.upper(), logging.INFO)


def mask_addresses(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Processor: keep the first two characters of the local part of address-valued keys."""
    for key in _ADDRESS_KEYS.intersection(event_dict):
        value = event_dict[key]
        if isinstance(value, str):
            event_dict[key] = _ADDRESS.sub(lambda m: f"{m.group(1)}***@", value)
    return event_dict


def _handler(handler: logging.Handler, renderer: Any, pre_chain: list[Any], level: int) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(processor=renderer, foreign_pre_chain=pre_chain))
    return handler


def _configure_logging() -> None:
    global _configured
    if _configured:
        return

    level = _level()
    shared = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level)
    root.addHandler(_handler(logging.StreamHandler(), structlog.dev.ConsoleRenderer(colors=True), shared, level))
    root.addHandler(
        _handler(
            logging.FileHandler(LOG_FILE, encoding="utf-8"),
            structlog.processors.JSONRenderer(),
            [*shared, mask_addresses],
            level,
        )
    )
    logging.captureWarnings(True)

    # One line per Gmail/DB request would bury the sync events
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            *shared,
            mask_addresses,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )
    _configured = True


def get_logger(name: str = "meetwatch", **bindings: Any) -> BoundLogger:
    """Return a structlog logger named after the calling module, optionally pre-bound."""
    _configure_logging()
    logger = structlog.get_logger(name)
    return logger.bind(**bindings) if bindings else logger


@contextmanager
def log_context(**context: Any) -> Iterator[None]:
    """Bind context vars (mailbox_id, command, ...) for the duration of the block."""
    tokens = structlog.contextvars.bind_contextvars(**context)
    try:
        yield
    finally:
        structlog.contextvars.reset_contextvars(**tokens)
