"""structlog configuration.

Learn: Every module does `logger = structlog.get_logger()` and logs
dotted event names with key/value context:

    logger.info("session.login_succeeded", user_id=7, remember_me=True)

configure_logging() runs once at startup. RequestIdMiddleware binds a
request_id into contextvars, and merge_contextvars copies it onto every
line logged while that request is handled.
"""

import logging
from typing import Any

import structlog

_SENSITIVE_KEYS = ("password", "secret", "token", "authorization")


def _redact_secrets(logger: Any, method_name: str, event_dict: dict) -> dict:
    """Mask credentials that end up in log context."""
    for key, value in event_dict.items():
        if isinstance(value, str) and any(s in key.lower() for s in _SENSITIVE_KEYS):
            event_dict[key] = value[:4] + "***" if len(value) > 8 else "***"
    return event_dict


def configure_logging(level: str = "INFO", json_output: bool = False) -> None:
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        _redact_secrets,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
        cache_logger_on_first_use=True,
    )
