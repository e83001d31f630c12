"""
Logging configuration for adrotator.

Runtime modules log through the standard library with %-style messages at the
configured level. Structured events (the AdSource service) go through structlog
and are rendered as JSON, or as console text for interactive CLI use.
"""

from __future__ import annotations

import logging
import re
from typing import Any

import structlog

from .settings import settings

SECRET_KEYS = ("token", "password", "secret", "api_key", "authorization")

# Ad endpoints and click-through hrefs may carry credentials in the URL.
_CREDENTIALS_IN_URL = re.compile(r"(://)[^:/@\s]+:[^@\s]+@")
_SECRET_PARAM = re.compile(r"\b(token|api_key|key|sig)=[^&\s]+")


def _redact_value(value: Any) -> Any:
    if isinstance(value, str):
        value = _CREDENTIALS_IN_URL.sub(r"\1***@", value)
        return _SECRET_PARAM.sub(lambda m: f"{m.group(1)}=***", value)
    if isinstance(value, dict):
        return {k: _redact_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_redact_value(item) for item in value]
    return value


def redact_secrets(_, __, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Redact secret-looking keys and credentials embedded in URLs."""
    for key, value in list(event_dict.items()):
        if any(secret in key.lower() for secret in SECRET_KEYS):
            event_dict[key] = "***REDACTED***"
        else:
            event_dict[key] = _redact_value(value)
    return event_dict


def configure_logging(level: str | None = None, *, json_output: bool = True) -> None:
    """Configure the stdlib root logger and the structlog pipeline."""
    level_value = getattr(logging, (level or settings.log_level).upper(), logging.INFO)
    renderer: Any = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()

    logging.basicConfig(
        format="%(message)s",
        level=level_value,
    )
    logging.getLogger().setLevel(level_value)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            redact_secrets,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Logger bound with the service name and deployment environment."""
    return structlog.get_logger(name).bind(service="adrotator", env=settings.env)
