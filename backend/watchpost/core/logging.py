"""
Watchpost - Structured Logging

Every service logs through structlog with snake_case event names
(``account_locked``, ``alert_created``, ``monitoring_cycle_failed``) and
keyword fields. Entries carry:

- ``request_id`` and ``principal`` for the HTTP call being served
- any other fields a caller binds with ``LogContext``

MFA secrets, one-time codes, passwords and bearer tokens are masked before
rendering, so a careless ``logger.info(..., code=code)`` never reaches the
log sink. Production renders JSON lines; development renders to the console.
"""

from __future__ import annotations

import logging
import sys
from contextvars import Token
from typing import Any, Dict, Mapping, Optional

import structlog
from structlog.types import EventDict, Processor

from watchpost.core.config import Settings, get_settings

REDACTED = "[redacted]"

# Field names whose values are credentials or second factors
SENSITIVE_FIELDS = frozenset({
    "authorization",
    "backup_code",
    "backup_codes",
    "code",
    "mfa_secret",
    "password",
    "secret",
    "token",
})

# Chatty third-party loggers held at WARNING or above
QUIET_LOGGERS = ("aiosqlite", "asyncio", "httpcore", "httpx")


def redact_sensitive_fields(
    logger: logging.Logger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Mask credential fields, including inside one level of nested dicts."""
    for key, value in list(event_dict.items()):
        if key.lower() in SENSITIVE_FIELDS:
            event_dict[key] = REDACTED
        elif isinstance(value, dict):
            event_dict[key] = {
                k: REDACTED if str(k).lower() in SENSITIVE_FIELDS else v
                for k, v in value.items()
            }
    return event_dict


def get_log_level(settings: Settings) -> int:
    level = logging.getLevelName(settings.LOG_LEVEL.upper())
    return level if isinstance(level, int) else logging.INFO


def build_processors(settings: Settings) -> list[Processor]:
    """Processor chain: context, level, timestamp, redaction, then the renderer."""
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        redact_sensitive_fields,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.LOG_FORMAT == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))

    return processors


def configure_logging(settings: Optional[Settings] = None) -> None:
    """
    Configure structlog and the stdlib root logger.

    Called once from the application factory.
    """
    settings = settings or get_settings()
    level = get_log_level(settings)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
    if not settings.DB_ECHO:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    structlog.configure(
        processors=build_processors(settings),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    """
    Return a structlog logger, normally ``get_logger(__name__)``.

    Example:
        >>> log = get_logger(__name__)
        >>> log.warning("account_locked", user_id="u1", failed_attempts=5)
    """
    return structlog.get_logger(name)


def bind_principal(subject: str) -> None:
    """Tag the rest of the current request's entries with the caller's subject."""
    structlog.contextvars.bind_contextvars(principal=subject)


class LogContext:
    """
    Bind fields to every entry logged inside the block, then restore.

    ``None`` values are skipped, so optional identifiers can be passed
    through unconditionally.

    Example:
        >>> with LogContext(request_id="req-123", principal="auth-backend"):
        ...     log.info("login_attempt_tracked", email="user@example.com")
    """

    def __init__(self, **fields: Any):
        self.fields: Dict[str, Any] = {k: v for k, v in fields.items() if v is not None}
        self._tokens: Mapping[str, Token] = {}

    def __enter__(self) -> "LogContext":
        self._tokens = structlog.contextvars.bind_contextvars(**self.fields)
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        structlog.contextvars.reset_contextvars(**self._tokens)
        self._tokens = {}
