"""
Structured logging configuration for Pricewatch.

structlog on top of stdlib logging: JSON lines for the log file and stderr
by default, a colored console renderer for development. Fetch context
(url, port) is carried through contextvars via LogContext.
"""

import logging
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import structlog
from structlog.types import Processor

from src.utils.config import get_project_root, get_settings

# Product URLs carry long tracking query strings
MAX_LOGGED_URL_LENGTH = 120
URL_FIELDS = ("url", "product_url", "endpoint")


def _add_timestamp(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Add ISO timestamp to log event."""
    event_dict["timestamp"] = datetime.now(UTC).isoformat().replace("+00:00", "Z")
    return event_dict


def _add_log_level(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Add log level to event dict."""
    event_dict["level"] = method_name.upper()
    return event_dict


def _filter_health_check(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Drop debug-level health check chatter from readiness polling."""
    if method_name == "debug" and str(event_dict.get("event", "")).startswith("health_check"):
        raise structlog.DropEvent
    return event_dict


def _shorten_urls(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Truncate URL fields to MAX_LOGGED_URL_LENGTH characters."""
    for key in URL_FIELDS:
        value = event_dict.get(key)
        if isinstance(value, str) and len(value) > MAX_LOGGED_URL_LENGTH:
            event_dict[key] = value[:MAX_LOGGED_URL_LENGTH] + "..."
    return event_dict


def _default_log_file() -> Path:
    settings = get_settings()
    log_dir = get_project_root() / settings.general.logs_dir
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir / f"pricewatch_{datetime.now().strftime('%Y%m%d')}.log"


def configure_logging(
    log_level: str | None = None,
    log_file: str | Path | None = None,
    json_format: bool = True,
) -> None:
    """Configure structured logging.

    Args:
        log_level: Log level (DEBUG, INFO, WARNING, ERROR). Uses settings if None.
        log_file: Path to log file. Uses logs_dir from settings if None.
        json_format: JSON lines (True) or colored console output (False).
    """
    if log_level is None:
        log_level = get_settings().general.log_level
    if log_file is None:
        log_file = _default_log_file()

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, log_level.upper(), logging.INFO),
        handlers=[
            logging.StreamHandler(sys.stderr),
            logging.FileHandler(log_file, encoding="utf-8"),
        ],
    )

    # selenium and urllib3 log every WebDriver HTTP call at DEBUG
    for noisy in ("selenium", "urllib3"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        _add_timestamp,
        _add_log_level,
        _filter_health_check,
        _shorten_urls,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_format:
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a logger instance.

    Args:
        name: Logger name (usually __name__).

    Returns:
        Configured logger instance.
    """
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind context variables to all subsequent log calls."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    """Unbind context variables."""
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    """Clear all bound context variables."""
    structlog.contextvars.clear_contextvars()


class LogContext:
    """Context manager for scoped logging context.

    Keys are unbound on exit, so nested contexts must use distinct keys.

    Example:
        with LogContext(url=url, port=9515):
            logger.info("Navigating")
    """

    def __init__(self, **kwargs: Any):
        self.context = kwargs

    def __enter__(self) -> "LogContext":
        bind_context(**self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        unbind_context(*self.context.keys())


_logging_configured = False


def ensure_logging_configured() -> None:
    """Configure logging from settings once per process."""
    global _logging_configured
    if not _logging_configured:
        configure_logging()
        _logging_configured = True
