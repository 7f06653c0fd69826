"""
Pricewatch utilities module.
"""

from src.utils.config import ensure_directories, get_project_root, get_settings
from src.utils.logging import (
    LogContext,
    bind_context,
    clear_context,
    configure_logging,
    ensure_logging_configured,
    get_logger,
    unbind_context,
)

__all__ = [
    "get_settings",
    "get_project_root",
    "ensure_directories",
    "get_logger",
    "configure_logging",
    "ensure_logging_configured",
    "bind_context",
    "unbind_context",
    "clear_context",
    "LogContext",
]
