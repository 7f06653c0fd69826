"""
Error definitions for Pricewatch.

Every failure surfaced to a caller is a PricewatchError carrying an
ErrorCode. Browser engine errors additionally carry the FetchPhase in which
they occurred, so a failed fetch always says whether port allocation,
process start, session open or navigation broke.

Error codes follow the pattern:
- *_UNAVAILABLE / NO_*: environment cannot provide a resource
- *_FAILED: an operation was attempted and failed
- ILLEGAL_STATE / UNSUPPORTED_*: caller error, engine state untouched
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Error codes for Pricewatch failures."""

    # Configuration errors (fatal, never retried)
    NO_PORT_AVAILABLE = "NO_PORT_AVAILABLE"
    """Every port in the configured range is bound by another process.
    Action: widen the port range or free ports."""

    DRIVER_SPAWN_FAILED = "DRIVER_SPAWN_FAILED"
    """The driver binary could not be executed.
    Action: check driver_path and file permissions."""

    # Transient service errors (recovered once, then surfaced)
    SESSION_OPEN_FAILED = "SESSION_OPEN_FAILED"
    """The driver answered but refused to open a browser session.
    Action: check browser_path and driver/browser version match."""

    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    """The driver stayed unhealthy after a restart."""

    # Navigation errors (fatal for one fetch only)
    NAVIGATION_FAILED = "NAVIGATION_FAILED"
    """Navigation failed against a freshly restarted session."""

    # Caller errors
    ILLEGAL_STATE = "ILLEGAL_STATE"
    """Operation not permitted in the engine's current state."""

    UNSUPPORTED_SITE = "UNSUPPORTED_SITE"
    """URL does not belong to a supported site."""

    EXTRACTION_FAILED = "EXTRACTION_FAILED"
    """Rendered HTML could not be turned into a product record."""

    # Persistence
    BACKUP_FAILED = "BACKUP_FAILED"
    """Backup file could not be written, read or parsed."""

    RECORD_NOT_FOUND = "RECORD_NOT_FOUND"
    """A product record expected in the database is missing."""


class FetchPhase(str, Enum):
    """Phase of the fetch pipeline in which an engine error occurred."""

    PORT_ALLOCATION = "port_allocation"
    PROCESS_START = "process_start"
    SESSION_OPEN = "session_open"
    NAVIGATION = "navigation"


class PricewatchError(Exception):
    """Base exception for all Pricewatch errors."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        *,
        phase: FetchPhase | None = None,
        details: dict[str, Any] | None = None,
    ):
        """
        Initialize error.

        Args:
            code: Error code from ErrorCode enum.
            message: Human-readable error message.
            phase: Fetch phase the error belongs to (engine errors only).
            details: Optional additional error details.
        """
        super().__init__(message)
        self.code = code
        self.message = message
        self.phase = phase
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert error to a serializable dictionary."""
        result: dict[str, Any] = {
            "ok": False,
            "error_code": self.code.value,
            "error": self.message,
        }

        if self.phase is not None:
            result["phase"] = self.phase.value

        if self.details:
            result["details"] = self.details

        return result


class EngineError(PricewatchError):
    """Base class for browser engine errors. Always carries a phase."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        *,
        phase: FetchPhase,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(code, message, phase=phase, details=details)


class NoPortAvailableError(EngineError):
    """Raised when the whole port range is exhausted."""

    def __init__(self, min_port: int, max_port: int):
        super().__init__(
            ErrorCode.NO_PORT_AVAILABLE,
            f"No available ports found in range {min_port}-{max_port}",
            phase=FetchPhase.PORT_ALLOCATION,
            details={"min_port": min_port, "max_port": max_port},
        )


class DriverSpawnError(EngineError):
    """Raised when the driver binary cannot be started."""

    def __init__(self, driver_path: str, reason: str):
        super().__init__(
            ErrorCode.DRIVER_SPAWN_FAILED,
            f"Failed to start driver '{driver_path}': {reason}",
            phase=FetchPhase.PROCESS_START,
            details={"driver_path": driver_path, "reason": reason},
        )


class SessionOpenError(EngineError):
    """Raised when a WebDriver session cannot be opened."""

    def __init__(self, port: int, reason: str):
        super().__init__(
            ErrorCode.SESSION_OPEN_FAILED,
            f"Failed to open browser session on port {port}: {reason}",
            phase=FetchPhase.SESSION_OPEN,
            details={"port": port, "reason": reason},
        )


class ServiceUnavailableError(EngineError):
    """Raised when recovery by restart did not produce a usable service."""

    def __init__(
        self,
        message: str,
        *,
        port: int,
        phase: FetchPhase = FetchPhase.PROCESS_START,
    ):
        super().__init__(
            ErrorCode.SERVICE_UNAVAILABLE,
            message,
            phase=phase,
            details={"port": port},
        )


class NavigationFailedError(EngineError):
    """Raised when navigation fails after the restart budget is spent."""

    def __init__(self, url: str, reason: str, *, attempts: int):
        super().__init__(
            ErrorCode.NAVIGATION_FAILED,
            f"Navigation to {url} failed after {attempts} attempts: {reason}",
            phase=FetchPhase.NAVIGATION,
            details={"url": url, "reason": reason, "attempts": attempts},
        )


class IllegalStateError(PricewatchError):
    """Raised when an operation is attempted from a state that forbids it."""

    def __init__(self, operation: str, state: str):
        super().__init__(
            ErrorCode.ILLEGAL_STATE,
            f"Cannot {operation} while engine is {state}",
            details={"operation": operation, "state": state},
        )


class UnsupportedSiteError(PricewatchError):
    """Raised when a URL does not match any supported site."""

    def __init__(self, url: str):
        super().__init__(
            ErrorCode.UNSUPPORTED_SITE,
            f"Unsupported URL: {url}",
            details={"url": url},
        )


class ExtractionError(PricewatchError):
    """Raised when a page cannot be parsed into a product record."""

    def __init__(self, url: str, reason: str):
        super().__init__(
            ErrorCode.EXTRACTION_FAILED,
            f"Failed to extract product from {url}: {reason}",
            details={"url": url, "reason": reason},
        )


class BackupError(PricewatchError):
    """Raised when a backup cannot be created or restored."""

    def __init__(self, path: str, reason: str):
        super().__init__(
            ErrorCode.BACKUP_FAILED,
            f"Backup error for {path}: {reason}",
            details={"path": path, "reason": reason},
        )


class RecordNotFoundError(PricewatchError):
    """Raised when a product record is missing after it was written."""

    def __init__(self, product_id: str):
        super().__init__(
            ErrorCode.RECORD_NOT_FOUND,
            f"Product not found: {product_id}",
            details={"product_id": product_id},
        )
