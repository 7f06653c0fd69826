"""
Browser automation lifecycle for Pricewatch.

- ports: local port probing and allocation
- supervisor: driver process ownership and health checks
- session: WebDriver session and navigation
- engine: bounded retry/restart around page fetches
"""

from src.browser.engine import (
    MAX_NAVIGATION_ATTEMPTS,
    MAX_RESTARTS_PER_FETCH,
    BrowserEngine,
    EngineState,
    EngineStatus,
)
from src.browser.ports import PortRange, find_available_port, is_port_available
from src.browser.session import SessionHandle, SessionManager
from src.browser.supervisor import (
    PORT_REASSIGNED_MESSAGE,
    DriverProcessHandle,
    DriverProcessSupervisor,
    ServiceStatus,
)

__all__ = [
    "BrowserEngine",
    "EngineState",
    "EngineStatus",
    "MAX_NAVIGATION_ATTEMPTS",
    "MAX_RESTARTS_PER_FETCH",
    "PortRange",
    "find_available_port",
    "is_port_available",
    "SessionHandle",
    "SessionManager",
    "DriverProcessHandle",
    "DriverProcessSupervisor",
    "ServiceStatus",
    "PORT_REASSIGNED_MESSAGE",
]
