"""
Resilient page fetching on top of a supervised browser driver.

BrowserEngine turns "give me the rendered HTML of this URL" into a bounded
sequence of attempts:

1. Navigate with the current session, if there is one.
2. On failure, restart once: close session, stop driver, pick a port, start
   driver, open a new session.
3. Navigate again, once.

A fetch therefore performs at most MAX_NAVIGATION_ATTEMPTS navigations and
MAX_RESTARTS_PER_FETCH restarts. All state transitions happen under one
asyncio.Lock, so at most one fetch/restart/shutdown runs per engine.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from types import TracebackType
from typing import Any

from src.browser.ports import PortRange
from src.browser.session import SessionManager
from src.browser.supervisor import DriverProcessSupervisor, ServiceStatus
from src.errors import (
    FetchPhase,
    IllegalStateError,
    NavigationFailedError,
    ServiceUnavailableError,
    SessionOpenError,
)
from src.utils.config import DriverConfig, get_settings
from src.utils.logging import LogContext, get_logger

logger = get_logger(__name__)

MAX_NAVIGATION_ATTEMPTS = 2
MAX_RESTARTS_PER_FETCH = 1


class EngineState(Enum):
    """Lifecycle state of a BrowserEngine."""

    UNINITIALIZED = "uninitialized"  # no process, no session
    PROCESS_ONLY = "process_only"  # driver up, session not yet open
    READY = "ready"  # driver and session up, last check good
    DEGRADED = "degraded"  # handles present, last check or navigation failed
    SHUT_DOWN = "shut_down"  # terminal


_TRANSITIONS: dict[EngineState, frozenset[EngineState]] = {
    EngineState.UNINITIALIZED: frozenset(
        {
            EngineState.UNINITIALIZED,
            EngineState.PROCESS_ONLY,
            EngineState.DEGRADED,
            EngineState.SHUT_DOWN,
        }
    ),
    EngineState.PROCESS_ONLY: frozenset(
        {
            EngineState.READY,
            EngineState.DEGRADED,
            EngineState.UNINITIALIZED,
            EngineState.SHUT_DOWN,
        }
    ),
    EngineState.READY: frozenset(
        {
            EngineState.READY,
            EngineState.DEGRADED,
            EngineState.UNINITIALIZED,
            EngineState.SHUT_DOWN,
        }
    ),
    EngineState.DEGRADED: frozenset(
        {
            EngineState.READY,
            EngineState.DEGRADED,
            EngineState.UNINITIALIZED,
            EngineState.SHUT_DOWN,
        }
    ),
    EngineState.SHUT_DOWN: frozenset(),
}


def is_legal_transition(current: EngineState, target: EngineState) -> bool:
    """Check a state change against the transition table."""
    return target in _TRANSITIONS[current]


@dataclass(frozen=True)
class EngineStatus:
    """Driver health annotated with session liveness."""

    service: ServiceStatus
    has_session: bool
    state: EngineState

    @property
    def is_running(self) -> bool:
        return self.service.is_healthy and self.has_session

    @property
    def current_port(self) -> int:
        return self.service.port

    @property
    def message(self) -> str:
        return self.service.error_message or "Service is healthy"

    @property
    def requires_restart(self) -> bool:
        return not self.service.is_healthy

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "is_running": self.is_running,
            "current_port": self.current_port,
            "message": self.message,
            "requires_restart": self.requires_restart,
            "has_session": self.has_session,
            "state": self.state.value,
        }


class BrowserEngine:
    """Persistent browser session with automatic driver recovery.

    Use BrowserEngine.start() to create a running engine and always call
    shutdown() (or use it as an async context manager).
    """

    def __init__(
        self,
        initial_port: int,
        driver_path: str,
        browser_path: str,
        *,
        port_range: PortRange | None = None,
        settings: DriverConfig | None = None,
    ):
        settings = settings or get_settings().driver
        self._supervisor = DriverProcessSupervisor(
            driver_path,
            initial_port,
            port_range,
            settings=settings,
        )
        self._sessions = SessionManager(browser_path, settings=settings)
        self._state = EngineState.UNINITIALIZED
        self._lock = asyncio.Lock()

    @classmethod
    async def start(
        cls,
        initial_port: int,
        driver_path: str,
        browser_path: str,
        *,
        port_range: PortRange | None = None,
        settings: DriverConfig | None = None,
    ) -> "BrowserEngine":
        """Create an engine with a running driver and an open session.

        If the first start is unhealthy (port busy, slow driver), one restart
        with port fallback is attempted.

        Raises:
            NoPortAvailableError: No free port in the range.
            DriverSpawnError: Driver binary could not be executed.
            ServiceUnavailableError: Driver unhealthy after the fallback.
            SessionOpenError: Driver healthy but refused a session.
        """
        engine = cls(
            initial_port,
            driver_path,
            browser_path,
            port_range=port_range,
            settings=settings,
        )
        try:
            await engine._bring_up()
        except BaseException:
            await engine.shutdown()
            raise
        return engine

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def supervisor(self) -> DriverProcessSupervisor:
        return self._supervisor

    @property
    def sessions(self) -> SessionManager:
        return self._sessions

    def get_current_port(self) -> int:
        return self._supervisor.get_current_port()

    def set_port_range(self, min_port: int, max_port: int) -> None:
        """Reconfigure fallback ports; takes effect on the next restart."""
        self._supervisor.set_port_range(min_port, max_port)

    async def fetch_rendered_html(self, url: str) -> str:
        """Return the rendered HTML of url, restarting the driver once if needed.

        Raises:
            NavigationFailedError: Navigation failed after the restart.
            ServiceUnavailableError: Restart did not produce a healthy service.
            NoPortAvailableError, DriverSpawnError: Configuration errors.
            IllegalStateError: Engine already shut down.
        """
        async with self._lock:
            self._ensure_usable("fetch")
            with LogContext(url=url):
                return await self._fetch_locked(url)

    async def restart(self) -> ServiceStatus:
        """Tear down session and driver, then bring both back up.

        Returns:
            ServiceStatus of the restarted driver. When unhealthy, no session
            is open.

        Raises:
            SessionOpenError: Driver healthy but refused a session.
        """
        async with self._lock:
            self._ensure_usable("restart")
            return await self._restart_locked()

    async def check_status(self) -> EngineStatus:
        """Health-check the driver and report whether a session is live."""
        async with self._lock:
            service = await self._supervisor.health_check()
            has_session = self._sessions.has_session

            if self._state in (EngineState.READY, EngineState.DEGRADED):
                healthy = service.is_healthy and has_session
                self._transition(EngineState.READY if healthy else EngineState.DEGRADED)

            return EngineStatus(service=service, has_session=has_session, state=self._state)

    async def close_current_tab(self) -> None:
        """Close the active browser window of the current session."""
        async with self._lock:
            self._ensure_usable("close tab")
            await self._sessions.close_current_tab()

    async def shutdown(self) -> None:
        """Close the session, then stop the driver. Safe to call twice."""
        async with self._lock:
            if self._state is EngineState.SHUT_DOWN:
                logger.debug("Browser engine already shut down")
                return

            logger.info("Shutting down browser engine", port=self.get_current_port())
            await self._sessions.close()
            await self._supervisor.stop()
            self._transition(EngineState.SHUT_DOWN)

    async def __aenter__(self) -> "BrowserEngine":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.shutdown()

    def __del__(self) -> None:
        # __init__ may have failed before the handles were assigned
        state = getattr(self, "_state", None)
        if state is None or state is EngineState.SHUT_DOWN:
            return
        if self._sessions.has_session or self._supervisor.has_process:
            logger.warning(
                "BrowserEngine was dropped without calling shutdown(); "
                "the browser window may have been left open",
                state=state.value,
                port=self._supervisor.get_current_port(),
            )

    async def _bring_up(self) -> None:
        async with self._lock:
            status = await self._supervisor.start()
            if not status.is_healthy:
                logger.warning(
                    "Initial driver start unhealthy, falling back",
                    port=status.port,
                    reason=status.error_message,
                )
                status = await self._restart_locked()
                if not status.is_healthy:
                    raise ServiceUnavailableError(
                        f"Failed to start browser service after fallback: {status.error_message}",
                        port=status.port,
                    )
                return

            self._transition(EngineState.PROCESS_ONLY)
            await self._open_session(status.port)

    async def _fetch_locked(self, url: str) -> str:
        restarts = 0
        navigations = 0
        last_error: Exception | None = None

        for attempt in range(MAX_NAVIGATION_ATTEMPTS):
            if attempt > 0 or not self._sessions.has_session:
                if restarts >= MAX_RESTARTS_PER_FETCH:
                    break
                restarts += 1
                await self._recover_for_fetch()

            navigations += 1
            try:
                html = await self._sessions.navigate_and_capture(url)
            except Exception as e:
                last_error = e
                self._transition(EngineState.DEGRADED)
                logger.warning(
                    "Navigation failed",
                    attempt=navigations,
                    restarts=restarts,
                    error=str(e),
                )
                continue

            if restarts:
                logger.info("Fetch succeeded after restart", port=self.get_current_port())
            return html

        raise NavigationFailedError(url, str(last_error), attempts=navigations)

    async def _recover_for_fetch(self) -> None:
        logger.info("Restarting browser service for fetch", port=self.get_current_port())
        try:
            status = await self._restart_locked()
        except SessionOpenError as e:
            raise ServiceUnavailableError(
                e.message,
                port=self.get_current_port(),
                phase=FetchPhase.SESSION_OPEN,
            ) from e

        if not status.is_healthy:
            raise ServiceUnavailableError(
                f"Failed to restart service: {status.error_message}",
                port=status.port,
            )

    async def _restart_locked(self) -> ServiceStatus:
        # Old handles go first: never two live sessions or processes
        await self._sessions.close()
        await self._supervisor.stop()
        self._transition(EngineState.UNINITIALIZED)

        status = await self._supervisor.restart()
        if not status.is_healthy:
            if self._supervisor.has_process:
                self._transition(EngineState.DEGRADED)
            logger.warning("Driver restart unhealthy", port=status.port, reason=status.error_message)
            return status

        self._transition(EngineState.PROCESS_ONLY)
        await self._open_session(status.port)
        logger.info("Browser service restarted", port=status.port, pid=self._supervisor.process_pid)
        return status

    async def _open_session(self, port: int) -> None:
        try:
            await self._sessions.open(self._supervisor.endpoint, port)
        except SessionOpenError:
            self._transition(EngineState.DEGRADED)
            raise
        self._transition(EngineState.READY)

    def _ensure_usable(self, operation: str) -> None:
        if self._state is EngineState.SHUT_DOWN:
            raise IllegalStateError(operation, self._state.value)

    def _transition(self, target: EngineState) -> None:
        if not is_legal_transition(self._state, target):
            raise IllegalStateError(f"move to {target.value}", self._state.value)
        if target is not self._state:
            logger.debug("Engine state change", old=self._state.value, new=target.value)
        self._state = target
