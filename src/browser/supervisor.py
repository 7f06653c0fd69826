"""
Driver process supervision.

Owns the lifetime of one chromedriver process bound to a local port:
- Spawns the driver with hardened flags (loopback connections only)
- Polls the driver's /status endpoint until it is ready
- Terminates the process (SIGTERM, then SIGKILL after a grace period)
- Falls back to another port in the configured range when the current one
  is taken

Health checks never raise; they return a ServiceStatus. Spawn failures and
port exhaustion raise, since retrying them cannot succeed.
"""

import asyncio
import subprocess
import sys
from dataclasses import dataclass
from typing import Any

import aiohttp

from src.browser.ports import PortRange, find_available_port, is_port_available
from src.errors import DriverSpawnError
from src.utils.config import DriverConfig, get_settings
from src.utils.logging import get_logger

logger = get_logger(__name__)

PORT_REASSIGNED_MESSAGE = "port busy, reassigned"

# chromedriver only accepts connections from localhost when the allow-list is empty
HARDENED_DRIVER_FLAGS: tuple[str, ...] = ("--allowed-ips=",)


@dataclass(frozen=True)
class ServiceStatus:
    """Snapshot of the driver service health.

    A healthy status never carries an error message; an unhealthy one always
    does.
    """

    is_healthy: bool
    port: int
    error_message: str | None = None

    def __post_init__(self) -> None:
        if self.is_healthy and self.error_message is not None:
            raise ValueError("healthy ServiceStatus cannot carry an error_message")
        if not self.is_healthy and not self.error_message:
            raise ValueError("unhealthy ServiceStatus requires an error_message")

    @classmethod
    def healthy(cls, port: int) -> "ServiceStatus":
        return cls(is_healthy=True, port=port)

    @classmethod
    def unhealthy(cls, port: int, message: str) -> "ServiceStatus":
        return cls(is_healthy=False, port=port, error_message=message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "is_healthy": self.is_healthy,
            "port": self.port,
            "error_message": self.error_message,
        }


class DriverProcessHandle:
    """Exclusive owner of one running driver process.

    The handle must be released through terminate(). If it is garbage
    collected while the process still runs, the process is killed and a
    warning is logged.
    """

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        port: int,
        driver_path: str,
    ):
        self._process = process
        self.port = port
        self.driver_path = driver_path
        self._released = False

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def returncode(self) -> int | None:
        return self._process.returncode

    @property
    def is_alive(self) -> bool:
        return self._process.returncode is None

    @property
    def released(self) -> bool:
        return self._released

    async def terminate(self, timeout: float) -> None:
        """Terminate the process, escalating to kill after timeout.

        Args:
            timeout: Seconds to wait for a graceful exit.
        """
        self._released = True
        if not self.is_alive:
            return

        try:
            self._process.terminate()
        except ProcessLookupError:
            # Exited between the liveness check and the signal
            return

        try:
            await asyncio.wait_for(self._process.wait(), timeout=timeout)
        except TimeoutError:
            logger.warning(
                "Driver process ignored SIGTERM, killing",
                pid=self.pid,
                timeout=timeout,
            )
            self._process.kill()
            await self._process.wait()

    def __del__(self) -> None:
        if self._released or self._process.returncode is not None:
            return
        logger.warning(
            "Driver process handle dropped without terminate(), killing process",
            pid=self._process.pid,
            port=self.port,
        )
        try:
            self._process.kill()
        except (ProcessLookupError, RuntimeError) as e:
            # Event loop already closed or process already reaped
            logger.debug("Implicit driver kill failed", pid=self._process.pid, error=str(e))


class DriverProcessSupervisor:
    """Launches, health-checks and terminates the browser driver process."""

    def __init__(
        self,
        driver_path: str,
        initial_port: int,
        port_range: PortRange | None = None,
        *,
        settings: DriverConfig | None = None,
    ):
        """Initialize supervisor.

        Args:
            driver_path: Path to the driver executable.
            initial_port: Preferred port.
            port_range: Bounds for fallback ports. Defaults to
                initial_port..initial_port + driver.port_range_size.
            settings: Driver settings. Uses global settings if None.
        """
        self._settings = settings or get_settings().driver
        self._driver_path = driver_path
        self._port_range = port_range or PortRange(
            initial_port,
            min(initial_port + self._settings.port_range_size, 65535),
        )
        self._current_port = initial_port
        self._handle: DriverProcessHandle | None = None

    @property
    def driver_path(self) -> str:
        return self._driver_path

    @property
    def port_range(self) -> PortRange:
        return self._port_range

    @property
    def process_handle(self) -> DriverProcessHandle | None:
        return self._handle

    @property
    def process_pid(self) -> int | None:
        return self._handle.pid if self._handle else None

    @property
    def has_process(self) -> bool:
        return self._handle is not None

    @property
    def endpoint(self) -> str:
        """WebDriver endpoint URL of the current port."""
        return f"http://{self._settings.host}:{self._current_port}"

    def get_current_port(self) -> int:
        return self._current_port

    def set_port_range(self, min_port: int, max_port: int) -> None:
        """Replace the port search bounds.

        The current port is reset to min_port if it falls outside the new
        bounds. The running process, if any, is left alone.

        Args:
            min_port: Lower bound (inclusive).
            max_port: Upper bound (inclusive).
        """
        self._port_range = PortRange(min_port, max_port)
        if self._current_port not in self._port_range:
            logger.info(
                "Current port outside new range, resetting",
                old_port=self._current_port,
                new_port=min_port,
            )
            self._current_port = min_port

    async def start(self) -> ServiceStatus:
        """Start the driver on the current port.

        If the current port is taken, a new port is selected and an unhealthy
        status is returned without starting anything; the caller decides
        whether to start again.

        Returns:
            ServiceStatus after the readiness wait.

        Raises:
            NoPortAvailableError: Current port busy and range exhausted.
            DriverSpawnError: Driver binary could not be executed.
        """
        if not is_port_available(self._current_port):
            busy_port = self._current_port
            self._current_port = find_available_port(self._port_range)
            logger.warning(
                "Driver port busy, reassigned",
                busy_port=busy_port,
                new_port=self._current_port,
            )
            return ServiceStatus.unhealthy(self._current_port, PORT_REASSIGNED_MESSAGE)

        await self.stop()
        await self._spawn()
        return await self._wait_until_ready()

    async def stop(self) -> None:
        """Terminate the owned driver process, if any.

        Idempotent. Failures are logged, never raised.
        """
        handle, self._handle = self._handle, None
        if handle is None:
            return

        logger.info("Stopping driver process", pid=handle.pid, port=handle.port)
        try:
            await handle.terminate(self._settings.stop_timeout)
        except Exception as e:
            logger.warning(
                "Failed to stop driver process (may already be dead)",
                pid=handle.pid,
                error=str(e),
            )

    async def restart(self) -> ServiceStatus:
        """Stop the driver and start it again, moving port if needed.

        Returns:
            ServiceStatus of the new process.

        Raises:
            NoPortAvailableError: No free port left in the range.
            DriverSpawnError: Driver binary could not be executed.
        """
        await self.stop()

        if not is_port_available(self._current_port):
            old_port = self._current_port
            self._current_port = find_available_port(self._port_range)
            logger.info(
                "Restarting driver on new port",
                old_port=old_port,
                new_port=self._current_port,
            )

        return await self.start()

    async def health_check(self) -> ServiceStatus:
        """Query the driver's /status endpoint.

        Returns:
            Healthy status on a 2xx response, unhealthy otherwise.
        """
        port = self._current_port
        url = f"{self.endpoint}/status"

        try:
            timeout = aiohttp.ClientTimeout(total=self._settings.health_check_timeout)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(url) as response:
                    if 200 <= response.status < 300:
                        logger.debug("health_check ok", port=port)
                        return ServiceStatus.healthy(port)
                    return ServiceStatus.unhealthy(
                        port,
                        f"Service unhealthy on port {port}: HTTP {response.status}",
                    )
        except (aiohttp.ClientError, TimeoutError, OSError) as e:
            logger.debug("health_check failed", port=port, error=str(e))
            return ServiceStatus.unhealthy(
                port,
                f"Service not responding on port {port}: {type(e).__name__}: {e}",
            )

    async def _spawn(self) -> None:
        port = self._current_port
        args = [self._driver_path, f"--port={port}", *HARDENED_DRIVER_FLAGS]

        kwargs: dict[str, Any] = {}
        if sys.platform == "win32":
            kwargs["creationflags"] = subprocess.CREATE_NO_WINDOW

        logger.info("Starting driver process", driver_path=self._driver_path, port=port)
        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
                **kwargs,
            )
        except OSError as e:
            logger.error(
                "Driver spawn failed",
                driver_path=self._driver_path,
                error=str(e),
            )
            raise DriverSpawnError(self._driver_path, str(e)) from e

        self._handle = DriverProcessHandle(process, port, self._driver_path)
        logger.info("Driver process started", pid=process.pid, port=port)

    async def _wait_until_ready(self) -> ServiceStatus:
        """Poll /status until healthy, the process dies, or the settle time ends."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._settings.start_settle_seconds
        port = self._current_port

        status = await self.health_check()
        while not status.is_healthy and loop.time() < deadline:
            if self._handle is not None and not self._handle.is_alive:
                return ServiceStatus.unhealthy(
                    port,
                    f"Driver process exited with code {self._handle.returncode} on port {port}",
                )
            await asyncio.sleep(self._settings.ready_poll_interval)
            status = await self.health_check()

        if status.is_healthy:
            logger.info("Driver service ready", port=port, pid=self.process_pid)
            return status

        logger.warning("Driver started but not responding", port=port, reason=status.error_message)
        return ServiceStatus.unhealthy(
            port,
            f"Service started but not responding on port {port}: {status.error_message}",
        )
