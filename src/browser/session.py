"""
WebDriver session management.

Opens one remote Chrome session against the supervised driver process and
is the only place that talks the WebDriver protocol (navigation, page
source, window close).

Note: Selenium is synchronous. Every driver call is run in the default
thread pool so the event loop is not blocked.
"""

import asyncio
from collections.abc import Callable
from typing import Any, TypeVar

from selenium import webdriver
from selenium.webdriver.chrome.options import Options as ChromeOptions
from selenium.webdriver.remote.webdriver import WebDriver

from src.errors import IllegalStateError, SessionOpenError
from src.utils.config import DriverConfig, get_settings
from src.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def _create_remote_driver(endpoint: str, options: ChromeOptions) -> WebDriver:
    """Open a W3C session on a running chromedriver."""
    return webdriver.Remote(command_executor=endpoint, options=options)


class SessionHandle:
    """An open browser session bound to one driver port."""

    def __init__(self, driver: WebDriver, port: int):
        self.driver = driver
        self.port = port

    @property
    def session_id(self) -> str | None:
        return getattr(self.driver, "session_id", None)

    def __repr__(self) -> str:
        return f"SessionHandle(port={self.port}, session_id={self.session_id!r})"


class SessionManager:
    """Holds at most one browser session against the driver process."""

    def __init__(self, browser_path: str, *, settings: DriverConfig | None = None):
        """Initialize session manager.

        Args:
            browser_path: Chrome/Chromium binary passed as a capability.
            settings: Driver settings. Uses global settings if None.
        """
        self._settings = settings or get_settings().driver
        self._browser_path = browser_path
        self._session: SessionHandle | None = None

    @property
    def session(self) -> SessionHandle | None:
        return self._session

    @property
    def has_session(self) -> bool:
        return self._session is not None

    def build_options(self) -> ChromeOptions:
        """Build Chrome options for a session.

        Headless mode is always forced and the binary path is fixed, so two
        calls produce identical capabilities.

        Returns:
            Chrome options object.
        """
        options = ChromeOptions()
        options.binary_location = self._browser_path

        options.add_argument("--headless=new")
        options.add_argument("--disable-gpu")
        options.add_argument(
            f"--window-size={self._settings.window_width},{self._settings.window_height}"
        )
        options.add_argument("--disable-notifications")
        options.add_argument("--disable-extensions")
        options.add_argument("--no-sandbox")
        options.add_argument("--disable-dev-shm-usage")

        return options

    async def open(self, endpoint: str, port: int) -> SessionHandle:
        """Open a new session, closing any previous one first.

        Args:
            endpoint: WebDriver endpoint, e.g. http://localhost:9515.
            port: Driver port the session is bound to.

        Returns:
            The new session handle.

        Raises:
            SessionOpenError: Driver refused or could not be reached.
        """
        await self.close()

        options = self.build_options()
        try:
            driver = await self._run(_create_remote_driver, endpoint, options)
            await self._run(driver.set_page_load_timeout, self._settings.page_load_timeout)
        except Exception as e:
            logger.error("Failed to open browser session", endpoint=endpoint, error=str(e))
            raise SessionOpenError(port, str(e)) from e

        self._session = SessionHandle(driver, port)
        logger.info("Browser session opened", port=port, session_id=self._session.session_id)
        return self._session

    async def close(self) -> None:
        """Quit the current session, if any.

        Best-effort: a session whose driver is already gone is not an error.
        """
        session, self._session = self._session, None
        if session is None:
            return

        try:
            await self._run(session.driver.quit)
            logger.info("Browser session closed", port=session.port)
        except Exception as e:
            logger.debug(
                "Error closing browser session (may be expected)",
                port=session.port,
                error=str(e),
            )

    async def navigate_and_capture(self, url: str) -> str:
        """Navigate to url, wait for rendering, return the DOM source.

        Protocol errors are raised unchanged for the caller to classify.

        Args:
            url: Page to load.

        Returns:
            Rendered HTML.
        """
        session = self._require_session("navigate")

        await self._run(session.driver.get, url)
        await asyncio.sleep(self._settings.render_settle_seconds)
        html = await self._run(lambda: session.driver.page_source)

        logger.debug("Captured page source", url=url, content_length=len(html))
        return html

    async def close_current_tab(self) -> None:
        """Close the active browser window."""
        session = self._require_session("close tab")
        await self._run(session.driver.close)

    def _require_session(self, operation: str) -> SessionHandle:
        if self._session is None:
            raise IllegalStateError(operation, "without an open session")
        return self._session

    async def _run(self, func: Callable[..., T], *args: Any) -> T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func, *args)
