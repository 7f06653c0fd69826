"""
Tests for src/browser/session.py.

The remote WebDriver factory is patched; no browser is started.

## Test Perspectives Table

| Case ID | Input / Precondition | Perspective (Equivalence / Boundary) | Expected Result | Notes |
|---------|---------------------|---------------------------------------|-----------------|-------|
| TC-SS-N-01 | build_options twice | Equivalence – normal | Headless, binary path, identical args | Deterministic caps |
| TC-SS-N-02 | open() | Equivalence – normal | Session held, page load timeout set | - |
| TC-SS-A-01 | Factory raises | Equivalence – error | SessionOpenError, no session | - |
| TC-SS-N-03 | open() twice | Equivalence – normal | First session quit before second | Close before reopen |
| TC-SS-N-04 | close() when quit raises | Equivalence – error | Swallowed, session cleared | Best-effort |
| TC-SS-B-01 | close() without session | Boundary – empty | No-op | - |
| TC-SS-N-05 | navigate_and_capture | Equivalence – normal | get(url), page_source returned | - |
| TC-SS-A-02 | navigate without session | Equivalence – error | IllegalStateError | - |
| TC-SS-A-03 | driver.get raises | Equivalence – error | Original exception propagates | Caller classifies |
| TC-SS-N-06 | close_current_tab | Equivalence – normal | driver.close() called | - |
"""

from unittest.mock import patch

import pytest
from selenium.common.exceptions import SessionNotCreatedException, WebDriverException

pytestmark = pytest.mark.unit

from src.browser.session import SessionManager
from src.errors import IllegalStateError, SessionOpenError

ENDPOINT = "http://127.0.0.1:9515"
BROWSER_PATH = "/usr/bin/chromium"


@pytest.fixture
def manager(fast_driver_settings) -> SessionManager:
    return SessionManager(BROWSER_PATH, settings=fast_driver_settings)


class TestBuildOptions:
    """Tests for Chrome option construction."""

    def test_headless_and_binary_forced(self, manager):
        # Given/When: Options built
        options = manager.build_options()

        # Then: Headless with fixed binary
        assert options.binary_location == BROWSER_PATH
        assert "--headless=new" in options.arguments
        assert "--window-size=1920,1080" in options.arguments

    def test_options_are_deterministic(self, manager):
        # Given/When: Built twice
        first = manager.build_options()
        second = manager.build_options()

        # Then: Same arguments
        assert first.arguments == second.arguments


class TestOpenClose:
    """Tests for opening and closing sessions."""

    @pytest.mark.asyncio
    async def test_open_holds_session(self, manager, make_mock_webdriver):
        # Given: Factory returning a driver
        driver = make_mock_webdriver()

        with patch("src.browser.session._create_remote_driver", return_value=driver) as factory:
            # When: Opened
            handle = await manager.open(ENDPOINT, 9515)

        # Then: Session held, timeout configured
        assert manager.has_session
        assert handle.port == 9515
        assert handle.session_id == "session-1"
        assert factory.call_args.args[0] == ENDPOINT
        driver.set_page_load_timeout.assert_called_once_with(45)

    @pytest.mark.asyncio
    async def test_open_failure_raises_session_open_error(self, manager):
        # Given: Driver refuses the session
        with patch(
            "src.browser.session._create_remote_driver",
            side_effect=SessionNotCreatedException("version mismatch"),
        ):
            # When/Then: SessionOpenError
            with pytest.raises(SessionOpenError) as exc_info:
                await manager.open(ENDPOINT, 9515)

        assert "version mismatch" in exc_info.value.message
        assert not manager.has_session

    @pytest.mark.asyncio
    async def test_reopen_closes_previous(self, manager, make_mock_webdriver):
        # Given: Two drivers in sequence
        first = make_mock_webdriver(session_id="s1")
        second = make_mock_webdriver(session_id="s2")

        with patch("src.browser.session._create_remote_driver", side_effect=[first, second]):
            await manager.open(ENDPOINT, 9515)

            # When: Opened again
            handle = await manager.open(ENDPOINT, 9516)

        # Then: First quit, second held
        first.quit.assert_called_once()
        second.quit.assert_not_called()
        assert handle.session_id == "s2"

    @pytest.mark.asyncio
    async def test_close_swallows_quit_errors(self, manager, make_mock_webdriver):
        # Given: Driver whose quit fails (driver process already gone)
        driver = make_mock_webdriver()
        driver.quit.side_effect = WebDriverException("connection refused")

        with patch("src.browser.session._create_remote_driver", return_value=driver):
            await manager.open(ENDPOINT, 9515)

        # When: Closed
        await manager.close()

        # Then: No error, session cleared
        assert not manager.has_session

    @pytest.mark.asyncio
    async def test_close_without_session(self, manager):
        # Given/When: Nothing open
        await manager.close()

        # Then: Still no session
        assert manager.session is None


class TestNavigation:
    """Tests for navigate_and_capture and tab handling."""

    @pytest.mark.asyncio
    async def test_navigate_returns_page_source(self, manager, make_mock_webdriver):
        # Given: Open session with a rendered page
        driver = make_mock_webdriver(page_source="<html><body>ok</body></html>")
        with patch("src.browser.session._create_remote_driver", return_value=driver):
            await manager.open(ENDPOINT, 9515)

        # When: Navigating
        html = await manager.navigate_and_capture("https://www.amazon.in/dp/B0TEST1234")

        # Then: Page source returned after get()
        driver.get.assert_called_once_with("https://www.amazon.in/dp/B0TEST1234")
        assert html == "<html><body>ok</body></html>"

    @pytest.mark.asyncio
    async def test_navigate_without_session(self, manager):
        # Given/When/Then: No session
        with pytest.raises(IllegalStateError):
            await manager.navigate_and_capture("https://www.amazon.in/dp/B0TEST1234")

    @pytest.mark.asyncio
    async def test_navigation_error_propagates(self, manager, make_mock_webdriver):
        # Given: Driver failing on get()
        driver = make_mock_webdriver()
        driver.get.side_effect = WebDriverException("net::ERR_CONNECTION_RESET")
        with patch("src.browser.session._create_remote_driver", return_value=driver):
            await manager.open(ENDPOINT, 9515)

        # When/Then: Original exception type surfaces
        with pytest.raises(WebDriverException):
            await manager.navigate_and_capture("https://www.flipkart.com/p/itm123")

        # Then: Session is still held; the engine decides what to do
        assert manager.has_session

    @pytest.mark.asyncio
    async def test_close_current_tab(self, manager, make_mock_webdriver):
        # Given: Open session
        driver = make_mock_webdriver()
        with patch("src.browser.session._create_remote_driver", return_value=driver):
            await manager.open(ENDPOINT, 9515)

        # When: Closing the tab
        await manager.close_current_tab()

        # Then: Window closed, session object kept
        driver.close.assert_called_once()
        assert manager.has_session
