"""
Pytest fixtures and configuration for Pricewatch tests.

=============================================================================
Test Classification
=============================================================================

Primary Markers:
- @pytest.mark.unit: Single class/function, no external processes
  - DEFAULT: Tests without marker are auto-classified as unit

- @pytest.mark.integration: Multiple components wired together. May spawn a
  local fake driver process (a tiny HTTP server answering /status) but
  never a real browser.

- @pytest.mark.e2e: Real chromedriver and Chromium.
  - DEFAULT EXCLUDED unless PRICEWATCH_E2E=1 is set

=============================================================================
Mock Strategy
=============================================================================

- WebDriver sessions: src.browser.session._create_remote_driver is patched
  to return a MagicMock driver
- Driver process: fake_driver_path fixture (executable Python script)
- File I/O: tmp_path / temp_dir
- Database: in-memory SQLite (:memory:) or temp file
"""

import os
import socket
import stat
import sys
import tempfile
from collections.abc import Callable, Generator
from pathlib import Path
from unittest.mock import MagicMock

import pytest
import pytest_asyncio

# Set test environment before importing anything else
os.environ["PRICEWATCH_CONFIG_DIR"] = str(Path(__file__).parent.parent / "config")
os.environ["PRICEWATCH_GENERAL__LOG_LEVEL"] = "DEBUG"


def pytest_configure(config):
    """Register custom markers for test classification."""
    config.addinivalue_line("markers", "unit: Unit tests with no external processes")
    config.addinivalue_line(
        "markers", "integration: Integration tests, may spawn a fake driver process"
    )
    config.addinivalue_line(
        "markers", "e2e: End-to-end tests requiring chromedriver and Chromium (opt-in)"
    )


def pytest_collection_modifyitems(config, items):
    """Default unmarked tests to unit; skip e2e unless explicitly enabled."""
    skip_e2e = pytest.mark.skip(reason="E2E tests need PRICEWATCH_E2E=1 and a real browser")
    run_e2e = os.environ.get("PRICEWATCH_E2E") == "1"

    for item in items:
        has_classification = any(
            marker.name in ("unit", "integration", "e2e") for marker in item.iter_markers()
        )
        if not has_classification:
            item.add_marker(pytest.mark.unit)

        if not run_e2e and any(marker.name == "e2e" for marker in item.iter_markers()):
            item.add_marker(skip_e2e)


# =============================================================================
# Filesystem and settings
# =============================================================================


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def temp_db_path(temp_dir: Path) -> Path:
    """Get path for temporary test database."""
    return temp_dir / "test_pricewatch.db"


@pytest.fixture
def fast_driver_settings():
    """Driver settings with short timings for tests."""
    from src.utils.config import DriverConfig

    return DriverConfig(
        host="127.0.0.1",
        start_settle_seconds=5.0,
        ready_poll_interval=0.05,
        render_settle_seconds=0.0,
        health_check_timeout=1.0,
        stop_timeout=2.0,
    )


@pytest.fixture
def mock_settings(temp_dir: Path, fast_driver_settings):
    """Create settings for testing."""
    from src.utils.config import GeneralConfig, Settings, SitesConfig, StorageConfig

    return Settings(
        general=GeneralConfig(log_level="DEBUG"),
        driver=fast_driver_settings,
        storage=StorageConfig(
            database_path=":memory:",
            backups_dir=str(temp_dir / "backups"),
        ),
        sites=SitesConfig(),
    )


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def test_database(temp_db_path: Path):
    """Create a temporary file-backed test database.

    Saves and restores the global database around the test.
    """
    from src.storage import database as db_module
    from src.storage.database import Database

    saved_global = db_module._db
    db_module._db = None

    db = Database(temp_db_path)
    await db.connect()
    await db.initialize_schema()

    yield db

    await db.close()

    db_module._db = saved_global


@pytest_asyncio.fixture
async def memory_database():
    """Create an in-memory database for fast unit tests."""
    from src.storage.database import Database

    db = Database(":memory:")
    await db.connect()
    await db.initialize_schema()

    yield db

    await db.close()


@pytest.fixture(autouse=True)
def reset_global_database():
    """Reset global database singleton between tests.

    Prevents asyncio.Lock() from being bound to a stale event loop.
    """
    yield
    from src.storage import database as db_module

    db_module._db = None


# =============================================================================
# Driver process fakes
# =============================================================================

_FAKE_DRIVER_SOURCE = '''#!{python}
import sys
from http.server import BaseHTTPRequestHandler, HTTPServer

port = int(next(a.split("=", 1)[1] for a in sys.argv[1:] if a.startswith("--port=")))


class Handler(BaseHTTPRequestHandler):
    def do_GET(self):
        body = b'{{"value": {{"ready": true, "message": "fake driver ready"}}}}'
        self.send_response(200 if self.path == "/status" else 404)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, *args):
        pass


HTTPServer(("127.0.0.1", port), Handler).serve_forever()
'''

_CRASHING_DRIVER_SOURCE = """#!{python}
import sys
sys.exit(3)
"""

_SILENT_DRIVER_SOURCE = """#!{python}
import time
while True:
    time.sleep(1)
"""


def _write_executable(path: Path, source: str) -> str:
    path.write_text(source.format(python=sys.executable), encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(path)


@pytest.fixture
def fake_driver_path(tmp_path: Path) -> str:
    """Executable that behaves like chromedriver's /status endpoint."""
    return _write_executable(tmp_path / "fake_chromedriver", _FAKE_DRIVER_SOURCE)


@pytest.fixture
def crashing_driver_path(tmp_path: Path) -> str:
    """Executable that exits with code 3 immediately."""
    return _write_executable(tmp_path / "crashing_chromedriver", _CRASHING_DRIVER_SOURCE)


@pytest.fixture
def silent_driver_path(tmp_path: Path) -> str:
    """Executable that runs forever without listening on its port."""
    return _write_executable(tmp_path / "silent_chromedriver", _SILENT_DRIVER_SOURCE)


def find_free_port_pair(start: int = 20000, stop: int = 40000) -> int:
    """Find p such that p and p + 1 are both bindable on loopback."""
    from src.browser.ports import is_port_available

    for port in range(start, stop):
        if is_port_available(port) and is_port_available(port + 1):
            return port
    raise RuntimeError("No free port pair found")


@pytest.fixture
def free_port_pair() -> int:
    """Lower port of two adjacent free loopback ports."""
    return find_free_port_pair()


@pytest.fixture
def occupy_port() -> Generator[Callable[[int], socket.socket], None, None]:
    """Bind and listen on ports for the duration of a test."""
    sockets: list[socket.socket] = []

    def _occupy(port: int) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind(("127.0.0.1", port))
        sock.listen(1)
        sockets.append(sock)
        return sock

    yield _occupy

    for sock in sockets:
        sock.close()


# =============================================================================
# WebDriver fakes
# =============================================================================


@pytest.fixture
def make_mock_webdriver() -> Callable[..., MagicMock]:
    """Factory for MagicMock WebDriver instances."""

    def _make(page_source: str = "<html></html>", session_id: str = "session-1") -> MagicMock:
        driver = MagicMock()
        driver.session_id = session_id
        driver.page_source = page_source
        return driver

    return _make
