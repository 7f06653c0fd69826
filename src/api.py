"""
Application-facing entry points for Pricewatch.

Thin async functions over BrowserEngine and PriceEngine, intended for the
UI layer. Arguments left as None fall back to settings.
"""

from pathlib import Path

from src.browser.engine import BrowserEngine, EngineStatus
from src.browser.supervisor import ServiceStatus
from src.price_engine import PriceEngine, PriceEngineStatus
from src.storage.models import ProductRecord
from src.utils.config import ensure_directories, get_settings
from src.utils.logging import ensure_logging_configured, get_logger

logger = get_logger(__name__)


# =============================================================================
# Browser engine
# =============================================================================


async def start_engine(
    initial_port: int | None = None,
    driver_path: str | None = None,
    browser_path: str | None = None,
) -> BrowserEngine:
    """Start a browser engine with a running driver and an open session."""
    ensure_logging_configured()
    driver = get_settings().driver
    return await BrowserEngine.start(
        initial_port if initial_port is not None else driver.initial_port,
        driver_path or driver.driver_path,
        browser_path or driver.browser_path,
    )


async def fetch(engine: BrowserEngine, url: str) -> str:
    """Rendered HTML of url."""
    return await engine.fetch_rendered_html(url)


async def status(engine: BrowserEngine) -> EngineStatus:
    return await engine.check_status()


async def restart(engine: BrowserEngine) -> ServiceStatus:
    return await engine.restart()


async def shutdown(engine: BrowserEngine) -> None:
    await engine.shutdown()


# =============================================================================
# Price engine
# =============================================================================


async def get_price_engine(
    port: int | None = None,
    browser_path: str | None = None,
    db_path: str | Path | None = None,
    driver_path: str | None = None,
) -> PriceEngine:
    """Start the browser engine and open the product database."""
    ensure_logging_configured()
    ensure_directories()
    settings = get_settings()
    return await PriceEngine.create(
        port if port is not None else settings.driver.initial_port,
        browser_path or settings.driver.browser_path,
        db_path or settings.storage.database_path,
        driver_path or settings.driver.driver_path,
    )


async def shutdown_price_engine(engine: PriceEngine) -> None:
    await engine.shutdown()


async def fetch_and_update_product(engine: PriceEngine, url: str) -> ProductRecord:
    return await engine.fetch_and_update_product(url)


async def get_all_products_in_db(engine: PriceEngine) -> list[ProductRecord]:
    return await engine.get_all_products_in_db()


async def remove_product_by_id(engine: PriceEngine, product_id: str) -> None:
    await engine.remove_product_by_id(product_id)


async def create_backup(engine: PriceEngine, backup_path: str | Path | None = None) -> str:
    """Write a JSON backup and return its path."""
    return str(await engine.create_backup(backup_path))


async def restore_from_backup(
    engine: PriceEngine,
    backup_path: str | Path,
    replace_existing: bool = False,
) -> int:
    """Restore a JSON backup and return the number of products restored."""
    return await engine.restore_from_backup(backup_path, replace_existing)


async def check_service_status(engine: PriceEngine) -> PriceEngineStatus:
    return await engine.check_service_status()


async def get_current_port(engine: PriceEngine) -> int:
    return engine.get_current_port()


async def restart_browser_service(engine: PriceEngine) -> str:
    """Restart the browser service and describe the outcome.

    Raises:
        ServiceUnavailableError: The restarted driver is not healthy.
    """
    result = await engine.restart_browser_service()
    return f"Service restarted: Successfully restarted on port {result.port}"
