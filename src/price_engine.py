"""
Price tracking on top of the browser engine and the product database.

PriceEngine owns one BrowserEngine and one Database. A tracked product is
refreshed by fetching its rendered page, extracting the site fields,
upserting the product row and appending a price entry when the page shows
the item in stock with a price.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from src.browser.engine import BrowserEngine
from src.browser.supervisor import ServiceStatus
from src.errors import RecordNotFoundError, ServiceUnavailableError
from src.extractor import extract_details
from src.storage.database import Database
from src.storage.models import ProductRecord
from src.utils.config import Settings, get_project_root, get_settings
from src.utils.logging import LogContext, get_logger

logger = get_logger(__name__)

LAST_CHECK_FORMAT = "%Y-%m-%d %H:%M:%S UTC"


@dataclass(frozen=True)
class PriceEngineStatus:
    """Browser service health as reported to the application."""

    is_healthy: bool
    current_port: int
    message: str
    last_check: str

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "is_healthy": self.is_healthy,
            "current_port": self.current_port,
            "message": self.message,
            "last_check": self.last_check,
        }


class PriceEngine:
    """Fetches product pages and keeps their price history."""

    def __init__(
        self,
        browser_engine: BrowserEngine,
        database: Database,
        *,
        settings: Settings | None = None,
    ):
        self._browser = browser_engine
        self._database = database
        self._settings = settings or get_settings()

    @classmethod
    async def create(
        cls,
        port: int,
        browser_path: str,
        db_path: str | Path,
        driver_path: str,
        *,
        settings: Settings | None = None,
    ) -> "PriceEngine":
        """Start the browser engine and open the database.

        The browser may come up on a different port than requested when
        that port is busy.
        """
        settings = settings or get_settings()

        logger.info("Starting price engine", port=port, db_path=str(db_path))
        browser = await BrowserEngine.start(
            port, driver_path, browser_path, settings=settings.driver
        )
        if browser.get_current_port() != port:
            logger.info(
                "Browser service started on different port",
                requested=port,
                actual=browser.get_current_port(),
            )

        database = Database(db_path)
        try:
            await database.connect()
            await database.initialize_schema()
        except BaseException:
            await browser.shutdown()
            await database.close()
            raise

        return cls(browser, database, settings=settings)

    @property
    def browser_engine(self) -> BrowserEngine:
        return self._browser

    @property
    def database(self) -> Database:
        return self._database

    async def fetch_and_update_product(self, url: str) -> ProductRecord:
        """Refresh one product from its page and return it with history.

        Raises:
            UnsupportedSiteError: URL is not a supported site.
            NavigationFailedError, ServiceUnavailableError: Fetch failed.
            ExtractionError: Page could not be parsed.
        """
        with LogContext(product_url=url):
            html = await self._browser.fetch_rendered_html(url)

            details = extract_details(html, url)
            details.url = url

            await self._database.upsert_product(details)

            if details.has_reliable_price:
                await self._database.insert_price_entry(details)
                logger.info("Price recorded", product_id=details.id, price=details.price)
            elif details.in_stock:
                logger.info("In stock but no price found, skipping price update", product_id=details.id)
            else:
                logger.info("Out of stock, skipping price update", product_id=details.id)

            record = await self._database.get_product_with_history(details.id)
            if record is None:
                raise RecordNotFoundError(details.id)
            return record

    async def check_service_status(self) -> PriceEngineStatus:
        """Report browser service health with a check timestamp."""
        status = await self._browser.check_status()
        return PriceEngineStatus(
            is_healthy=status.is_running,
            current_port=status.current_port,
            message=status.message,
            last_check=datetime.now(timezone.utc).strftime(LAST_CHECK_FORMAT),
        )

    def get_current_port(self) -> int:
        return self._browser.get_current_port()

    async def restart_browser_service(self) -> ServiceStatus:
        """Restart the browser service.

        Raises:
            ServiceUnavailableError: The restarted driver is not healthy.
        """
        logger.info("Restarting browser service", port=self.get_current_port())
        status = await self._browser.restart()
        if not status.is_healthy:
            raise ServiceUnavailableError(
                f"Failed to restart service: {status.error_message}",
                port=status.port,
            )
        return status

    async def remove_product_by_id(self, product_id: str) -> bool:
        """Delete a product and its history. A missing id is not an error."""
        return await self._database.remove_product(product_id)

    async def get_all_products_in_db(self) -> list[ProductRecord]:
        return await self._database.get_all_products_with_history()

    async def create_backup(self, backup_path: str | Path | None = None) -> Path:
        """Write a JSON backup; defaults to a timestamped file in backups_dir."""
        if backup_path is None:
            stamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
            backups_dir = get_project_root() / self._settings.storage.backups_dir
            backup_path = backups_dir / f"pricewatch_backup_{stamp}.json"
        return await self._database.create_backup(backup_path)

    async def restore_from_backup(
        self,
        backup_path: str | Path,
        replace_existing: bool = False,
    ) -> int:
        return await self._database.restore_from_backup(backup_path, replace_existing)

    async def shutdown(self) -> None:
        """Stop the browser engine, then close the database."""
        try:
            await self._browser.shutdown()
        finally:
            await self._database.close()
        logger.info("Price engine shut down")
