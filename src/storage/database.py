"""
Database management for Pricewatch.
Handles SQLite connection, schema, product/price operations and JSON backups.
"""

import asyncio
import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiosqlite
from pydantic import ValidationError

from src.errors import BackupError
from src.storage.models import DatabaseBackup, PriceEntry, ProductDetails, ProductRecord
from src.utils.config import get_settings
from src.utils.logging import get_logger

logger = get_logger(__name__)

_PRODUCT_COLUMNS = "id, site, url, title, seller, images, features, specifications"


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _load_json_list(raw: str | None) -> list[str]:
    """Decode a stored JSON list; malformed or missing values become []."""
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        return []
    return value if isinstance(value, list) else []


class Database:
    """Async SQLite database manager."""

    def __init__(self, db_path: str | Path | None = None):
        """Initialize database manager.

        Args:
            db_path: Path to SQLite database file. If None, uses settings.
        """
        if db_path is None:
            settings = get_settings()
            db_path = settings.storage.database_path

        self.db_path = Path(db_path)
        self._connection: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        return self._connection is not None

    async def connect(self) -> None:
        """Connect to the database."""
        if self._connection is not None:
            return

        # Ensure parent directory exists
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._connection = await aiosqlite.connect(
            self.db_path,
            isolation_level=None,  # Auto-commit mode; transactions are explicit
        )

        await self._connection.execute("PRAGMA foreign_keys = ON")
        await self._connection.execute("PRAGMA journal_mode = WAL")
        await self._connection.execute("PRAGMA synchronous = NORMAL")

        # Row factory for dict-like access
        self._connection.row_factory = aiosqlite.Row

        logger.info("Database connected", path=str(self.db_path))

    async def close(self) -> None:
        """Close the database connection."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            logger.info("Database connection closed")

    async def initialize_schema(self) -> None:
        """Initialize database schema from SQL file."""
        schema_path = Path(__file__).parent / "schema.sql"

        if not schema_path.exists():
            raise FileNotFoundError(f"Schema file not found: {schema_path}")

        schema_sql = schema_path.read_text(encoding="utf-8")

        async with self._lock:
            await self._require_connection().executescript(schema_sql)

        logger.info("Database schema initialized")

    async def execute(
        self,
        sql: str,
        parameters: tuple | dict | None = None,
    ) -> aiosqlite.Cursor:
        """Execute a SQL statement.

        Args:
            sql: SQL statement to execute.
            parameters: Optional parameters for the statement.

        Returns:
            Cursor with results.
        """
        async with self._lock:
            return await self._require_connection().execute(sql, parameters or ())

    async def fetch_one(
        self,
        sql: str,
        parameters: tuple | dict | None = None,
    ) -> dict[str, Any] | None:
        """Fetch a single row as dict, or None."""
        cursor = await self.execute(sql, parameters)
        row = await cursor.fetchone()
        return dict(row) if row else None

    async def fetch_all(
        self,
        sql: str,
        parameters: tuple | dict | None = None,
    ) -> list[dict[str, Any]]:
        """Fetch all rows as dicts."""
        cursor = await self.execute(sql, parameters)
        rows = await cursor.fetchall()
        return [dict(row) for row in rows]

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """Run several statements atomically.

        Holds the database lock for the whole block; commits on success and
        rolls back on any exception.
        """
        async with self._lock:
            conn = self._require_connection()
            await conn.execute("BEGIN")
            try:
                yield conn
            except BaseException:
                await conn.execute("ROLLBACK")
                raise
            await conn.execute("COMMIT")

    # =========================================================================
    # Products and prices
    # =========================================================================

    async def upsert_product(self, details: ProductDetails) -> None:
        """Insert a product or update its static details.

        Price history is untouched.
        """
        await self.execute(
            f"""
            INSERT INTO products ({_PRODUCT_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                site = excluded.site,
                url = excluded.url,
                title = excluded.title,
                seller = excluded.seller,
                images = excluded.images,
                features = excluded.features,
                specifications = excluded.specifications
            """,
            (
                details.id,
                details.site,
                details.url,
                details.title,
                details.seller,
                json.dumps(details.images, ensure_ascii=False),
                json.dumps(details.features, ensure_ascii=False),
                json.dumps(details.specifications, ensure_ascii=False),
            ),
        )
        logger.debug("Product upserted", product_id=details.id, site=details.site)

    async def insert_price_entry(self, details: ProductDetails) -> bool:
        """Append a price observation for the product.

        Returns:
            True if a row was written; False when the page had no price.
        """
        if details.price is None:
            logger.debug("No price to record", product_id=details.id)
            return False

        await self.execute(
            "INSERT INTO prices (product_id, price, in_stock, timestamp) VALUES (?, ?, ?, ?)",
            (details.id, details.price, details.in_stock, _utc_now_iso()),
        )
        logger.debug("Price entry recorded", product_id=details.id, price=details.price)
        return True

    async def get_product_with_history(self, product_id: str) -> ProductRecord | None:
        """Get one product with its price history (oldest first)."""
        row = await self.fetch_one(
            f"SELECT {_PRODUCT_COLUMNS} FROM products WHERE id = ?",
            (product_id,),
        )
        if row is None:
            return None
        return await self._build_record(row)

    async def get_all_products_with_history(self) -> list[ProductRecord]:
        """Get every product with its price history."""
        rows = await self.fetch_all(f"SELECT {_PRODUCT_COLUMNS} FROM products")
        return [await self._build_record(row) for row in rows]

    async def remove_product(self, product_id: str) -> bool:
        """Delete a product and its price history.

        Returns:
            True if the product existed.
        """
        row = await self.fetch_one("SELECT COUNT(*) AS n FROM products WHERE id = ?", (product_id,))
        if not row or row["n"] == 0:
            logger.info("No product to remove", product_id=product_id)
            return False

        async with self.transaction() as conn:
            # Prices reference products, so they go first
            prices = await conn.execute("DELETE FROM prices WHERE product_id = ?", (product_id,))
            await conn.execute("DELETE FROM products WHERE id = ?", (product_id,))

        logger.info("Product removed", product_id=product_id, prices_deleted=prices.rowcount)
        return True

    # =========================================================================
    # Backups
    # =========================================================================

    async def create_backup(self, backup_path: str | Path) -> Path:
        """Write all products with history to a JSON backup file.

        Raises:
            BackupError: File could not be written.
        """
        path = Path(backup_path)
        backup = DatabaseBackup(
            products=await self.get_all_products_with_history(),
            backup_timestamp=_utc_now_iso(),
        )

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(backup.model_dump_json(indent=2), encoding="utf-8")
        except OSError as e:
            raise BackupError(str(path), str(e)) from e

        logger.info("Backup created", path=str(path), product_count=len(backup.products))
        return path

    async def restore_from_backup(
        self,
        backup_path: str | Path,
        replace_existing: bool = False,
    ) -> int:
        """Load products and price history from a JSON backup file.

        Args:
            backup_path: Backup file written by create_backup().
            replace_existing: Clear all existing data first.

        Returns:
            Number of products restored.

        Raises:
            BackupError: File missing, unreadable or not a valid backup.
        """
        path = Path(backup_path)
        try:
            backup = DatabaseBackup.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            raise BackupError(str(path), str(e)) from e

        logger.info(
            "Restoring backup",
            path=str(path),
            created=backup.backup_timestamp,
            version=backup.version,
            replace_existing=replace_existing,
        )

        async with self.transaction() as conn:
            if replace_existing:
                await conn.execute("DELETE FROM prices")
                await conn.execute("DELETE FROM products")

            for product in backup.products:
                await conn.execute(
                    f"INSERT OR REPLACE INTO products ({_PRODUCT_COLUMNS}) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        product.id,
                        product.site,
                        product.url,
                        product.title,
                        product.seller,
                        json.dumps(product.images, ensure_ascii=False),
                        json.dumps(product.features, ensure_ascii=False),
                        product.specifications,
                    ),
                )
                await conn.executemany(
                    "INSERT INTO prices (product_id, price, in_stock, timestamp) VALUES (?, ?, ?, ?)",
                    [
                        (product.id, entry.price, entry.in_stock, entry.timestamp)
                        for entry in product.price_history
                    ],
                )

        logger.info("Backup restored", product_count=len(backup.products))
        return len(backup.products)

    async def _build_record(self, row: dict[str, Any]) -> ProductRecord:
        prices = await self.fetch_all(
            "SELECT price, in_stock, timestamp FROM prices WHERE product_id = ? ORDER BY timestamp ASC, id ASC",
            (row["id"],),
        )
        return ProductRecord(
            id=row["id"],
            site=row["site"],
            url=row["url"],
            title=row["title"],
            seller=row["seller"],
            images=_load_json_list(row["images"]),
            features=_load_json_list(row["features"]),
            specifications=row["specifications"] or "{}",
            price_history=[PriceEntry(**price) for price in prices],
        )

    def _require_connection(self) -> aiosqlite.Connection:
        if self._connection is None:
            raise RuntimeError("Database is not connected; call connect() first")
        return self._connection


# Global database instance
_db: Database | None = None


async def get_database() -> Database:
    """Get the global database instance.

    Returns:
        Database instance.
    """
    global _db
    if _db is None:
        _db = Database()
        await _db.connect()
        await _db.initialize_schema()
    return _db


async def close_database() -> None:
    """Close the global database instance."""
    global _db
    if _db is not None:
        await _db.close()
        _db = None
