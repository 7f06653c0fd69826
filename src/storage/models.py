"""
Pydantic models for products and their price history.

ProductDetails is what an extractor produces from one page; ProductRecord is
what the database returns (product row plus ordered price history) and what
backup files contain.
"""

from typing import Any

from pydantic import BaseModel, Field

BACKUP_FORMAT_VERSION = "1.0.0"
NOT_FOUND = "Not Found"
ID_NOT_FOUND = "ID Not Found"


class ProductDetails(BaseModel):
    """Fields extracted from a rendered product page."""

    id: str
    site: str
    url: str = ""
    title: str = NOT_FOUND
    price: int | None = None
    rating: str = NOT_FOUND
    features: list[str] = Field(default_factory=list)
    specifications: dict[str, Any] = Field(default_factory=dict)
    in_stock: bool = False
    seller: str | None = None
    images: list[str] = Field(default_factory=list)

    @property
    def has_reliable_price(self) -> bool:
        """Only in-stock pages with a parsed price are worth recording."""
        return self.in_stock and self.price is not None


class PriceEntry(BaseModel):
    """One observation in a product's price history."""

    price: int
    in_stock: bool
    timestamp: str


class ProductRecord(BaseModel):
    """A stored product with its full price history.

    specifications holds the JSON text as stored in the database.
    """

    id: str
    site: str
    url: str
    title: str
    seller: str | None = None
    images: list[str] = Field(default_factory=list)
    specifications: str = "{}"
    features: list[str] = Field(default_factory=list)
    price_history: list[PriceEntry] = Field(default_factory=list)

    @property
    def latest_price(self) -> PriceEntry | None:
        return self.price_history[-1] if self.price_history else None


class DatabaseBackup(BaseModel):
    """JSON backup file layout."""

    products: list[ProductRecord]
    backup_timestamp: str
    version: str = BACKUP_FORMAT_VERSION
