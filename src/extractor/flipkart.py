"""
Flipkart Product Page Parser.
"""

from __future__ import annotations

from bs4 import BeautifulSoup

from src.extractor.base import BaseProductParser
from src.storage.models import NOT_FOUND, ProductDetails


class FlipkartParser(BaseProductParser):
    """Parser for Flipkart product pages."""

    site_name = "Flipkart"
    domain = "flipkart.com"
    # Path id first, pid query parameter as fallback
    id_patterns = (r"/p/([a-zA-Z0-9]+)", r"pid=([A-Z0-9]+)")

    def _extract_details(self, soup: BeautifulSoup, product_id: str) -> ProductDetails:
        """Extract fields from a Flipkart product page."""
        price_elem = soup.select_one("div.Nx9bqj")
        price = (
            self.parse_price(self._extract_text(price_elem), strip_chars="₹,")
            if price_elem
            else None
        )

        return ProductDetails(
            id=product_id,
            site=self.site_name,
            title=self.select_text(soup, "span.VU-ZEz"),
            price=price,
            rating=self._extract_rating(soup),
            features=self.select_texts(soup, "li._7eSDEz"),
            specifications=self._extract_specifications(soup),
            # Flipkart only marks the unavailable case
            in_stock=soup.select_one("div.nyRpc8") is None,
            seller=self.select_optional_text(soup, "#sellerName span span"),
            images=self.select_image_sources(soup, "li.YGoYIP img", "/128/128/", "/832/832/"),
        )

    def _extract_rating(self, soup: BeautifulSoup) -> str:
        value = self.select_optional_text(soup, "div.XQDdHH")
        count = self.select_optional_text(soup, "span.Wphh3N")
        if value is None:
            return NOT_FOUND
        if count is None:
            return f"{value} ★"
        return f"{value} ★ ({count})"

    def _extract_specifications(self, soup: BeautifulSoup) -> dict[str, dict[str, str]]:
        """Specifications grouped by category title."""
        specs: dict[str, dict[str, str]] = {}
        for table in soup.select("div.GNDEQ-"):
            category = self.select_optional_text(table, r"div._4BJ2V\+")
            if category is None:
                continue

            category_specs: dict[str, str] = {}
            for row in table.select("tr.WJdYP6"):
                key = self.select_optional_text(row, r"td.\+fFi1w")
                value = self.select_optional_text(row, "td.Izz52n li")
                if key is not None and value is not None:
                    category_specs[key] = value
            specs[category] = category_specs
        return specs
