"""
Amazon (amazon.in) Product Page Parser.
"""

from __future__ import annotations

from bs4 import BeautifulSoup

from src.extractor.base import BaseProductParser
from src.storage.models import NOT_FOUND, ProductDetails

LEFT_TO_RIGHT_MARK = "\u200e"


class AmazonParser(BaseProductParser):
    """Parser for Amazon product pages."""

    site_name = "Amazon"
    domain = "amazon.in"
    id_patterns = (r"/dp/([A-Z0-9]{10})",)

    def _extract_details(self, soup: BeautifulSoup, product_id: str) -> ProductDetails:
        """Extract fields from an Amazon product page."""
        price_elem = soup.select_one("span.a-price-whole")
        price = self.parse_price(self._extract_text(price_elem)) if price_elem else None

        availability = self.select_optional_text(soup, "#availability span.a-color-success")
        in_stock = availability is not None and availability.lower() == "in stock"

        return ProductDetails(
            id=product_id,
            site=self.site_name,
            title=self.select_text(soup, "span#productTitle"),
            price=price,
            rating=self._extract_rating(soup),
            features=self.select_texts(soup, "#feature-bullets .a-list-item"),
            specifications=self._extract_specifications(soup),
            in_stock=in_stock,
            seller=self.select_optional_text(soup, "#sellerProfileTriggerId"),
            images=self.select_image_sources(
                soup, "li.item.imageThumbnail img", "._SS40_.", "._SL1500_."
            ),
        )

    def _extract_rating(self, soup: BeautifulSoup) -> str:
        stars = self.select_text(soup, "i.a-icon-star span.a-icon-alt")
        count = self.select_text(soup, "span#acrCustomerReviewText")
        if stars == NOT_FOUND or count == NOT_FOUND:
            return NOT_FOUND
        return f"{stars} ({count})"

    def _extract_specifications(self, soup: BeautifulSoup) -> dict[str, str]:
        """Flat key/value map from the technical details table."""
        specs: dict[str, str] = {}
        for row in soup.select("table#productDetails_techSpec_section_1 tr"):
            key = self.select_text(row, "th")
            if key == NOT_FOUND:
                continue
            specs[key] = self.select_text(row, "td").replace(LEFT_TO_RIGHT_MARK, "")
        return specs
