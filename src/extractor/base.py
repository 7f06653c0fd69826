"""
Base Product Parser Classes and Utilities.

Provides common functionality for product page parsers:
- BaseProductParser abstract base class
- Helper methods for text, list and attribute extraction
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod

from bs4 import BeautifulSoup, Tag

from src.errors import ExtractionError
from src.storage.models import ID_NOT_FOUND, NOT_FOUND, ProductDetails
from src.utils.logging import get_logger

logger = get_logger(__name__)


class BaseProductParser(ABC):
    """
    Base class for product page parsers.

    Subclasses declare the site they handle and implement the
    site-specific field extraction. Missing elements never raise: text
    fields fall back to "Not Found", lists to empty, optional fields to None.
    """

    site_name: str = ""
    domain: str = ""
    id_patterns: tuple[str, ...] = ()

    def matches(self, url: str) -> bool:
        """Check whether url belongs to this parser's site."""
        return self.domain.lower() in url.lower()

    def extract_id(self, url: str) -> str:
        """
        Extract the site product id from a URL.

        Patterns are tried in order; the first capture wins.

        Args:
            url: Product page URL.

        Returns:
            Product id, or "ID Not Found".
        """
        for pattern in self.id_patterns:
            match = re.search(pattern, url)
            if match:
                return match.group(1)
        return ID_NOT_FOUND

    def parse(self, html: str, url: str) -> ProductDetails:
        """
        Parse a rendered product page.

        Args:
            html: Rendered HTML of the product page.
            url: URL the page was loaded from.

        Returns:
            ProductDetails with url set.

        Raises:
            ExtractionError: The document could not be processed at all.
        """
        soup = BeautifulSoup(html, "html.parser")

        try:
            details = self._extract_details(soup, self.extract_id(url))
        except Exception as e:
            logger.error("Product extraction failed", site=self.site_name, url=url, error=str(e))
            raise ExtractionError(url, str(e)) from e

        details.url = url
        logger.info(
            "Parsed product page",
            site=self.site_name,
            product_id=details.id,
            price=details.price,
            in_stock=details.in_stock,
        )
        return details

    @abstractmethod
    def _extract_details(self, soup: BeautifulSoup, product_id: str) -> ProductDetails:
        """Extract site-specific fields. Implemented by subclasses."""

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _extract_text(element: Tag | None) -> str:
        """Get stripped text content of an element."""
        if element is None:
            return ""
        return element.get_text().strip()

    def select_text(self, context: BeautifulSoup | Tag, selector: str) -> str:
        """Text of the first match, or "Not Found"."""
        element = context.select_one(selector)
        if element is None:
            return NOT_FOUND
        return self._extract_text(element)

    def select_optional_text(self, context: BeautifulSoup | Tag, selector: str) -> str | None:
        """Text of the first match, or None."""
        element = context.select_one(selector)
        return self._extract_text(element) if element is not None else None

    def select_texts(self, context: BeautifulSoup | Tag, selector: str) -> list[str]:
        """Non-empty texts of all matches, in document order."""
        texts = (self._extract_text(el) for el in context.select(selector))
        return [text for text in texts if text]

    @staticmethod
    def select_image_sources(
        context: BeautifulSoup | Tag,
        selector: str,
        thumbnail_marker: str,
        full_size_marker: str,
    ) -> list[str]:
        """Collect image src attributes, rewritten from thumbnail to full size."""
        images = []
        for img in context.select(selector):
            src = img.get("src")
            if isinstance(src, str) and src:
                images.append(src.replace(thumbnail_marker, full_size_marker))
        return images

    @staticmethod
    def parse_price(text: str | None, strip_chars: str = ",") -> int | None:
        """
        Parse a displayed price into whole currency units.

        Any fractional part is dropped. Returns None for unparseable text.
        """
        if not text:
            return None
        for char in strip_chars:
            text = text.replace(char, "")
        whole = text.strip().split(".")[0].strip()
        try:
            return int(whole)
        except ValueError:
            return None
