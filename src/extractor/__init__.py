"""
Product page extraction for Pricewatch.

Turns rendered product pages into ProductDetails. One parser per site;
selectors are site-specific and live in the parser modules.
"""

from src.extractor.amazon import AmazonParser
from src.extractor.base import BaseProductParser
from src.extractor.flipkart import FlipkartParser
from src.extractor.registry import (
    extract_details,
    get_parser_for_url,
    get_supported_domains,
    register_parser,
)
from src.storage.models import ProductDetails

# Register all parsers
register_parser(AmazonParser)
register_parser(FlipkartParser)

__all__ = [
    "AmazonParser",
    "BaseProductParser",
    "FlipkartParser",
    "ProductDetails",
    "extract_details",
    "get_parser_for_url",
    "get_supported_domains",
    "register_parser",
]
