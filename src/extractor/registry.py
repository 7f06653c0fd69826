"""
Parser Registry and Dispatch.

Maps product URLs to the parser for their site.
"""

from __future__ import annotations

from src.errors import UnsupportedSiteError
from src.extractor.base import BaseProductParser
from src.storage.models import ProductDetails
from src.utils.config import get_settings
from src.utils.logging import get_logger

logger = get_logger(__name__)

# Populated by __init__.py after all parsers are imported
_parser_registry: dict[str, type[BaseProductParser]] = {}


def register_parser(parser_class: type[BaseProductParser]) -> None:
    """
    Register a parser for the domain it declares.

    Args:
        parser_class: Parser class (must inherit BaseProductParser).
    """
    if not issubclass(parser_class, BaseProductParser):
        raise TypeError("Parser must inherit from BaseProductParser")
    if not parser_class.domain:
        raise ValueError(f"Parser {parser_class.__name__} declares no domain")

    _parser_registry[parser_class.domain.lower()] = parser_class
    logger.debug("Registered product parser", domain=parser_class.domain)


def get_supported_domains() -> list[str]:
    """Get registered site domains."""
    return sorted(_parser_registry)


def get_parser_for_url(
    url: str,
    enabled_domains: list[str] | None = None,
) -> BaseProductParser | None:
    """
    Get a parser instance for a product URL.

    Dispatch is by each parser's matches(), in registration order.

    Args:
        url: Product page URL.
        enabled_domains: Restrict dispatch to these domains. All if None.

    Returns:
        Parser instance or None if no site matches.
    """
    for domain, parser_class in _parser_registry.items():
        if enabled_domains is not None and domain not in enabled_domains:
            continue
        parser = parser_class()
        if parser.matches(url):
            return parser
    return None


def extract_details(html: str, url: str) -> ProductDetails:
    """
    Extract product details from a rendered page.

    Args:
        html: Rendered HTML.
        url: URL the page was loaded from.

    Returns:
        ProductDetails with url set.

    Raises:
        UnsupportedSiteError: No parser handles this URL.
        ExtractionError: The page could not be processed.
    """
    parser = get_parser_for_url(url, get_settings().sites.domains)
    if parser is None:
        logger.warning("No parser for URL", url=url)
        raise UnsupportedSiteError(url)
    return parser.parse(html, url)
