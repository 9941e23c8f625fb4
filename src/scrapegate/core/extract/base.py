"""
Parser contract.

Site parsers turn raw HTML into a structured record. The fetch and cache
pipeline is agnostic to how they do it; it only relies on ``parse``
returning a mapping or raising SelectorError.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from lxml import etree
from lxml import html as lxml_html
from lxml.html import HtmlElement

from scrapegate.core.errors import ScraperError

from .selectors import SelectorSet


class Parser(ABC):
    """Abstract base class for site parsers."""

    def __init__(self, selectors: SelectorSet):
        self.selectors = selectors

    @property
    def site(self) -> str:
        return self.selectors.site

    @property
    def version(self) -> str:
        return self.selectors.version

    def load(self, html: str, url: str | None = None) -> HtmlElement:
        """Parse HTML into an lxml tree.

        Raises:
            ScraperError: If the document cannot be parsed at all
        """
        try:
            return lxml_html.fromstring(html)
        except (ValueError, etree.ParserError) as e:
            raise ScraperError(
                f"Failed to parse HTML: {e}",
                site=self.site,
                url=url,
                cause=e,
            ) from e

    @abstractmethod
    def parse(self, html: str, url: str | None = None) -> dict[str, Any]:
        """Extract a structured record from page HTML.

        Args:
            html: Page content
            url: Source URL, used for resolving links and in errors

        Returns:
            Structured record

        Raises:
            SelectorError: If required page structure is missing
        """
