"""
Versioned CSS/XPath selector sets.

Sites change their markup over time. Each site keeps its selectors grouped
by page under a version label; when a page stops matching, the parser
raises SelectorError naming the selector and version so the set can be
updated and the label bumped.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Mapping
from urllib.parse import urljoin

from lxml.cssselect import SelectorError as CSSSelectorSyntaxError
from lxml.etree import XPathError
from lxml.html import HtmlElement

from scrapegate.core.errors import SelectorError


def looks_like_xpath(selector: str) -> bool:
    """Heuristic check for XPath selector syntax."""
    return selector.startswith("/") or selector.startswith(".//") or selector.startswith("(")


def clean_text(value: str) -> str:
    return re.sub(r"\s+", " ", value).strip()


@dataclass(frozen=True)
class SelectorSet:
    """Selectors for one site at one markup version.

    ``groups`` maps a page name to ``{selector_name: selector}``.
    """

    site: str
    version: str
    groups: Mapping[str, Mapping[str, str]] = field(default_factory=dict)

    @classmethod
    def from_versions(
        cls,
        site: str,
        versions: Mapping[str, Mapping[str, Mapping[str, str]]],
        version: str | None = None,
    ) -> "SelectorSet":
        """Pick one version out of a ``{version: groups}`` table.

        Without an explicit version the lexically greatest label wins, so
        date-style labels ("v2025_09") pick the newest set.
        """
        if not versions:
            raise ValueError(f"No selector versions registered for {site}")
        label = version or max(versions)
        if label not in versions:
            raise ValueError(f"Unknown selector version {label!r} for {site}")
        return cls(site=site, version=label, groups=versions[label])

    def selector_id(self, group: str, name: str) -> str:
        return f"{group}.{name}"

    def get(self, group: str, name: str) -> str:
        """Selector string for ``group.name``.

        Raises:
            SelectorError: If the selector is not defined in this version
        """
        try:
            return self.groups[group][name]
        except KeyError:
            raise SelectorError(
                f"Selector {self.selector_id(group, name)} not defined",
                self.selector_id(group, name),
                self.version,
                site=self.site,
            ) from None

    def select(
        self,
        container: HtmlElement,
        group: str,
        name: str,
        *,
        required: bool = True,
        url: str | None = None,
    ) -> list[HtmlElement]:
        """Elements matching ``group.name`` inside ``container``.

        Raises:
            SelectorError: If ``required`` and nothing matched
        """
        selector = self.get(group, name)
        elements = select_elements(container, selector)
        if not elements and required:
            raise SelectorError(
                f"No elements matched {self.selector_id(group, name)} ({selector!r})",
                self.selector_id(group, name),
                self.version,
                site=self.site,
                url=url,
            )
        return elements

    def select_one(
        self,
        container: HtmlElement,
        group: str,
        name: str,
        *,
        required: bool = True,
        url: str | None = None,
    ) -> HtmlElement | None:
        elements = self.select(container, group, name, required=required, url=url)
        return elements[0] if elements else None

    def text(
        self,
        container: HtmlElement,
        group: str,
        name: str,
        *,
        required: bool = True,
        url: str | None = None,
    ) -> str | None:
        """Cleaned text content of the first match."""
        element = self.select_one(container, group, name, required=required, url=url)
        if element is None:
            return None
        return clean_text(element.text_content()) or None

    def link(
        self,
        container: HtmlElement,
        group: str,
        name: str,
        *,
        base_url: str | None = None,
        required: bool = True,
    ) -> str | None:
        """``href`` of the first match, resolved against ``base_url``."""
        element = self.select_one(container, group, name, required=required, url=base_url)
        if element is None:
            return None
        href = element.get("href")
        if href and base_url:
            href = urljoin(base_url, href)
        return href or None


def select_elements(container: HtmlElement, selector: str) -> list[HtmlElement]:
    """Select elements using CSS, falling back to XPath for XPath-looking selectors."""
    if looks_like_xpath(selector):
        try:
            return list(container.xpath(selector))
        except XPathError:
            return []

    try:
        return list(container.cssselect(selector))
    except CSSSelectorSyntaxError:
        return []
