# tests/test_extract.py
from __future__ import annotations

from typing import Any

import pytest

from scrapegate.core.errors import ScraperError, SelectorError
from scrapegate.core.extract import Parser, SelectorSet, clean_text, select_elements

HTML = """
<html><body>
  <div class="venz">
    <ul>
      <li><h2 class="jdlflm">  One   Piece </h2><a href="/anime/one-piece/">link</a></li>
      <li><h2 class="jdlflm">Frieren</h2><a href="https://otakudesu.cloud/anime/frieren/">link</a></li>
    </ul>
  </div>
</body></html>
"""

VERSIONS = {
    "v2024_01": {"ongoing": {"card": "div.venz li", "title": "h2.jdlflm"}},
    "v2025_09": {
        "ongoing": {"card": "div.venz li", "title": "h2.jdlflm", "link": ".//a", "missing": "span.eps"},
    },
}


class OngoingParser(Parser):
    def parse(self, html: str, url: str | None = None) -> dict[str, Any]:
        root = self.load(html, url)
        cards = self.selectors.select(root, "ongoing", "card", url=url)
        return {
            "items": [
                {
                    "title": self.selectors.text(card, "ongoing", "title", url=url),
                    "url": self.selectors.link(card, "ongoing", "link", base_url=url),
                }
                for card in cards
            ]
        }


@pytest.fixture
def selectors() -> SelectorSet:
    return SelectorSet.from_versions("otakudesu", VERSIONS)


def test_latest_version_is_default(selectors):
    assert selectors.version == "v2025_09"
    assert SelectorSet.from_versions("otakudesu", VERSIONS, "v2024_01").version == "v2024_01"


def test_unknown_version_rejected():
    with pytest.raises(ValueError):
        SelectorSet.from_versions("otakudesu", VERSIONS, "v1999")
    with pytest.raises(ValueError):
        SelectorSet.from_versions("otakudesu", {})


def test_parser_extracts_records(selectors):
    data = OngoingParser(selectors).parse(HTML, url="https://otakudesu.cloud/ongoing-anime/")
    assert data == {
        "items": [
            {"title": "One Piece", "url": "https://otakudesu.cloud/anime/one-piece/"},
            {"title": "Frieren", "url": "https://otakudesu.cloud/anime/frieren/"},
        ]
    }


def test_missing_structure_raises_selector_error(selectors):
    parser = OngoingParser(selectors)
    root = parser.load(HTML)

    with pytest.raises(SelectorError) as exc_info:
        selectors.select(root, "ongoing", "missing", url="https://otakudesu.cloud/")

    err = exc_info.value
    assert err.selector == "ongoing.missing"
    assert err.version == "v2025_09"
    assert err.site == "otakudesu"
    assert selectors.select(root, "ongoing", "missing", required=False) == []


def test_undefined_selector_raises(selectors):
    with pytest.raises(SelectorError) as exc_info:
        selectors.get("episode", "stream")
    assert exc_info.value.selector == "episode.stream"


def test_unparseable_document():
    parser = OngoingParser(SelectorSet("otakudesu", "v1"))
    with pytest.raises(ScraperError):
        parser.load("")


def test_select_elements_css_xpath_and_bad_syntax(selectors):
    root = OngoingParser(selectors).load(HTML)
    assert len(select_elements(root, "h2.jdlflm")) == 2
    assert len(select_elements(root, "//h2[@class='jdlflm']")) == 2
    assert select_elements(root, "h2[[") == []
    assert select_elements(root, "//h2[") == []


def test_clean_text():
    assert clean_text("  a \n\t b  ") == "a b"
