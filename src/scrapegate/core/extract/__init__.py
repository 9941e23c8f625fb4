"""Extraction toolkit for site parsers."""

from .base import Parser
from .selectors import SelectorSet, clean_text, select_elements

__all__ = [
    "Parser",
    "SelectorSet",
    "clean_text",
    "select_elements",
]
