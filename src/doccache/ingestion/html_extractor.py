"""Reduce raw documentation markup to clean text, headings and code fragments.

Uses BeautifulSoup with the standard library ``html.parser`` backend.
"""

from __future__ import annotations

import logging
import re
from typing import List

from bs4 import BeautifulSoup, Tag

from doccache.errors import ExtractionError
from doccache.models import CodeFragment, ExtractionResult, Heading
from doccache.utils.text import collapse_whitespace, split_words

LOGGER = logging.getLogger(__name__)

DEFAULT_TITLE = "Untitled Documentation"
MIN_CONTENT_CHARS = 200
MIN_CODE_CHARS = 10

BOILERPLATE_SELECTORS = (
    "script",
    "style",
    "noscript",
    "template",
    "nav",
    "footer",
    "header",
    "aside",
    ".navigation",
    ".sidebar",
    ".menu",
    ".ads",
    ".advertisement",
    '[class*="nav"]',
    '[class*="menu"]',
    '[class*="sidebar"]',
    '[class*="footer"]',
    '[class*="header"]',
    '[id*="nav"]',
    '[id*="menu"]',
    '[id*="sidebar"]',
    '[id*="footer"]',
    '[id*="header"]',
)

# Checked in order; the first region with enough text wins.
CONTENT_SELECTORS = (
    "main",
    '[role="main"]',
    ".content",
    ".main-content",
    ".documentation",
    ".docs",
    ".article",
    ".post-content",
    "#content",
    "#main",
    "article",
)

_PROTECTED_TAGS = {"html", "body", "main"}
_HEADING_TAGS = ["h1", "h2", "h3", "h4", "h5", "h6"]
_LANGUAGE_CLASS = re.compile(r"^(?:language|lang)-([\w+#.-]+)$", re.IGNORECASE)


def _extract_title(soup: BeautifulSoup) -> str:
    if soup.title is not None:
        title = collapse_whitespace(soup.title.get_text())
        if title:
            return title
    first_h1 = soup.find("h1")
    if first_h1 is not None:
        title = collapse_whitespace(first_h1.get_text())
        if title:
            return title
    return DEFAULT_TITLE


def _strip_boilerplate(soup: BeautifulSoup) -> int:
    removed = 0
    for selector in BOILERPLATE_SELECTORS:
        for element in soup.select(selector):
            if element.decomposed or element.name in _PROTECTED_TAGS:
                continue
            element.decompose()
            removed += 1
    return removed


def _region_text(element: Tag | BeautifulSoup) -> str:
    return collapse_whitespace(element.get_text(" "))


def select_main_region(
    soup: BeautifulSoup, *, min_chars: int = MIN_CONTENT_CHARS
) -> tuple[Tag | BeautifulSoup, bool]:
    """Return the main content region and whether the body fallback was used."""
    for selector in CONTENT_SELECTORS:
        candidate = soup.select_one(selector)
        if candidate is not None and len(_region_text(candidate)) > min_chars:
            return candidate, False
    body = soup.body
    return (body if body is not None else soup), True


def _extract_headings(region: Tag | BeautifulSoup) -> List[Heading]:
    headings: List[Heading] = []
    for element in region.find_all(_HEADING_TAGS):
        text = collapse_whitespace(element.get_text(" "))
        if not text:
            continue
        headings.append(Heading(level=int(element.name[1]), text=text, position=len(headings)))
    return headings


def _language_hint(element: Tag) -> str:
    candidates = [element]
    inner = element.find("code")
    if isinstance(inner, Tag):
        candidates.append(inner)
    if isinstance(element.parent, Tag):
        candidates.append(element.parent)
    for candidate in candidates:
        for css_class in candidate.get("class") or []:
            match = _LANGUAGE_CLASS.match(css_class)
            if match:
                return match.group(1).lower()
    return "unknown"


def _extract_code_fragments(region: Tag | BeautifulSoup) -> List[CodeFragment]:
    fragments: List[CodeFragment] = []
    for element in region.find_all(["pre", "code"]):
        if element.name == "code" and element.find_parent("pre") is not None:
            continue
        code = element.get_text().strip()
        if len(code) < MIN_CODE_CHARS:
            continue
        fragments.append(
            CodeFragment(language=_language_hint(element), text=code, position=len(fragments))
        )
    return fragments


def extract_content(
    html: str, url: str, *, min_content_chars: int = MIN_CONTENT_CHARS
) -> ExtractionResult:
    """Extract title, text, headings and code fragments from ``html``.

    Raises:
        ExtractionError: when the markup is empty or no text survives cleaning.
    """
    if not html or not html.strip():
        raise ExtractionError(url, "empty response body")

    soup = BeautifulSoup(html, "html.parser")
    title = _extract_title(soup)

    removed = _strip_boilerplate(soup)
    LOGGER.debug("Removed %d boilerplate elements from %s", removed, url)

    region, used_fallback = select_main_region(soup, min_chars=min_content_chars)
    if used_fallback:
        LOGGER.warning(
            "No main content region over %d characters in %s; falling back to the page body",
            min_content_chars,
            url,
        )

    text = _region_text(region)
    if not text:
        raise ExtractionError(url, "no text content after removing boilerplate")

    return ExtractionResult(
        url=url,
        title=title,
        text=text,
        headings=_extract_headings(region),
        code_fragments=_extract_code_fragments(region),
        word_count=len(split_words(text)),
        used_fallback=used_fallback,
    )
