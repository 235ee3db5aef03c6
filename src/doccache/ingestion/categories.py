"""Keyword based topic tags for ingested pages."""

from __future__ import annotations

import re
from typing import List

from doccache.models import ExtractionResult

LANGUAGE_KEYWORDS = ("javascript", "typescript", "python", "react", "node", "express", "next")

# Tag -> word prefixes that imply it.
CONTENT_TYPE_KEYWORDS = {
    "api": ("api", "endpoint"),
    "tutorial": ("tutorial", "guide"),
    "reference": ("reference", "documentation"),
    "setup": ("install", "setup"),
}


def categorize(extraction: ExtractionResult) -> List[str]:
    """Infer topic tags from the page text; tags are derived, not authoritative."""
    text = f"{extraction.title} {extraction.text}".lower()
    categories: List[str] = []

    for language in LANGUAGE_KEYWORDS:
        if re.search(rf"\b{re.escape(language)}\b", text):
            categories.append(language)

    for tag, prefixes in CONTENT_TYPE_KEYWORDS.items():
        if any(re.search(rf"\b{re.escape(prefix)}", text) for prefix in prefixes):
            categories.append(tag)

    if extraction.code_fragments:
        categories.append("code-examples")

    return categories
