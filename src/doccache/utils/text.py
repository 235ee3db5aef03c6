"""Text helpers shared by extraction, chunking and result formatting."""

from __future__ import annotations

import re
from typing import List

_WHITESPACE = re.compile(r"\s+")


def collapse_whitespace(text: str) -> str:
    """Collapse every whitespace run into a single space."""
    return _WHITESPACE.sub(" ", text).strip()


def split_words(text: str) -> List[str]:
    return text.split()


def count_occurrences(haystack: str, needle: str) -> int:
    """Count non-overlapping literal occurrences of ``needle``."""
    if not needle:
        return 0
    return haystack.count(needle)


def query_words(query: str) -> List[str]:
    """Lower-cased query words, in order, without duplicates."""
    seen: list[str] = []
    for word in split_words(query.lower()):
        if word not in seen:
            seen.append(word)
    return seen


def truncate_text(text: str, max_length: int) -> str:
    """Cut ``text`` to ``max_length`` characters, preferring a word boundary.

    The boundary is only used when it keeps at least 80% of the allowed
    length; the result is suffixed with an ellipsis whenever it was cut.
    """
    if len(text) <= max_length:
        return text

    truncated = text[:max_length]
    last_space = truncated.rfind(" ")
    if last_space > max_length * 0.8:
        truncated = truncated[:last_space]
    return truncated.rstrip() + "..."
