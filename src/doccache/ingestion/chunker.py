"""Split extracted documentation text into bounded, overlapping word chunks.

Two modes are supported:

* structure-aware: a new chunk opens whenever the walk enters the vicinity of
  the next heading (a symmetric window of ``heading_window`` words around the
  current word). Exact character offsets are not tracked, so a heading is
  associated with the first occurrence of its words inside that window.
* sliding window: fixed stride of ``max_chunk_size - overlap`` words.

In both modes a chunk that reaches ``max_chunk_size`` words is closed and the
next one starts with its trailing ``overlap`` words.
"""

from __future__ import annotations

import bisect
import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Sequence

from doccache.errors import ChunkingError
from doccache.models import Chunk, CodeFragment, ExtractionResult, Heading
from doccache.utils.text import collapse_whitespace, split_words

LOGGER = logging.getLogger(__name__)

_CODE_PATTERN = re.compile(r"```|`[^`]+`|\b(?:function|class|import|def|const)\b")
_FRAGMENT_PROBE_CHARS = 40


@dataclass(slots=True)
class ChunkingOptions:
    max_chunk_size: int = 800
    overlap: int = 100
    preserve_structure: bool = True
    heading_window: int = 50

    def __post_init__(self) -> None:
        if self.max_chunk_size < 1:
            raise ValueError("max_chunk_size must be positive")
        if not 0 <= self.overlap < self.max_chunk_size:
            raise ValueError("overlap must be >= 0 and smaller than max_chunk_size")
        if self.heading_window < 1:
            raise ValueError("heading_window must be positive")


@dataclass(slots=True)
class _Span:
    start: int
    end: int
    heading: Heading | None = None


def _heading_occurrences(words: Sequence[str], headings: Sequence[Heading]) -> List[List[int]]:
    """Word indices where each heading's text starts, compared case-insensitively."""
    by_first_word: Dict[str, List[int]] = {}
    for position, word in enumerate(words):
        by_first_word.setdefault(word, []).append(position)

    occurrences: List[List[int]] = []
    for heading in headings:
        heading_words = split_words(heading.text.lower())
        if not heading_words:
            occurrences.append([])
            continue
        size = len(heading_words)
        occurrences.append(
            [
                start
                for start in by_first_word.get(heading_words[0], [])
                if list(words[start : start + size]) == heading_words
            ]
        )
    return occurrences


def _structured_spans(words: Sequence[str], headings: Sequence[Heading], options: ChunkingOptions) -> List[_Span]:
    lowered = [word.lower() for word in words]
    occurrences = _heading_occurrences(lowered, headings)
    window = options.heading_window
    limit = options.max_chunk_size
    total = len(words)

    spans: List[_Span] = []
    next_heading = 0  # headings before this index are seen
    cursor = 0  # occurrences before this word index are consumed
    current: Heading | None = None
    start = 0
    seed_end = 0  # words before this index in the open chunk are overlap seed

    for position in range(total):
        for candidate in range(next_heading, len(headings)):
            starts = occurrences[candidate]
            found = bisect.bisect_left(starts, max(cursor, position - window))
            if found < len(starts) and starts[found] < position + window:
                if position > seed_end:
                    spans.append(_Span(start, position, current))
                current = headings[candidate]
                next_heading = candidate + 1
                cursor = starts[found] + len(split_words(current.text))
                start = seed_end = position
                break

        if position + 1 - start >= limit:
            spans.append(_Span(start, position + 1, current))
            start = position + 1 - options.overlap
            seed_end = position + 1

    if total > seed_end:
        spans.append(_Span(start, total, current))
    return spans


def _sliding_spans(total: int, options: ChunkingOptions) -> List[_Span]:
    stride = options.max_chunk_size - options.overlap
    spans: List[_Span] = []
    start = 0
    while True:
        end = min(start + options.max_chunk_size, total)
        spans.append(_Span(start, end))
        if end >= total:
            return spans
        start += stride


def detect_code(text: str, fragments: Sequence[CodeFragment] = ()) -> bool:
    """Whether a chunk looks like it carries code."""
    if _CODE_PATTERN.search(text):
        return True
    for fragment in fragments:
        probe = collapse_whitespace(fragment.text)[:_FRAGMENT_PROBE_CHARS]
        if probe and probe in text:
            return True
    return False


def _validate(chunks: Sequence[Chunk], options: ChunkingOptions) -> None:
    for expected, chunk in enumerate(chunks):
        if chunk.index != expected:
            raise ChunkingError(f"Chunk indices are not contiguous at {chunk.index}")
        if chunk.word_count > options.max_chunk_size:
            raise ChunkingError(
                f"Chunk {chunk.index} has {chunk.word_count} words, limit is {options.max_chunk_size}"
            )


def build_chunks(extraction: ExtractionResult, options: ChunkingOptions | None = None) -> List[Chunk]:
    """Chunk an extraction result.

    Returns an empty list when the text has no words; callers treat that as
    an extraction failure. The output depends only on the inputs.
    """
    options = options or ChunkingOptions()
    words = split_words(extraction.text)
    if not words:
        return []

    if options.preserve_structure and extraction.headings:
        spans = _structured_spans(words, extraction.headings, options)
        mode = "structure-aware"
    else:
        spans = _sliding_spans(len(words), options)
        mode = "sliding-window"

    chunks: List[Chunk] = []
    for span in spans:
        text = " ".join(words[span.start : span.end])
        chunks.append(
            Chunk(
                index=len(chunks),
                text=text,
                heading=span.heading.text if span.heading else None,
                heading_level=span.heading.level if span.heading else None,
                word_count=span.end - span.start,
                has_code=detect_code(text, extraction.code_fragments),
            )
        )

    _validate(chunks, options)
    LOGGER.debug("Created %d %s chunks for %s", len(chunks), mode, extraction.url)
    return chunks
