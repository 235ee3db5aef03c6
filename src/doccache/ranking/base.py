"""Ranker interface, re-ranking prompt and reply parsing."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, List, Protocol, Sequence

from doccache.errors import RankingError
from doccache.models import Document
from doccache.utils.text import truncate_text

LOGGER = logging.getLogger(__name__)

MAX_PROMPT_CANDIDATES = 15
MAX_PROMPT_EXCERPTS = 2
PROMPT_EXCERPT_CHARS = 200


class Ranker(Protocol):
    """External reasoning step that orders search candidates.

    ``rerank`` receives a free-text prompt and returns either the raw text
    reply or an already decoded JSON array. Failures should surface as
    :class:`~doccache.errors.RankingError`; the searcher recovers from any
    other exception as well.
    """

    async def rerank(self, prompt: str, timeout: float) -> str | List[Any]: ...


@dataclass(slots=True)
class Ranking:
    rank: int
    doc_index: int  # 0-based position in the candidate list
    relevance_score: float | None = None
    reasoning: str | None = None


def build_rerank_prompt(
    query: str,
    candidates: Sequence[tuple[Document, float]],
    *,
    project_context: str | None = None,
) -> str:
    """Describe the top candidates and ask for a JSON ranking."""
    query_lower = query.lower()
    lines = [f'Analyze these documentation search results for the query: "{query}"', ""]
    if project_context:
        lines += [f"Project Context: {project_context}", ""]
    lines.append("Search Results to Analyze:")

    for number, (document, score) in enumerate(candidates[:MAX_PROMPT_CANDIDATES], start=1):
        lines += [
            "",
            f"{number}. Title: {document.title}",
            f"   URL: {document.url}",
            f"   Categories: {', '.join(document.categories)}",
            f"   Score: {score:g}",
        ]
        matching = [chunk for chunk in document.chunks if query_lower in chunk.text.lower()]
        for chunk in matching[:MAX_PROMPT_EXCERPTS]:
            lines.append(f"   Excerpt: {truncate_text(chunk.text, PROMPT_EXCERPT_CHARS)}")

    task = f'Task: Re-rank these results based on relevance to the query "{query}"'
    if project_context:
        task += f" in the context of: {project_context}"
    lines += [
        "",
        "",
        task,
        "",
        "Provide your analysis as a JSON array with objects containing:",
        '- "rank": number (1-based ranking)',
        '- "docIndex": number (original 1-based index from above list)',
        '- "relevanceScore": number (1-10 scale)',
        '- "reasoning": string (brief explanation of ranking)',
        "",
        "Focus on technical accuracy, practical applicability, and contextual relevance.",
    ]
    return "\n".join(lines)


def _balanced_span(text: str, start: int) -> str | None:
    depth = 0
    in_string = False
    escaped = False
    for position in range(start, len(text)):
        char = text[position]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
        elif char == '"':
            in_string = True
        elif char == "[":
            depth += 1
        elif char == "]":
            depth -= 1
            if depth == 0:
                return text[start : position + 1]
    return None


def extract_json_array(text: str) -> List[Any]:
    """Return the first balanced ``[...]`` span in ``text`` that parses as JSON.

    Raises:
        RankingError: when no such span exists.
    """
    start = text.find("[")
    while start != -1:
        span = _balanced_span(text, start)
        if span is not None:
            try:
                data = json.loads(span)
            except json.JSONDecodeError:
                data = None
            if isinstance(data, list):
                return data
        start = text.find("[", start + 1)
    raise RankingError("No JSON array found in ranker reply")


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def _reply_items(reply: Any) -> List[Any]:
    if isinstance(reply, list):
        return reply
    if isinstance(reply, str):
        return extract_json_array(reply)
    raise RankingError(f"Unsupported ranker reply of type {type(reply).__name__}")


def parse_rankings(reply: str | List[Any], candidate_count: int) -> List[Ranking]:
    """Map a ranker reply onto candidate positions.

    ``reply`` is either free text holding a JSON array or the decoded array.
    ``docIndex`` values are 1-based; entries pointing outside the candidate
    list, repeated indices and malformed entries are dropped.

    Raises:
        RankingError: when the reply holds no usable ranking.
    """
    rankings: List[Ranking] = []
    seen: set[int] = set()
    for order, item in enumerate(_reply_items(reply), start=1):
        if not isinstance(item, dict):
            continue
        index = _as_int(item.get("docIndex"))
        if index is None or not 1 <= index <= candidate_count or index in seen:
            LOGGER.debug("Dropping ranking entry with docIndex %r", item.get("docIndex"))
            continue
        seen.add(index)
        rank = _as_int(item.get("rank"))
        score = item.get("relevanceScore")
        reasoning = item.get("reasoning")
        rankings.append(
            Ranking(
                rank=rank if rank is not None else order,
                doc_index=index - 1,
                relevance_score=float(score) if isinstance(score, (int, float)) and not isinstance(score, bool) else None,
                reasoning=str(reasoning) if reasoning is not None else None,
            )
        )

    if not rankings:
        raise RankingError("Ranker reply contained no usable rankings")
    rankings.sort(key=lambda ranking: ranking.rank)
    return rankings
