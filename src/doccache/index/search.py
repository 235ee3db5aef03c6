"""Two-stage documentation search: lexical scoring, then optional re-ranking."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Sequence

from doccache.errors import RankingError, SearchError
from doccache.index.cache import DocumentCache
from doccache.models import Chunk, Document
from doccache.ranking.base import MAX_PROMPT_CANDIDATES, Ranker, build_rerank_prompt, parse_rankings
from doccache.utils.text import count_occurrences, query_words, truncate_text

LOGGER = logging.getLogger(__name__)

EXCERPTS_PER_RESULT = 3
EXCERPT_CHARS = 300
CODE_QUERY_TERMS = ("function", "class", "method", "api", "code", "example")


@dataclass(slots=True)
class SearchOptions:
    max_results: int = 10
    include_content: bool = True
    use_external_ranking: bool = False
    project_context: str | None = None


@dataclass(slots=True)
class Candidate:
    document: Document
    score: float
    ranker_score: float | None = None
    ranker_reasoning: str | None = None


@dataclass(slots=True)
class Excerpt:
    text: str
    heading: str | None
    has_code: bool

    def to_dict(self) -> Dict[str, Any]:
        return {"text": self.text, "heading": self.heading, "has_code": self.has_code}


@dataclass(slots=True)
class SearchResult:
    doc_id: str
    title: str
    url: str
    score: float
    categories: List[str]
    word_count: int
    processed_at: datetime
    excerpts: List[Excerpt] = field(default_factory=list)
    ranker_score: float | None = None
    ranker_reasoning: str | None = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "doc_id": self.doc_id,
            "title": self.title,
            "url": self.url,
            "score": self.score,
            "categories": list(self.categories),
            "word_count": self.word_count,
            "processed_at": self.processed_at.isoformat(),
            "excerpts": [excerpt.to_dict() for excerpt in self.excerpts],
            "ranker_score": self.ranker_score,
            "ranker_reasoning": self.ranker_reasoning,
        }


@dataclass(slots=True)
class SearchResponse:
    query: str
    results: List[SearchResult]
    total_found: int
    search_type: str
    elapsed_ms: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "query": self.query,
            "results": [result.to_dict() for result in self.results],
            "total_found": self.total_found,
            "search_type": self.search_type,
            "elapsed_ms": self.elapsed_ms,
        }


def document_score(document: Document, query: str) -> float:
    """Lexical relevance of one document; 0 means no match."""
    query_lower = query.lower()
    words = query_words(query)
    score = 0.0

    title = document.title.lower()
    if query_lower in title:
        score += 100
    score += 20 * sum(1 for word in words if word in title)

    content = document.content.lower()
    score += 5 * sum(count_occurrences(content, word) for word in words)

    for heading in document.headings:
        text = heading.text.lower()
        if query_lower in text:
            score += 50
        score += 15 * sum(1 for word in words if word in text)

    for fragment in document.code_fragments:
        text = fragment.text.lower()
        score += 10 * sum(1 for word in words if word in text)

    score += 25 * sum(1 for category in document.categories if category.lower() in words)
    return score


def score_documents(documents: Sequence[Document], query: str, limit: int) -> List[Candidate]:
    """Score, drop non-matches, sort by score (ties by title) and keep ``limit``."""
    candidates = []
    for document in documents:
        score = document_score(document, query)
        if score > 0:
            candidates.append(Candidate(document=document, score=score))
    candidates.sort(key=lambda candidate: (-candidate.score, candidate.document.title))
    return candidates[:limit]


def chunk_relevance(chunk: Chunk, query: str) -> float:
    query_lower = query.lower()
    text = chunk.text.lower()
    score = 0.0
    if query_lower in text:
        score += 20
    score += 5 * sum(count_occurrences(text, word) for word in query_words(query))
    if chunk.heading and query_lower in chunk.heading.lower():
        score += 15
    if chunk.has_code and any(term in query_words(query) for term in CODE_QUERY_TERMS):
        score += 10
    return score


def best_excerpts(document: Document, query: str, limit: int = EXCERPTS_PER_RESULT) -> List[Excerpt]:
    # sorted() is stable, so equal scores keep document order
    ranked = sorted(document.chunks, key=lambda chunk: chunk_relevance(chunk, query), reverse=True)
    return [
        Excerpt(text=truncate_text(chunk.text, EXCERPT_CHARS), heading=chunk.heading, has_code=chunk.has_code)
        for chunk in ranked[:limit]
    ]


class Searcher:
    """Query the document cache, optionally refining the order with a ranker."""

    def __init__(self, cache: DocumentCache, ranker: Ranker | None = None, *, ranking_timeout: float = 30.0) -> None:
        self.cache = cache
        self.ranker = ranker
        self.ranking_timeout = ranking_timeout

    async def search(self, query: str, options: SearchOptions | None = None) -> SearchResponse:
        """Answer ``query``.

        Ranking failures never escape: they are logged and the lexical order
        is returned with ``search_type == "lexical"``.

        Raises:
            SearchError: for a blank query, a non-positive ``max_results`` or
                an empty cache.
        """
        options = options or SearchOptions()
        started = time.perf_counter()
        query = query.strip()
        if not query:
            raise SearchError("Search query must not be empty")
        if options.max_results < 1:
            raise SearchError("max_results must be at least 1")
        if len(self.cache) == 0:
            raise SearchError("No documentation cached yet")

        candidates = score_documents(self.cache.list(), query, options.max_results * 2)
        search_type = "lexical"
        if options.use_external_ranking and self.ranker is not None and candidates:
            reranked = await self._rerank(query, candidates, options.project_context)
            if reranked is not None:
                candidates = reranked
                search_type = "reranked"

        results = [self._format(candidate, query, options) for candidate in candidates[: options.max_results]]
        elapsed_ms = (time.perf_counter() - started) * 1000
        LOGGER.debug("Search %r returned %d results (%s) in %.1f ms", query, len(results), search_type, elapsed_ms)
        return SearchResponse(
            query=query,
            results=results,
            total_found=len(candidates),
            search_type=search_type,
            elapsed_ms=elapsed_ms,
        )

    async def _rerank(
        self, query: str, candidates: List[Candidate], project_context: str | None
    ) -> List[Candidate] | None:
        assert self.ranker is not None
        shown = candidates[:MAX_PROMPT_CANDIDATES]
        prompt = build_rerank_prompt(
            query,
            [(candidate.document, candidate.score) for candidate in shown],
            project_context=project_context,
        )
        try:
            reply = await asyncio.wait_for(
                self.ranker.rerank(prompt, self.ranking_timeout), timeout=self.ranking_timeout
            )
            rankings = parse_rankings(reply, len(shown))
        except asyncio.TimeoutError:
            LOGGER.warning("Ranking timed out after %.1fs; using lexical order", self.ranking_timeout)
            return None
        except RankingError as exc:
            LOGGER.warning("Ranking failed, using lexical order: %s", exc)
            return None
        except Exception:
            LOGGER.exception("Ranker raised an unexpected error; using lexical order")
            return None

        ordered: List[Candidate] = []
        placed: set[int] = set()
        for ranking in rankings:
            candidate = shown[ranking.doc_index]
            candidate.ranker_score = ranking.relevance_score
            candidate.ranker_reasoning = ranking.reasoning
            ordered.append(candidate)
            placed.add(ranking.doc_index)
        # candidates the ranker did not mention keep their lexical order after the ranked ones
        ordered.extend(candidate for position, candidate in enumerate(candidates) if position not in placed)
        return ordered

    def _format(self, candidate: Candidate, query: str, options: SearchOptions) -> SearchResult:
        document = candidate.document
        return SearchResult(
            doc_id=document.id,
            title=document.title,
            url=document.url,
            score=candidate.score,
            categories=list(document.categories),
            word_count=document.word_count,
            processed_at=document.processed_at,
            excerpts=best_excerpts(document, query) if options.include_content else [],
            ranker_score=candidate.ranker_score,
            ranker_reasoning=candidate.ranker_reasoning,
        )
