"""Exception hierarchy shared by the ingestion, cache and search layers."""

from __future__ import annotations


class DocCacheError(Exception):
    """Base class for every error raised by DocCache."""


class FetchError(DocCacheError):
    """Raised when a page cannot be retrieved after all retry attempts."""

    def __init__(self, url: str, message: str, *, attempts: int = 1) -> None:
        super().__init__(f"Failed to fetch {url} after {attempts} attempt(s): {message}")
        self.url = url
        self.attempts = attempts


class ExtractionError(DocCacheError):
    """Raised when fetched markup yields no usable content."""

    def __init__(self, url: str, message: str) -> None:
        super().__init__(f"Could not extract content from {url}: {message}")
        self.url = url


class ChunkingError(DocCacheError):
    """Raised when chunk output breaks its own invariants."""


class CacheError(DocCacheError):
    """Raised when persisting or loading a document fails."""

    def __init__(self, message: str, *, doc_id: str | None = None, stage: str | None = None) -> None:
        details = ", ".join(
            part for part in (f"doc_id={doc_id}" if doc_id else "", f"stage={stage}" if stage else "") if part
        )
        super().__init__(f"{message} ({details})" if details else message)
        self.doc_id = doc_id
        self.stage = stage


class DocumentNotFoundError(CacheError):
    """Raised when a document id is not present in the cache."""

    def __init__(self, doc_id: str) -> None:
        super().__init__(f"Documentation not found: {doc_id}", doc_id=doc_id, stage="lookup")


class SearchError(DocCacheError):
    """Raised for empty queries or when there is nothing to search."""


class RankingError(DocCacheError):
    """Raised by rankers; always recovered inside the searcher."""
