"""Documentation service: the single entry point used by the CLI and web app."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List

from doccache.config import AppConfig
from doccache.index.cache import DocumentCache
from doccache.index.indexer import AddResult, IndexStats, Indexer, IngestOptions
from doccache.index.search import SearchOptions, SearchResponse, Searcher
from doccache.models import Document
from doccache.ranking import CommandRanker, Ranker
from doccache.utils.files import disk_usage

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class DocumentSummary:
    doc_id: str
    title: str
    url: str
    categories: List[str]
    word_count: int
    chunk_count: int
    processed_at: datetime
    age_seconds: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "doc_id": self.doc_id,
            "title": self.title,
            "url": self.url,
            "categories": list(self.categories),
            "word_count": self.word_count,
            "chunk_count": self.chunk_count,
            "processed_at": self.processed_at.isoformat(),
            "age_seconds": self.age_seconds,
        }


@dataclass(slots=True)
class ServiceStats:
    documents_count: int
    total_chunks: int
    total_words: int
    cache_size: int
    index_size: int
    cache_path: str
    max_cache_age_seconds: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "documents_count": self.documents_count,
            "total_chunks": self.total_chunks,
            "total_words": self.total_words,
            "cache_size": self.cache_size,
            "index_size": self.index_size,
            "cache_path": self.cache_path,
            "max_cache_age_seconds": self.max_cache_age_seconds,
        }


class DocumentationService:
    """Owns the cache and wires it into the indexer and the searcher."""

    def __init__(
        self,
        cache: DocumentCache,
        config: AppConfig,
        *,
        indexer: Indexer | None = None,
        ranker: Ranker | None = None,
    ) -> None:
        self.cache = cache
        self.config = config
        self.indexer = indexer or Indexer(cache, config)
        self.searcher = Searcher(cache, ranker, ranking_timeout=config.ranking_timeout)
        self._sweeper: asyncio.Task[None] | None = None

    @classmethod
    def open(
        cls,
        config: AppConfig | None = None,
        ranker: Ranker | None = None,
        *,
        base_dir: Path | None = None,
    ) -> "DocumentationService":
        """Open (or create) the cache database described by ``config``."""
        config = config or AppConfig()
        db_path = config.resolve_db_path(base_dir)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        cache = DocumentCache.open(db_path, max_cache_age=config.max_cache_age)
        return cls(cache, config, ranker=ranker or CommandRanker(config.ranker_command))

    @property
    def db_path(self) -> Path:
        return self.cache.storage.db_path

    async def add_documentation(self, url: str, options: IngestOptions | None = None) -> AddResult:
        return await self.indexer.add(url, options)

    async def add_many(self, urls: List[str], options: IngestOptions | None = None) -> IndexStats:
        return await self.indexer.index(urls, options)

    async def search_documentation(self, query: str, options: SearchOptions | None = None) -> SearchResponse:
        return await self.searcher.search(query, options)

    def list_documentation(self) -> List[DocumentSummary]:
        now = self.cache.now()
        return [
            DocumentSummary(
                doc_id=document.id,
                title=document.title,
                url=document.url,
                categories=list(document.categories),
                word_count=document.word_count,
                chunk_count=len(document.chunks),
                processed_at=document.processed_at,
                age_seconds=document.age(now),
            )
            for document in self.cache.list()
        ]

    def get_documentation(self, doc_id: str) -> Document:
        return self.cache.get(doc_id)

    def delete_documentation(self, doc_id: str) -> str:
        self.cache.delete(doc_id)
        LOGGER.info("Deleted documentation %s", doc_id)
        return doc_id

    def get_service_stats(self) -> ServiceStats:
        documents = self.cache.list()
        return ServiceStats(
            documents_count=len(documents),
            total_chunks=sum(len(document.chunks) for document in documents),
            total_words=sum(document.word_count for document in documents),
            cache_size=disk_usage(self.db_path),
            index_size=len(self.cache.entries()),
            cache_path=str(self.db_path),
            max_cache_age_seconds=self.cache.max_cache_age.total_seconds(),
        )

    def sweep(self) -> List[str]:
        return self.cache.sweep()

    async def _sweep_periodically(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                self.sweep()
            except Exception:
                LOGGER.exception("Periodic sweep failed")

    def start(self) -> None:
        """Start the periodic sweeper; must be called from a running event loop."""
        if self._sweeper is not None and not self._sweeper.done():
            return
        interval = self.config.sweep_interval.total_seconds()
        self._sweeper = asyncio.get_running_loop().create_task(self._sweep_periodically(interval))
        LOGGER.debug("Sweeper started, interval %.0fs", interval)

    async def stop(self) -> None:
        """Cancel the periodic sweeper and wait for it to finish."""
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._sweeper
        self._sweeper = None

    def close(self) -> None:
        if self._sweeper is not None:
            self._sweeper.cancel()
            self._sweeper = None
        self.cache.close()
