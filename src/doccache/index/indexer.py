"""Documentation ingestion pipeline."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Sequence

from doccache.config import AppConfig
from doccache.errors import ChunkingError, DocCacheError, ExtractionError
from doccache.index.cache import DocumentCache
from doccache.ingestion.categories import categorize
from doccache.ingestion.chunker import ChunkingOptions, build_chunks
from doccache.ingestion.fetcher import Fetcher
from doccache.models import Document
from doccache.utils.files import document_id

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class IngestOptions:
    """Per-call overrides; ``None`` falls back to the application config."""

    timeout: float | None = None
    retry_count: int | None = None
    max_chunk_size: int | None = None
    overlap: int | None = None
    preserve_structure: bool = True
    force: bool = False


@dataclass(slots=True)
class AddResult:
    doc_id: str
    url: str
    title: str
    cached: bool
    chunk_count: int
    size: int
    status: str = "inserted"

    @classmethod
    def from_document(cls, document: Document, *, cached: bool, status: str) -> "AddResult":
        return cls(
            doc_id=document.id,
            url=document.url,
            title=document.title,
            cached=cached,
            chunk_count=len(document.chunks),
            size=len(document.content),
            status=status,
        )


@dataclass(slots=True)
class IndexStats:
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    processed_urls: list[str] = field(default_factory=list)

    def increment(self, status: str, url: str) -> None:
        if status == "inserted":
            self.inserted += 1
        elif status == "updated":
            self.updated += 1
        elif status == "cached":
            self.skipped += 1
        else:
            self.failed += 1
        self.processed_urls.append(url)


FetcherFactory = Callable[[float, int], Fetcher]


class Indexer:
    """Coordinates fetching, extraction, chunking and persistence."""

    def __init__(
        self,
        cache: DocumentCache,
        config: AppConfig | None = None,
        *,
        fetcher_factory: FetcherFactory | None = None,
    ) -> None:
        self.cache = cache
        self.config = config or AppConfig()
        self._fetcher_factory = fetcher_factory or self._default_fetcher

    def _default_fetcher(self, timeout: float, retry_count: int) -> Fetcher:
        return Fetcher(
            timeout=timeout,
            retry_count=retry_count,
            base_delay=self.config.retry_base_delay,
            user_agent=self.config.user_agent,
        )

    def _chunking_options(self, options: IngestOptions) -> ChunkingOptions:
        try:
            return ChunkingOptions(
                max_chunk_size=options.max_chunk_size or self.config.max_chunk_size,
                overlap=self.config.overlap if options.overlap is None else options.overlap,
                preserve_structure=options.preserve_structure,
                heading_window=self.config.heading_window,
            )
        except ValueError as exc:
            raise ChunkingError(str(exc)) from exc

    async def add(self, url: str, options: IngestOptions | None = None) -> AddResult:
        """Ingest one page, or return the cached copy while it is fresh.

        The per-id lock is held from the freshness check until the document
        is stored, so concurrent calls for the same URL run one after another.
        """
        options = options or IngestOptions()
        url = url.strip()
        chunking = self._chunking_options(options)
        doc_id = document_id(url)

        async with self.cache.hold(doc_id):
            if not options.force and self.cache.is_fresh(doc_id):
                LOGGER.info("Using cached documentation %s for %s", doc_id, url)
                return AddResult.from_document(self.cache.get(doc_id), cached=True, status="cached")

            status = "updated" if doc_id in self.cache else "inserted"
            fetcher = self._fetcher_factory(
                options.timeout or self.config.fetch_timeout,
                options.retry_count or self.config.retry_count,
            )
            extraction = await fetcher.fetch_and_extract(url, min_content_chars=self.config.min_content_chars)

            chunks = build_chunks(extraction, chunking)
            if not chunks:
                raise ExtractionError(url, "no text left to chunk")

            document = Document(
                id=doc_id,
                url=url,
                title=extraction.title,
                content=extraction.text,
                headings=extraction.headings,
                code_fragments=extraction.code_fragments,
                categories=categorize(extraction),
                chunks=chunks,
                word_count=extraction.word_count,
                processed_at=self.cache.now(),
                extracted_at=extraction.extracted_at,
            )
            self.cache.store(document)

        LOGGER.info("Stored %s (%s): %d chunks", url, status, len(chunks))
        return AddResult.from_document(document, cached=False, status=status)

    async def index(self, urls: Sequence[str], options: IngestOptions | None = None) -> IndexStats:
        """Ingest every URL in order; failures are logged and counted."""
        stats = IndexStats()
        if not urls:
            LOGGER.warning("No URLs to index")
            return stats

        for url in urls:
            try:
                LOGGER.info("Processing: %s", url)
                result = await self.add(url, options)
                stats.increment(result.status, url)
            except DocCacheError as exc:
                LOGGER.error("Failed to process %s: %s", url, exc)
                stats.increment("failed", url)
        return stats
