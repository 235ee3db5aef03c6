"""Document cache: durable SQLite store plus a rebuildable in-memory projection."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import AsyncIterator, Callable, Dict, List

from doccache.errors import CacheError, DocumentNotFoundError
from doccache.index.storage import SQLiteDocumentStore
from doccache.models import Chunk, Document, SearchIndexEntry, utc_now

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_CACHE_AGE = timedelta(hours=24)


class DocumentCache:
    """Sole owner of stored documents.

    Readers such as the searcher only borrow the ``Document`` objects returned
    here. Writers go through :meth:`store` and :meth:`delete`, which update
    SQLite first and memory second, so a failed write leaves both untouched.
    """

    def __init__(
        self,
        storage: SQLiteDocumentStore,
        *,
        max_cache_age: timedelta = DEFAULT_MAX_CACHE_AGE,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.storage = storage
        self.max_cache_age = max_cache_age
        self._clock = clock
        self._documents: Dict[str, Document] = {}
        self._index: Dict[str, SearchIndexEntry] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    @classmethod
    def open(
        cls,
        db_path: Path,
        *,
        max_cache_age: timedelta = DEFAULT_MAX_CACHE_AGE,
        clock: Callable[[], datetime] = utc_now,
    ) -> "DocumentCache":
        """Open the database at ``db_path`` and load everything it holds."""
        cache = cls(SQLiteDocumentStore(db_path), max_cache_age=max_cache_age, clock=clock)
        loaded = cache.rebuild_index_from_store()
        LOGGER.info("Loaded %d cached documents from %s", loaded, db_path)
        return cache

    def close(self) -> None:
        self.storage.close()

    def now(self) -> datetime:
        return self._clock()

    def __len__(self) -> int:
        return len(self._documents)

    def __contains__(self, doc_id: object) -> bool:
        return doc_id in self._documents

    def lock(self, doc_id: str) -> asyncio.Lock:
        """Per-id lock held by ingestion for the whole fetch-to-store span."""
        lock = self._locks.get(doc_id)
        if lock is None:
            lock = self._locks[doc_id] = asyncio.Lock()
        return lock

    @contextlib.asynccontextmanager
    async def hold(self, doc_id: str) -> AsyncIterator[None]:
        """Hold the id lock; it is discarded once no task holds or awaits it."""
        lock = self.lock(doc_id)
        self._lock_users[doc_id] = self._lock_users.get(doc_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[doc_id] -= 1
            if self._lock_users[doc_id] == 0:
                del self._lock_users[doc_id]
                if self._locks.get(doc_id) is lock and not lock.locked():
                    del self._locks[doc_id]

    def is_locked(self, doc_id: str) -> bool:
        lock = self._locks.get(doc_id)
        return lock is not None and lock.locked()

    def _forget(self, doc_id: str) -> None:
        self._documents.pop(doc_id, None)
        self._index.pop(doc_id, None)

    def rebuild_index_from_store(self) -> int:
        """Reload documents and the index projection from SQLite.

        Damaged rows are logged and skipped. When the persisted index
        snapshot disagrees with the loaded documents it is rewritten.
        """
        documents: Dict[str, Document] = {}
        for doc_id, payload in self.storage.iter_document_rows():
            try:
                chunks_payload = self.storage.load_chunks_payload(doc_id)
                if chunks_payload is None:
                    LOGGER.warning("Skipping cached document %s: chunk list is missing", doc_id)
                    continue
                chunks = [Chunk.from_dict(item) for item in json.loads(chunks_payload)]
                if not chunks:
                    LOGGER.warning("Skipping cached document %s: chunk list is empty", doc_id)
                    continue
                document = Document.from_dict(json.loads(payload), chunks=chunks)
            except (ValueError, KeyError, TypeError) as exc:
                LOGGER.warning("Skipping corrupt cached document %s: %s", doc_id, exc)
                continue
            documents[document.id] = document

        persisted: Dict[str, SearchIndexEntry] = {}
        for doc_id, payload in self.storage.iter_index_rows():
            try:
                persisted[doc_id] = SearchIndexEntry.from_dict(json.loads(payload))
            except (ValueError, KeyError, TypeError) as exc:
                LOGGER.warning("Dropping corrupt search index entry %s: %s", doc_id, exc)

        index = {doc_id: SearchIndexEntry.from_document(doc) for doc_id, doc in documents.items()}
        if persisted != index:
            LOGGER.info("Search index out of sync with stored documents; rewriting %d entries", len(index))
            self.storage.replace_index(index.values())

        self._documents = documents
        self._index = index
        return len(documents)

    def store(self, document: Document) -> None:
        """Persist ``document`` and replace any previous version with the same id."""
        if not document.chunks:
            raise CacheError("Refusing to store a document without chunks", doc_id=document.id, stage="store")
        self.storage.save(document)
        self._documents[document.id] = document
        self._index[document.id] = SearchIndexEntry.from_document(document)

    def get(self, doc_id: str) -> Document:
        try:
            return self._documents[doc_id]
        except KeyError:
            raise DocumentNotFoundError(doc_id) from None

    def delete(self, doc_id: str) -> None:
        """Remove a document permanently."""
        if doc_id not in self._documents:
            raise DocumentNotFoundError(doc_id)
        self.storage.delete(doc_id)
        self._forget(doc_id)

    def list(self) -> List[Document]:
        """Every cached document, most recently processed first."""
        return sorted(self._documents.values(), key=lambda doc: doc.processed_at, reverse=True)

    def entries(self) -> List[SearchIndexEntry]:
        return sorted(self._index.values(), key=lambda entry: entry.last_updated, reverse=True)

    def is_fresh(self, doc_id: str) -> bool:
        document = self._documents.get(doc_id)
        if document is None:
            return False
        return self.now() - document.processed_at < self.max_cache_age

    def sweep(self) -> List[str]:
        """Delete every document older than ``max_cache_age``.

        Ids locked by an in-flight ingestion are left alone. All removals
        happen in a single storage transaction.
        """
        now = self.now()
        stale = [
            doc_id
            for doc_id, document in self._documents.items()
            if now - document.processed_at > self.max_cache_age
        ]
        busy = [doc_id for doc_id in stale if self.is_locked(doc_id)]
        for doc_id in busy:
            LOGGER.info("Sweep skipped %s: ingestion in progress", doc_id)

        targets = [doc_id for doc_id in stale if doc_id not in busy]
        if not targets:
            return []

        self.storage.delete_many(targets)
        for doc_id in targets:
            self._forget(doc_id)
        LOGGER.info("Swept %d stale documents", len(targets))
        return targets
