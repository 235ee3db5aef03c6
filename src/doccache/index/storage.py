"""SQLite document store.

Each document id owns one row in three tables: the document record without
chunk bodies, the chunk list, and its search index entry. Payloads are JSON
text so a single damaged row can be skipped without losing the others.
"""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Iterator, Sequence

from doccache.errors import CacheError
from doccache.models import Document, SearchIndexEntry


class SQLiteDocumentStore:
    """Persistence layer for documents, chunk lists and the search index."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        try:
            self._conn = sqlite3.connect(self.db_path)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL;")
            self._conn.execute("PRAGMA synchronous=NORMAL;")
            self._ensure_schema()
        except sqlite3.Error as exc:
            raise CacheError(f"Cannot open cache database {self.db_path}: {exc}", stage="open") from exc

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    def close(self) -> None:
        self._conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        try:
            yield self._conn
            self._conn.commit()
        except Exception:
            self._conn.rollback()
            raise

    @contextmanager
    def _guard(self, stage: str, doc_id: str | None = None) -> Iterator[None]:
        try:
            yield
        except sqlite3.Error as exc:
            raise CacheError(str(exc), doc_id=doc_id, stage=stage) from exc

    def _ensure_schema(self) -> None:
        with self.transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS documents (
                    id TEXT PRIMARY KEY,
                    url TEXT NOT NULL,
                    title TEXT,
                    payload TEXT NOT NULL,
                    processed_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS chunks (
                    doc_id TEXT PRIMARY KEY,
                    payload TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS search_index (
                    doc_id TEXT PRIMARY KEY,
                    payload TEXT NOT NULL
                )
                """
            )

    def save(self, document: Document) -> None:
        """Write document, chunks and index entry for one id in one transaction."""
        entry = SearchIndexEntry.from_document(document)
        with self._guard("save", document.id), self.transaction() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO documents(id, url, title, payload, processed_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    document.id,
                    document.url,
                    document.title,
                    json.dumps(document.to_dict(include_chunks=False), ensure_ascii=True),
                    document.processed_at.isoformat(),
                ),
            )
            conn.execute(
                "INSERT OR REPLACE INTO chunks(doc_id, payload) VALUES (?, ?)",
                (document.id, json.dumps([chunk.to_dict() for chunk in document.chunks], ensure_ascii=True)),
            )
            conn.execute(
                "INSERT OR REPLACE INTO search_index(doc_id, payload) VALUES (?, ?)",
                (document.id, json.dumps(entry.to_dict(), ensure_ascii=True)),
            )

    def iter_document_rows(self) -> Iterator[tuple[str, str]]:
        """Yield ``(doc_id, payload)`` for every stored document record."""
        with self._guard("load"):
            rows = self._conn.execute("SELECT id, payload FROM documents ORDER BY id").fetchall()
        for row in rows:
            yield row["id"], row["payload"]

    def load_chunks_payload(self, doc_id: str) -> str | None:
        with self._guard("load_chunks", doc_id):
            row = self._conn.execute("SELECT payload FROM chunks WHERE doc_id = ?", (doc_id,)).fetchone()
        return row["payload"] if row else None

    def iter_index_rows(self) -> Iterator[tuple[str, str]]:
        """Yield ``(doc_id, payload)`` for the persisted index snapshot."""
        with self._guard("load_index"):
            rows = self._conn.execute("SELECT doc_id, payload FROM search_index ORDER BY doc_id").fetchall()
        for row in rows:
            yield row["doc_id"], row["payload"]

    def delete(self, doc_id: str) -> bool:
        return self.delete_many([doc_id]) == 1

    def delete_many(self, doc_ids: Sequence[str]) -> int:
        """Remove every listed id from all three tables in one transaction."""
        if not doc_ids:
            return 0
        removed = 0
        with self._guard("delete"), self.transaction() as conn:
            for doc_id in doc_ids:
                cursor = conn.execute("DELETE FROM documents WHERE id = ?", (doc_id,))
                removed += cursor.rowcount
                conn.execute("DELETE FROM chunks WHERE doc_id = ?", (doc_id,))
                conn.execute("DELETE FROM search_index WHERE doc_id = ?", (doc_id,))
        return removed

    def replace_index(self, entries: Iterable[SearchIndexEntry]) -> None:
        """Rewrite the whole index snapshot."""
        with self._guard("write_index"), self.transaction() as conn:
            conn.execute("DELETE FROM search_index")
            conn.executemany(
                "INSERT INTO search_index(doc_id, payload) VALUES (?, ?)",
                [(entry.doc_id, json.dumps(entry.to_dict(), ensure_ascii=True)) for entry in entries],
            )
