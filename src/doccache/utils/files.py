"""Utility helpers for document identity and on-disk files."""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Iterable, Iterator


def document_id(url: str) -> str:
    """Stable fingerprint for a source URL; re-ingesting a URL reuses its id."""
    return hashlib.md5(url.strip().encode("utf-8")).hexdigest()


def iter_urls(lines: Iterable[str]) -> Iterator[str]:
    """Yield URLs from text lines, skipping blanks, comments and duplicates."""
    seen: set[str] = set()
    for line in lines:
        url = line.strip()
        if not url or url.startswith("#") or url in seen:
            continue
        seen.add(url)
        yield url


def read_url_file(path: Path) -> list[str]:
    """Read a newline separated list of URLs."""
    with path.open("r", encoding="utf-8") as handle:
        return list(iter_urls(handle))


def disk_usage(path: Path) -> int:
    """Size in bytes of a database file plus its WAL/SHM siblings."""
    total = 0
    for candidate in (path, path.with_name(path.name + "-wal"), path.with_name(path.name + "-shm")):
        if candidate.exists():
            total += candidate.stat().st_size
    return total
