"""Shared fixtures for the DocCache test-suite."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List

import pytest

from doccache.index.cache import DocumentCache
from doccache.models import Chunk, CodeFragment, Document, ExtractionResult, Heading
from doccache.utils.files import document_id

START = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def build_document(
    url: str = "https://docs.example.com/guide",
    *,
    title: str = "Example Guide",
    content: str = "Example guide body text about widgets.",
    headings: List[str] | None = None,
    code: List[str] | None = None,
    categories: List[str] | None = None,
    chunks: List[Chunk] | None = None,
    processed_at: datetime = START,
) -> Document:
    if chunks is None:
        chunks = [Chunk(index=0, text=content, heading=None, word_count=len(content.split()))]
    return Document(
        id=document_id(url),
        url=url,
        title=title,
        content=content,
        headings=[Heading(level=2, text=text, position=i) for i, text in enumerate(headings or [])],
        code_fragments=[CodeFragment(language="python", text=text, position=i) for i, text in enumerate(code or [])],
        categories=list(categories or []),
        chunks=chunks,
        word_count=len(content.split()),
        processed_at=processed_at,
    )


class FakeFetcher:
    """Returns canned extractions in order and records every call."""

    def __init__(self, outcomes: List, delay: float = 0.0) -> None:
        self.outcomes = list(outcomes)
        self.delay = delay
        self.calls: List[str] = []

    async def fetch_and_extract(self, url: str, *, min_content_chars: int = 200) -> ExtractionResult:
        self.calls.append(url)
        if self.delay:
            await asyncio.sleep(self.delay)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def sample_page(url: str, title: str = "Getting Started with Widgets", words: int = 300) -> ExtractionResult:
    text = "Installation " + " ".join(f"word{i}" for i in range(words - 1))
    return ExtractionResult(
        url=url,
        title=title,
        text=text,
        headings=[Heading(level=2, text="Installation", position=0)],
        word_count=words,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(tmp_path: Path, clock: FakeClock):
    """Empty cache on a temporary database with a controllable clock."""
    cache = DocumentCache.open(tmp_path / "cache.db", max_cache_age=timedelta(hours=24), clock=clock)
    yield cache
    cache.close()
