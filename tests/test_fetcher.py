"""Tests for the asynchronous page fetcher."""

from __future__ import annotations

import asyncio
from typing import List
from unittest.mock import AsyncMock, Mock, patch

import aiohttp
import pytest

from doccache.errors import ExtractionError, FetchError
from doccache.ingestion.fetcher import Fetcher, default_headers

HTML = "<html><head><title>Docs</title></head><body><main><p>" + "content " * 60 + "</p></main></body></html>"


class FakeResponse:
    def __init__(self, url: str, body: str, status: int = 200) -> None:
        self.url = url
        self.status = status
        self.headers = {"Content-Type": "text/html"}
        self._body = body

    def raise_for_status(self) -> None:
        if self.status >= 400:
            raise aiohttp.ClientResponseError(request_info=Mock(), history=(), status=self.status)

    async def text(self, errors: str = "strict") -> str:
        return self._body


class FakeRequest:
    def __init__(self, outcome, delay: float = 0.0) -> None:
        self._outcome = outcome
        self._delay = delay

    async def __aenter__(self) -> FakeResponse:
        if self._delay:
            await asyncio.sleep(self._delay)
        if isinstance(self._outcome, Exception):
            raise self._outcome
        return self._outcome

    async def __aexit__(self, *exc_info) -> None:
        return None


class FakeSession:
    """Stands in for ``aiohttp.ClientSession``; replays one outcome per call."""

    def __init__(self, outcomes: List, delay: float = 0.0) -> None:
        self.outcomes = list(outcomes)
        self.delay = delay
        self.calls: List[dict] = []

    def get(self, url: str, **kwargs) -> FakeRequest:
        self.calls.append({"url": url, **kwargs})
        return FakeRequest(self.outcomes.pop(0), self.delay)


class TestFetch:
    """Test retry behaviour of Fetcher.fetch."""

    def test_success_first_attempt(self) -> None:
        session = FakeSession([FakeResponse("https://a.dev/docs", HTML)])
        fetcher = Fetcher(session=session, base_delay=0)

        page = asyncio.run(fetcher.fetch("https://a.dev/docs"))

        assert page.body == HTML
        assert page.status == 200
        assert page.content_type == "text/html"
        assert len(session.calls) == 1
        assert session.calls[0]["headers"] == default_headers()
        assert session.calls[0]["allow_redirects"] is True

    def test_retries_then_succeeds(self) -> None:
        session = FakeSession(
            [
                aiohttp.ClientConnectionError("reset"),
                FakeResponse("https://a.dev/docs", "", status=503),
                FakeResponse("https://a.dev/docs", HTML),
            ]
        )
        fetcher = Fetcher(session=session, retry_count=3, base_delay=0)

        page = asyncio.run(fetcher.fetch("https://a.dev/docs"))

        assert page.body == HTML
        assert len(session.calls) == 3

    def test_gives_up_after_retry_count(self) -> None:
        session = FakeSession([aiohttp.ClientConnectionError("down")] * 3)
        fetcher = Fetcher(session=session, retry_count=3, base_delay=0)

        with pytest.raises(FetchError) as exc_info:
            asyncio.run(fetcher.fetch("https://a.dev/docs"))

        assert exc_info.value.attempts == 3
        assert exc_info.value.url == "https://a.dev/docs"
        assert "down" in str(exc_info.value)
        assert len(session.calls) == 3

    def test_linear_backoff(self) -> None:
        session = FakeSession([aiohttp.ClientConnectionError("down")] * 3)
        fetcher = Fetcher(session=session, retry_count=3, base_delay=1.5)

        with patch("doccache.ingestion.fetcher.asyncio.sleep", new=AsyncMock()) as mock_sleep:
            with pytest.raises(FetchError):
                asyncio.run(fetcher.fetch("https://a.dev/docs"))

        assert [call.args[0] for call in mock_sleep.await_args_list] == [1.5, 3.0]

    def test_timeout_counts_as_failed_attempt(self) -> None:
        session = FakeSession([FakeResponse("https://a.dev/docs", HTML)] * 2, delay=1.0)
        fetcher = Fetcher(session=session, retry_count=2, base_delay=0, timeout=0.01)

        with pytest.raises(FetchError) as exc_info:
            asyncio.run(fetcher.fetch("https://a.dev/docs"))

        assert exc_info.value.attempts == 2

    def test_rejects_non_http_scheme(self) -> None:
        session = FakeSession([])
        fetcher = Fetcher(session=session)

        with pytest.raises(FetchError) as exc_info:
            asyncio.run(fetcher.fetch("file:///etc/passwd"))

        assert exc_info.value.attempts == 0
        assert session.calls == []

    def test_retry_count_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            Fetcher(retry_count=0)


class TestFetchAndExtract:
    def test_returns_extraction(self) -> None:
        session = FakeSession([FakeResponse("https://a.dev/docs", HTML)])
        fetcher = Fetcher(session=session, base_delay=0)

        result = asyncio.run(fetcher.fetch_and_extract("https://a.dev/docs"))

        assert result.title == "Docs"
        assert result.word_count == 60

    def test_empty_body_raises_extraction_error(self) -> None:
        session = FakeSession([FakeResponse("https://a.dev/docs", "")])
        fetcher = Fetcher(session=session, base_delay=0)

        with pytest.raises(ExtractionError):
            asyncio.run(fetcher.fetch_and_extract("https://a.dev/docs"))
