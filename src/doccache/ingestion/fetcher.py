"""Asynchronous page fetching with bounded, linearly backed-off retries."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, Optional
from urllib.parse import urlparse

import aiohttp

from doccache.config import DEFAULT_USER_AGENT
from doccache.errors import FetchError
from doccache.ingestion.html_extractor import MIN_CONTENT_CHARS, extract_content
from doccache.models import ExtractionResult

LOGGER = logging.getLogger(__name__)

ALLOWED_SCHEMES = {"http", "https"}


@dataclass(slots=True)
class FetchedPage:
    url: str
    status: int
    body: str
    content_type: str = ""


def default_headers(user_agent: str = DEFAULT_USER_AGENT) -> Dict[str, str]:
    return {
        "User-Agent": user_agent,
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.5",
    }


class Fetcher:
    """Retrieve documentation pages over HTTP.

    A caller-provided ``aiohttp.ClientSession`` is reused and left open;
    otherwise a session is created per fetch. Failed attempts are retried
    ``retry_count`` times in total, sleeping ``attempt * base_delay`` seconds
    between attempts.
    """

    def __init__(
        self,
        *,
        timeout: float = 30.0,
        retry_count: int = 3,
        base_delay: float = 1.0,
        user_agent: str = DEFAULT_USER_AGENT,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        if retry_count < 1:
            raise ValueError("retry_count must be at least 1")
        self.timeout = timeout
        self.retry_count = retry_count
        self.base_delay = base_delay
        self.headers = default_headers(user_agent)
        self._session = session

    async def _get(self, session: aiohttp.ClientSession, url: str) -> FetchedPage:
        async with session.get(url, headers=self.headers, allow_redirects=True) as response:
            response.raise_for_status()
            body = await response.text(errors="replace")
            return FetchedPage(
                url=str(response.url),
                status=response.status,
                body=body,
                content_type=response.headers.get("Content-Type", ""),
            )

    async def _attempt(self, url: str) -> FetchedPage:
        if self._session is not None:
            return await self._get(self._session, url)
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            return await self._get(session, url)

    async def fetch(self, url: str) -> FetchedPage:
        """Fetch ``url``, retrying transient failures.

        Raises:
            FetchError: when the URL is not http(s) or every attempt failed.
        """
        scheme = urlparse(url).scheme.lower()
        if scheme not in ALLOWED_SCHEMES:
            raise FetchError(url, f"unsupported URL scheme {scheme!r}", attempts=0)

        last_error: Exception | None = None
        for attempt in range(1, self.retry_count + 1):
            try:
                LOGGER.debug("Fetching %s (attempt %d/%d)", url, attempt, self.retry_count)
                page = await asyncio.wait_for(self._attempt(url), timeout=self.timeout)
                LOGGER.info("Fetched %s: %d characters", url, len(page.body))
                return page
            except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                last_error = exc
                LOGGER.warning(
                    "Attempt %d/%d for %s failed: %s", attempt, self.retry_count, url, str(exc) or type(exc).__name__
                )
                if attempt < self.retry_count:
                    await asyncio.sleep(attempt * self.base_delay)

        message = str(last_error) or type(last_error).__name__
        raise FetchError(url, message, attempts=self.retry_count) from last_error

    async def fetch_and_extract(
        self, url: str, *, min_content_chars: int = MIN_CONTENT_CHARS
    ) -> ExtractionResult:
        page = await self.fetch(url)
        return extract_content(page.body, url, min_content_chars=min_content_chars)
