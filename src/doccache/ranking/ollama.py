"""Ranker backed by a local Ollama server."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

import aiohttp

from doccache.errors import RankingError


@dataclass(slots=True)
class OllamaRankerConfig:
    model: str = "llama3.1"
    url: str = "http://localhost:11434"


class OllamaRanker:
    """Send the prompt to ``/api/generate`` and return the generated text."""

    def __init__(self, config: OllamaRankerConfig | None = None) -> None:
        self.config = config or OllamaRankerConfig()

    async def rerank(self, prompt: str, timeout: float) -> str:
        endpoint = f"{self.config.url.rstrip('/')}/api/generate"
        payload = {"model": self.config.model, "prompt": prompt, "stream": False}
        try:
            async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=timeout)) as session:
                async with session.post(endpoint, json=payload) as response:
                    response.raise_for_status()
                    data = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            raise RankingError(f"Ollama request to {endpoint} failed: {exc!r}") from exc

        if not isinstance(data, dict):
            raise RankingError("Unexpected Ollama response payload")
        return str(data.get("response", ""))
