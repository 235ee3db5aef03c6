"""Ranker backed by a headless command line assistant."""

from __future__ import annotations

import asyncio
import logging
from typing import Sequence

from doccache.config import DEFAULT_RANKER_COMMAND
from doccache.errors import RankingError

LOGGER = logging.getLogger(__name__)


class CommandRanker:
    """Run ``command + [prompt]`` and return its standard output."""

    def __init__(self, command: Sequence[str] = DEFAULT_RANKER_COMMAND) -> None:
        if not command:
            raise ValueError("Ranker command must not be empty")
        self.command = tuple(command)

    async def rerank(self, prompt: str, timeout: float) -> str:
        try:
            process = await asyncio.create_subprocess_exec(
                *self.command,
                prompt,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise RankingError(f"Cannot start ranker {self.command[0]!r}: {exc}") from exc

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except (asyncio.TimeoutError, asyncio.CancelledError) as exc:
            process.kill()
            await process.wait()
            if isinstance(exc, asyncio.CancelledError):
                raise
            raise RankingError(f"Ranker {self.command[0]!r} timed out after {timeout:g}s") from None

        if process.returncode != 0:
            detail = stderr.decode("utf-8", errors="replace").strip()
            raise RankingError(f"Ranker {self.command[0]!r} exited with {process.returncode}: {detail}")

        LOGGER.debug("Ranker %s returned %d bytes", self.command[0], len(stdout))
        return stdout.decode("utf-8", errors="replace")
