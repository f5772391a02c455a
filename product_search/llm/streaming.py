"""Bounded accumulation of streamed LLM output."""

import asyncio
from dataclasses import dataclass
from typing import AsyncIterator

import structlog

logger = structlog.get_logger()


@dataclass(frozen=True)
class StreamResult:
    """Complete text of a consumed stream."""
    text: str
    chunk_count: int
    truncated: bool = False


class StreamAccumulator:
    """Consume an async chunk iterator into a single string.

    Chunks are appended strictly in arrival order and consumption stops once
    ``max_chars`` is reached. The accumulator is awaitable and resolves to a
    StreamResult; if it is cancelled or times out, the partial text is
    dropped and the error propagates instead.

    Example:
        accumulator = StreamAccumulator(provider.generate_stream(prompt, model))
        result = await accumulator
    """

    def __init__(
        self,
        chunks: AsyncIterator[str],
        max_chars: int = 16000,
        timeout: float | None = None,
    ):
        self._chunks = chunks
        self.max_chars = max_chars
        self.timeout = timeout
        self._parts: list[str] = []
        self._size = 0
        self._task: asyncio.Task | None = None

    def start(self) -> asyncio.Task:
        """Start consuming in a task; repeated calls return the same task."""
        if self._task is None:
            self._task = asyncio.create_task(self._run())
        return self._task

    def __await__(self):
        return self.start().__await__()

    def cancel(self) -> None:
        """Stop consuming further chunks."""
        if self._task is not None and not self._task.done():
            self._task.cancel()

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    async def _run(self) -> StreamResult:
        try:
            if self.timeout is not None:
                return await asyncio.wait_for(self._consume(), timeout=self.timeout)
            return await self._consume()
        except (asyncio.CancelledError, asyncio.TimeoutError):
            logger.debug("stream_discarded", partial_chars=self._size)
            raise
        finally:
            self._parts = []
            self._size = 0

    async def _consume(self) -> StreamResult:
        chunk_count = 0
        truncated = False

        try:
            async for chunk in self._chunks:
                if not chunk:
                    continue
                chunk_count += 1

                remaining = self.max_chars - self._size
                if len(chunk) > remaining:
                    if remaining > 0:
                        self._parts.append(chunk[:remaining])
                        self._size += remaining
                    truncated = True
                    break

                self._parts.append(chunk)
                self._size += len(chunk)
        finally:
            aclose = getattr(self._chunks, "aclose", None)
            if aclose is not None:
                await aclose()

        if truncated:
            logger.debug("stream_truncated", max_chars=self.max_chars)

        return StreamResult(text="".join(self._parts), chunk_count=chunk_count, truncated=truncated)
