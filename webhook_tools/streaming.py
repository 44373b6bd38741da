"""Streaming responses - live, single-consumer text streams.

A webhook answering with a streaming content type is handed back to the
caller without reading the body. The transport decides whether to forward
chunks incrementally (iterate the stream) or to buffer them into one
value (`buffer_stream`).
"""

import logging
from typing import AsyncIterator, Optional

import httpx

from .exceptions import StreamConsumedError, StreamReadError

logger = logging.getLogger(__name__)

# Content types treated as streams (compared lowercased, without spaces)
STREAMING_CONTENT_TYPES = (
    "text/event-stream",
    "application/x-ndjson",
    "text/plain;charset=utf-8",
)

STREAM_PREFIX = "[STREAMED RESPONSE] "


def is_streaming_content_type(content_type: Optional[str]) -> bool:
    """Check whether a Content-Type header marks a streaming response."""
    if not content_type:
        return False
    compact = content_type.lower().replace(" ", "")
    return any(marker in compact for marker in STREAMING_CONTENT_TYPES)


class ResponseStream:
    """
    Forward-only view over a live HTTP response body.

    Iterating yields decoded text chunks in arrival order. The stream can be
    read exactly once; the underlying connection is released when it is
    drained, when reading fails, or on `aclose()`.
    """

    def __init__(self, response: httpx.Response, tool_name: str = ""):
        self._response = response
        self._consumed = False
        self.tool_name = tool_name
        self.status_code = response.status_code
        self.content_type = response.headers.get("content-type")

    @property
    def consumed(self) -> bool:
        return self._consumed

    @property
    def closed(self) -> bool:
        return self._response.is_closed

    def __aiter__(self) -> AsyncIterator[str]:
        return self.iter_text()

    async def iter_text(self) -> AsyncIterator[str]:
        """Yield text chunks until the upstream closes the body."""
        if self._consumed:
            raise StreamConsumedError(
                f"Stream for {self.tool_name or 'tool'} has already been consumed"
            )
        self._consumed = True

        chunk_count = 0
        try:
            async for text in self._response.aiter_text():
                if not text:
                    continue
                chunk_count += 1
                if chunk_count <= 5:
                    logger.debug(f"Stream chunk {chunk_count} for {self.tool_name}: {text[:100]}")
                yield text
            logger.debug(f"Completed streaming {chunk_count} chunks for {self.tool_name}")
        except httpx.HTTPError as e:
            raise StreamReadError(f"Stream reading failed: {e}") from e
        finally:
            await self._response.aclose()

    async def aclose(self) -> None:
        """Release the connection without reading the rest of the body."""
        self._consumed = True
        await self._response.aclose()

    async def __aenter__(self) -> "ResponseStream":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    def __repr__(self) -> str:
        return f"ResponseStream(tool={self.tool_name!r}, content_type={self.content_type!r})"


async def buffer_stream(stream: ResponseStream, prefix: str = STREAM_PREFIX) -> str:
    """
    Drain a stream into a single string for clients that cannot stream.

    The text is prefixed to mark it as a reassembled stream.
    """
    logger.debug(f"Buffering full streamed response for {stream.tool_name}")
    chunks = [chunk async for chunk in stream]
    return f"{prefix}{''.join(chunks)}"
