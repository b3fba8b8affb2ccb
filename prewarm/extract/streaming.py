"""
Streaming link extraction for HTML responses.

The origin body is passed to the client byte for byte while the same bytes
are decoded and tokenized to collect anchor links. One chunk is in flight at
a time: read, decode, tokenize, write, and only then read again, so a slow
client slows down the origin read instead of growing a buffer.

Once the first byte is written the client response is committed. A failure
after that point cannot change the status code; it ends the body early and
is raised from ``StreamingLinkExtractor.run`` for whoever awaits it.
"""

import asyncio
import codecs
import logging
from enum import Enum
from typing import AsyncIterator, Protocol

from prewarm.errors import DecodeError, WriteError
from prewarm.extract.tokenizer import AnchorTokenizer
from prewarm.vars import SINK_WRITE_TIMEOUT

logger = logging.getLogger("uvicorn.error")

_EOF = object()


class OutputSink(Protocol):
    """Where the extractor writes the client-facing bytes."""

    async def write(self, chunk: bytes) -> None:
        """Return once the chunk was accepted, raise WriteError otherwise."""
        ...

    async def close(self) -> None:
        """End the output. Must not raise."""
        ...


class StreamChannel:
    """
    Hands chunks from the extractor task to the response body iterator.

    At most ``max_buffered`` chunks wait in the channel, so ``write`` only
    returns when the consumer keeps up. A write or close that the consumer
    does not take within ``write_timeout`` ends the body after the chunks
    already accepted. When the consumer stops iterating (the client
    disconnected) the channel detaches and every pending or later write
    fails with WriteError.
    """

    def __init__(self, write_timeout: float = SINK_WRITE_TIMEOUT, max_buffered: int = 1):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_buffered)
        self._write_timeout = write_timeout
        self._closed = False
        self._detached = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def detached(self) -> bool:
        return self._detached

    async def write(self, chunk: bytes) -> None:
        if self._closed:
            raise WriteError("Write after the output stream was closed")
        if self._detached:
            raise WriteError("Client disconnected")
        try:
            await asyncio.wait_for(self._queue.put(chunk), self._write_timeout)
        except asyncio.TimeoutError as e:
            self._closed = True
            self._wake_reader()
            raise WriteError(
                f"Client did not accept data within {self._write_timeout}s"
            ) from e
        # detach() frees a blocked put, the chunk then goes nowhere
        if self._detached:
            raise WriteError("Client disconnected")

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._detached:
            return
        try:
            await asyncio.wait_for(self._queue.put(_EOF), self._write_timeout)
        except asyncio.TimeoutError:
            # The reader stops once the queued chunks are taken
            logger.debug("[Extractor] Output stream closed without end marker")

    def _wake_reader(self) -> None:
        # A full queue means the reader is not waiting on get()
        if not self._queue.full():
            self._queue.put_nowait(_EOF)

    def detach(self) -> None:
        """Stop accepting data; called when the consumer goes away."""
        self._detached = True
        while not self._queue.empty():
            self._queue.get_nowait()

    async def body(self) -> AsyncIterator[bytes]:
        """The response body: yields chunks until the writer closes."""
        try:
            while not (self._closed and self._queue.empty()):
                chunk = await self._queue.get()
                if chunk is _EOF:
                    return
                yield chunk
        finally:
            self.detach()


class ExtractorState(str, Enum):
    IDLE = "idle"
    READING = "reading"
    DRAINING = "draining"
    DONE = "done"
    ABORTED = "aborted"


class StreamingLinkExtractor:
    """
    Copies ``source`` to ``sink`` unchanged and collects anchor links on the way.

    Decoding uses a stateful incremental decoder, so a multi-byte character
    split across two chunks decodes exactly as it would in one piece. The
    decoded text is re-encoded before writing; for a strict decoder that is
    the identity, which keeps the client bytes equal to the origin bytes.

    Each instance handles one body and ``run`` may be called once.
    """

    def __init__(self, source: AsyncIterator[bytes], sink: OutputSink, encoding: str = "utf-8"):
        self._source = source
        self._sink = sink
        self._encoding = encoding
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="strict")
        self._tokenizer = AnchorTokenizer(self._on_link)
        self.links: list[str] = []
        self.state = ExtractorState.IDLE
        self.bytes_read = 0
        self.bytes_written = 0

    def _on_link(self, href: str) -> None:
        logger.debug(f"[Extractor] Found a link: {href}")
        self.links.append(href)

    async def run(self) -> list[str]:
        """
        Stream the whole body and return the discovered links in document order.

        Raises:
            DecodeError: invalid byte sequence; bytes before it were delivered.
            WriteError: the sink rejected a write; the client saw a truncated body.
            NetworkError: the origin body could not be read to the end.
        """
        if self.state is not ExtractorState.IDLE:
            raise RuntimeError(f"Extractor already used (state: {self.state.value})")

        self.state = ExtractorState.READING
        try:
            async for chunk in self._source:
                await self._forward(chunk)

            self.state = ExtractorState.DRAINING
            await self._forward(b"", final=True)
            # An unterminated tag left in the parser is dropped here
            self._tokenizer.close()
            await self._sink.close()
        except BaseException:
            self.state = ExtractorState.ABORTED
            raise
        finally:
            await self._release()

        self.state = ExtractorState.DONE
        logger.debug(
            f"[Extractor] Done: {self.bytes_written} bytes, {len(self.links)} links"
        )
        return list(self.links)

    async def _forward(self, chunk: bytes, final: bool = False) -> None:
        text = self._decode(chunk, final)
        if not text:
            return
        self._tokenizer.feed(text)
        encoded = text.encode(self._encoding)
        await self._sink.write(encoded)
        self.bytes_written += len(encoded)

    def _decode(self, chunk: bytes, final: bool) -> str:
        pending, _ = self._decoder.getstate()
        start = self.bytes_read - len(pending)
        self.bytes_read += len(chunk)
        try:
            return self._decoder.decode(chunk, final)
        except UnicodeDecodeError as e:
            offset = start + e.start
            raise DecodeError(
                f"Invalid {self._encoding} byte sequence at offset {offset}: {e.reason}",
                offset=offset,
            ) from e

    async def _release(self) -> None:
        # Ends a truncated body cleanly; a no-op after a normal close
        await self._sink.close()
        aclose = getattr(self._source, "aclose", None)
        if aclose is not None:
            await aclose()
