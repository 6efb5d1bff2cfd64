"""
Bounded in-memory pipe between the row encoder thread and a COPY call.

The sink side is a text writer used by the encoder; it encodes to UTF-8 and
hands fixed-size byte chunks to a bounded queue, blocking when the queue is
full. The source side is a binary file-like object read by the driver.

Unlike an OS pipe, the writer can fail the reader: ``sink.abort(exc)`` makes
the next ``source.read()`` raise, so COPY never sees a clean end-of-data
after a partial stream. Closing the source makes a blocked writer raise
BrokenPipeError.
"""

import queue
import threading
from typing import Optional

DEFAULT_CHUNK_SIZE = 64 * 1024
_POLL_INTERVAL = 0.1
_EOF = object()


class PipeAbortedError(Exception):
    """Raised from source.read() after the writer aborted the stream."""

    def __init__(self, cause: BaseException):
        super().__init__(f"Row stream aborted: {cause}")
        self.cause = cause


class BoundedPipe:
    """Single-producer, single-consumer byte pipe with a capacity in bytes."""

    def __init__(self, capacity: int, chunk_size: int = DEFAULT_CHUNK_SIZE):
        if capacity <= 0:
            raise ValueError(f"Pipe capacity must be greater than 0, got: {capacity}")
        self.chunk_size = min(chunk_size, capacity)
        self._queue: "queue.Queue[object]" = queue.Queue(
            maxsize=max(1, capacity // self.chunk_size)
        )
        self._reader_closed = threading.Event()
        self._writer_error: Optional[BaseException] = None
        self.sink = PipeSink(self)
        self.source = PipeSource(self)

    @property
    def writer_error(self) -> Optional[BaseException]:
        """The exception the writer aborted with, if any."""
        return self._writer_error

    @property
    def reader_closed(self) -> bool:
        return self._reader_closed.is_set()

    def _put(self, item: object) -> None:
        while True:
            if self._reader_closed.is_set():
                raise BrokenPipeError("COPY stream reader has been closed")
            try:
                self._queue.put(item, timeout=_POLL_INTERVAL)
                return
            except queue.Full:
                continue

    def _get(self) -> object:
        while True:
            if self._writer_error is not None:
                raise PipeAbortedError(self._writer_error)
            try:
                return self._queue.get(timeout=_POLL_INTERVAL)
            except queue.Empty:
                continue

    def _abort(self, exc: BaseException) -> None:
        self._writer_error = exc

    def _close_reader(self) -> None:
        self._reader_closed.set()
        # Drain so a writer blocked in put() wakes up and sees the flag
        while True:
            try:
                self._queue.get_nowait()
            except queue.Empty:
                break


class PipeSink:
    """Text writer side of the pipe; used as the csv output of the encoder."""

    def __init__(self, pipe: BoundedPipe):
        self._pipe = pipe
        self._buffer = bytearray()
        self._closed = False
        self.bytes_written = 0

    def write(self, text: str) -> int:
        if self._closed:
            raise ValueError("write to closed pipe sink")
        data = text.encode("utf-8")
        self._buffer += data
        self.bytes_written += len(data)
        while len(self._buffer) >= self._pipe.chunk_size:
            chunk = bytes(self._buffer[: self._pipe.chunk_size])
            del self._buffer[: self._pipe.chunk_size]
            self._pipe._put(chunk)
        return len(text)

    def flush(self) -> None:
        if self._buffer:
            chunk = bytes(self._buffer)
            self._buffer.clear()
            self._pipe._put(chunk)

    def close(self) -> None:
        """Flush pending data and signal a clean end of stream."""
        if self._closed:
            return
        self.flush()
        self._closed = True
        self._pipe._put(_EOF)

    def abort(self, exc: BaseException) -> None:
        """Fail the stream; the reader raises instead of seeing end-of-data."""
        self._closed = True
        self._buffer.clear()
        self._pipe._abort(exc)

    @property
    def closed(self) -> bool:
        return self._closed


class PipeSource:
    """Binary file-like reader side of the pipe, handed to the COPY call."""

    def __init__(self, pipe: BoundedPipe):
        self._pipe = pipe
        self._pending = b""
        self._eof = False

    def readable(self) -> bool:
        return True

    def read(self, size: int = -1) -> bytes:
        """
        Read up to ``size`` bytes (all remaining data when size < 0).

        Returns b"" at end of stream.

        Raises:
            PipeAbortedError: If the writer aborted the stream
        """
        if self._pipe.writer_error is not None:
            raise PipeAbortedError(self._pipe.writer_error)

        if size is None or size < 0:
            parts = [self._pending]
            self._pending = b""
            while not self._eof:
                parts.append(self._next_chunk())
            return b"".join(parts)

        while not self._pending and not self._eof:
            self._pending = self._next_chunk()

        data = self._pending[:size]
        self._pending = self._pending[size:]
        return data

    def _next_chunk(self) -> bytes:
        item = self._pipe._get()
        if item is _EOF:
            self._eof = True
            return b""
        return item  # type: ignore[return-value]

    def close(self) -> None:
        """Stop reading; a writer blocked on a full pipe gets BrokenPipeError."""
        self._pipe._close_reader()

    @property
    def closed(self) -> bool:
        return self._pipe.reader_closed
