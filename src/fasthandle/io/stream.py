"""Seekable access on top of one-directional byte streams."""

import logging
from typing import BinaryIO, Callable, Optional

from ..core.model import HandleClosedError, HandleError
from .base import window

logger = logging.getLogger(__name__)

SKIP_CHUNK = 64 * 1024

Opener = Callable[[int], BinaryIO]


class SequentialStreamAdapter:
    """Random access emulated over a stream that can only move forward.

    `opener(offset)` must return a readable stream positioned at `offset`.
    Forward seeks of at most `max_forward_skip` bytes read and discard;
    anything else reopens the stream at the target offset.
    """

    def __init__(self, opener: Opener, max_forward_skip: Optional[int] = None):
        self._opener = opener
        self.max_forward_skip = max_forward_skip  # None = always skip forward
        self._stream: Optional[BinaryIO] = None
        self._closed = False
        self.fp = 0
        self.mark = 0
        self.bytes_fetched = 0
        self.reconnects = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def _check_open(self):
        if self._closed:
            raise HandleClosedError("I/O operation on closed handle")

    def _ensure_stream(self) -> BinaryIO:
        if self._stream is None:
            self.reset(self.fp)
        return self._stream

    def reset(self, offset: int) -> None:
        """Drop the current stream and open a new one at `offset`."""
        self._check_open()
        if offset < 0:
            raise HandleError("Offset cannot be negative")
        if self._stream is not None:
            self._release()
            self.reconnects += 1
            logger.debug("reconnecting at offset %d (reconnect #%d)", offset, self.reconnects)
        self._stream = self._opener(offset)
        self.fp = offset
        self.mark = offset

    def _release(self):
        stream, self._stream = self._stream, None
        if stream is not None:
            stream.close()

    def read(self, size: int = -1) -> bytes:
        """Read up to `size` bytes (all remaining when negative); b"" at EOF."""
        self._check_open()
        stream = self._ensure_stream()
        if size is None or size < 0:
            data = stream.read()
        else:
            chunks = []
            remaining = size
            while remaining > 0:
                chunk = stream.read(remaining)
                if not chunk:
                    break
                chunks.append(chunk)
                remaining -= len(chunk)
            data = b"".join(chunks)
        self.fp += len(data)
        self.bytes_fetched += len(data)
        return data

    def readinto(self, buffer, offset: int = 0, length: Optional[int] = None) -> int:
        target = window(buffer, offset, length)
        data = self.read(len(target))
        target[:len(data)] = data
        return len(data)

    def skip(self, count: int) -> int:
        """Read and discard `count` bytes; return how many were actually skipped."""
        self._check_open()
        stream = self._ensure_stream()
        skipped = 0
        while skipped < count:
            chunk = stream.read(min(SKIP_CHUNK, count - skipped))
            if not chunk:
                break
            skipped += len(chunk)
        self.fp += skipped
        self.bytes_fetched += skipped
        return skipped

    def seek(self, pos: int) -> None:
        self._check_open()
        if pos < 0:
            raise HandleError("Cannot seek to a negative offset")
        if pos == self.fp:
            return
        diff = pos - self.fp
        if self._stream is None:
            # nothing opened yet; the next read opens at the new offset
            self.fp = pos
        elif diff > 0 and (self.max_forward_skip is None or diff <= self.max_forward_skip):
            self.skip(diff)
            self.fp = pos
        else:
            self.reset(pos)

    def close(self) -> None:
        if self._closed:
            return
        self._release()
        self._closed = True
