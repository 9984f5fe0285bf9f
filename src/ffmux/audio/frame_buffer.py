"""Growable byte buffers bridging subprocess pipes and byte consumers."""

from __future__ import annotations

import logging
import threading
from typing import Optional

from ffmux.errors import BufferReadError, BufferWriteError, StreamClosedError

logger = logging.getLogger(__name__)

_MIN_CAPACITY = 4096


class FrameBuffer:
    """Byte buffer with stream semantics.

    Unread bytes live between a read offset and a write offset inside a
    bytearray. Writes grow the storage first when spare capacity is short,
    so a write never lands past the allocated capacity. Reads may be short;
    an empty buffer reads as ``b""``.
    """

    def __init__(self, initial: bytes = b"", *, capacity: int = 0) -> None:
        self._storage = bytearray(max(0, capacity))
        self._start = 0
        self._end = 0
        if initial:
            self.write(initial)

    def __len__(self) -> int:
        return self._end - self._start

    @property
    def capacity(self) -> int:
        return len(self._storage)

    def grow(self, size: int) -> None:
        """Ensure at least ``size`` bytes can be written without reallocation."""

        if size < 0:
            raise ValueError("cannot grow by a negative size")
        if len(self._storage) - self._end >= size:
            return
        unread = len(self)
        if self._start:
            self._storage[:unread] = self._storage[self._start : self._end]
            self._start = 0
            self._end = unread
        if len(self._storage) - self._end >= size:
            return
        new_capacity = max(len(self._storage) * 2, unread + size, _MIN_CAPACITY)
        self._storage.extend(bytes(new_capacity - len(self._storage)))

    def write(self, data) -> int:
        size = len(data)
        if size == 0:
            raise BufferWriteError("cannot write from empty buffer")
        if len(self._storage) - self._end < size:
            self.grow(size)
        self._storage[self._end : self._end + size] = data
        self._end += size
        return size

    def read(self, size: int) -> bytes:
        if size <= 0:
            raise BufferReadError("cannot read into empty buffer")
        count = min(size, len(self))
        if count == 0:
            return b""
        data = bytes(self._storage[self._start : self._start + count])
        self._consume(count)
        return data

    def readinto(self, buffer) -> int:
        view = memoryview(buffer).cast("B")
        if len(view) == 0:
            raise BufferReadError("cannot read into empty buffer")
        count = min(len(view), len(self))
        if count:
            view[:count] = self._storage[self._start : self._start + count]
            self._consume(count)
        return count

    def getvalue(self) -> bytes:
        return bytes(self._storage[self._start : self._end])

    def clear(self) -> None:
        self._start = 0
        self._end = 0

    def _consume(self, count: int) -> None:
        self._start += count
        if self._start == self._end:
            self._start = 0
            self._end = 0


class BlockingFrameBuffer(FrameBuffer):
    """FrameBuffer whose reads wait for data until the writer closes it.

    The condition may be built on a lock owned by someone else (the mux
    engine passes its own lock so the source list and the mixed samples
    share one exclusion scope).
    """

    def __init__(self, *, lock: Optional[threading.RLock] = None, capacity: int = 0) -> None:
        super().__init__(capacity=capacity)
        self._cond = threading.Condition(lock if lock is not None else threading.RLock())
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def write(self, data) -> int:
        with self._cond:
            if self._closed:
                raise StreamClosedError("mixed buffer is closed")
            written = super().write(data)
            self._cond.notify_all()
            return written

    def read(self, size: int) -> bytes:
        if size <= 0:
            raise BufferReadError("cannot read into empty buffer")
        with self._cond:
            while len(self) == 0 and not self._closed:
                self._cond.wait()
            if len(self) == 0:
                return b""
            data = super().read(size)
            self._cond.notify_all()
            return data

    def readinto(self, buffer) -> int:
        if memoryview(buffer).nbytes == 0:
            raise BufferReadError("cannot read into empty buffer")
        with self._cond:
            while len(self) == 0 and not self._closed:
                self._cond.wait()
            count = super().readinto(buffer)
            self._cond.notify_all()
            return count

    def wait_below(self, limit: int, timeout: Optional[float] = None) -> bool:
        """Block while more than ``limit`` bytes are unread.

        Returns True once the buffer is at or below ``limit``; False on
        timeout or when the buffer was closed while waiting.
        """

        with self._cond:
            drained = self._cond.wait_for(lambda: len(self) <= limit or self._closed, timeout)
            return bool(drained) and not self._closed

    def close(self) -> None:
        with self._cond:
            if not self._closed:
                logger.debug("Closing mixed buffer with %d unread bytes", len(self))
            self._closed = True
            self._cond.notify_all()
