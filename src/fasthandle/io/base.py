"""Base protocol and shared helpers for handles."""

import struct
from typing import Protocol, runtime_checkable

from ..core.model import HandleError


@runtime_checkable
class SeekableHandle(Protocol):
    """Protocol every handle implements."""

    byte_order: str  # "big" or "little"

    def tell(self) -> int: ...

    def seek(self, pos: int) -> None: ...

    def read(self, size: int = -1) -> bytes: ...

    def readinto(self, buffer, offset: int = 0, length: int | None = None) -> int: ...

    def write(self, data, offset: int = 0, length: int | None = None) -> None: ...

    def length(self) -> int: ...

    def exists(self) -> bool: ...

    def close(self) -> None: ...


def fetch_exact(handle: SeekableHandle, start: int, length: int) -> bytes:
    """Return exactly `length` bytes starting at absolute offset `start`.
    If not enough data can be read → raise HandleError.
    """
    if start < 0:
        raise HandleError("Start offset cannot be negative")
    handle.seek(start)
    data = handle.read(length)
    if len(data) < length:
        raise HandleError(f"Not enough data: requested {length} bytes at offset {start}, "
                          f"got {len(data)}")
    return data


def read_struct(handle: SeekableHandle, fmt: str) -> tuple:
    """Read and unpack `fmt` at the current offset using the handle's byte order."""
    prefix = ">" if handle.byte_order == "big" else "<"
    size = struct.calcsize(prefix + fmt)
    data = handle.read(size)
    if len(data) < size:
        raise HandleError(f"Not enough data: needed {size} bytes, got {len(data)}")
    return struct.unpack(prefix + fmt, data)


def check_byte_order(order: str) -> str:
    if order not in ("big", "little"):
        raise ValueError(f"byte order must be 'big' or 'little', not {order!r}")
    return order


def window(buffer, offset: int, length: int | None) -> memoryview:
    """Return a writable/readable view of `buffer[offset:offset + length]`."""
    view = memoryview(buffer).cast("B")
    if length is None:
        length = len(view) - offset
    if offset < 0 or length < 0 or offset + length > len(view):
        raise ValueError(f"window {offset}+{length} outside buffer of {len(view)} bytes")
    return view[offset:offset + length]
