"""Local file and in-memory handles."""

import io
import logging
import os
from pathlib import Path
from typing import BinaryIO, Union

from ..core.model import HandleClosedError, HandleError, ReadOnlyHandleError
from .base import check_byte_order, fetch_exact, read_struct, window

logger = logging.getLogger(__name__)


class FileHandle:
    """Handle over a local file, read-only ("r") or read-write ("rw")."""

    def __init__(self, source: Union[Path, str, BinaryIO], mode: str = "r"):
        if mode not in ("r", "rw"):
            raise ValueError(f"mode must be 'r' or 'rw', not {mode!r}")
        self.mode = mode
        self.byte_order = "big"
        self.bytes_fetched = 0
        self._should_close_file = False

        if hasattr(source, 'read'):
            # BinaryIO object, owned by the caller
            self._file = source
            self.name = getattr(source, 'name', None)
        else:
            self.name = os.fspath(source)
            if mode == "r":
                self._file = open(self.name, 'rb')
            elif os.path.exists(self.name):
                self._file = open(self.name, 'r+b')
            else:
                self._file = open(self.name, 'w+b')
            self._should_close_file = True
        logger.debug("opened %s (%s)", self.name, mode)

    def _check_open(self) -> BinaryIO:
        if self._file is None:
            raise HandleClosedError("I/O operation on closed handle")
        return self._file

    @property
    def fp(self) -> int:
        return self.tell()

    def tell(self) -> int:
        return self._check_open().tell()

    def seek(self, pos: int) -> None:
        if pos < 0:
            raise HandleError("Cannot seek to a negative offset")
        self._check_open().seek(pos)

    def read(self, size: int = -1) -> bytes:
        data = self._check_open().read(size)
        self.bytes_fetched += len(data)
        return data

    def readinto(self, buffer, offset: int = 0, length: int | None = None) -> int:
        target = window(buffer, offset, length)
        count = self._check_open().readinto(target) or 0
        self.bytes_fetched += count
        return count

    def write(self, data, offset: int = 0, length: int | None = None) -> None:
        f = self._check_open()
        if self.mode != "rw":
            raise ReadOnlyHandleError(f"{self.name} was opened read-only")
        f.write(window(data, offset, length))

    def fetch(self, start: int, length: int) -> bytes:
        """Return exactly `length` bytes starting at absolute offset `start`."""
        return fetch_exact(self, start, length)

    def read_struct(self, fmt: str) -> tuple:
        return read_struct(self, fmt)

    def set_byte_order(self, order: str) -> None:
        self.byte_order = check_byte_order(order)

    def length(self) -> int:
        f = self._check_open()
        if self.mode == "rw":
            f.flush()
        try:
            return os.fstat(f.fileno()).st_size
        except (io.UnsupportedOperation, OSError, AttributeError):
            current = f.tell()
            end = f.seek(0, 2)
            f.seek(current)
            return end

    def set_length(self, size: int) -> None:
        if self.mode != "rw":
            raise ReadOnlyHandleError(f"{self.name} was opened read-only")
        self._check_open().truncate(size)

    def exists(self) -> bool:
        return self._file is not None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self):
        """Close the file if we opened it."""
        if self._should_close_file and self._file is not None:
            self._file.close()
        self._file = None

    def __repr__(self):
        return f"FileHandle({self.name!r}, mode={self.mode!r})"


class BytesHandle:
    """Handle over an in-memory byte array; grows when written past its end."""

    def __init__(self, data: Union[bytes, bytearray] = b"", writable: bool = True):
        self._data = bytearray(data)
        self._pos = 0
        self._closed = False
        self.writable = writable
        self.byte_order = "big"
        self.bytes_fetched = 0

    def _check_open(self):
        if self._closed:
            raise HandleClosedError("I/O operation on closed handle")

    @property
    def fp(self) -> int:
        return self._pos

    def tell(self) -> int:
        self._check_open()
        return self._pos

    def seek(self, pos: int) -> None:
        self._check_open()
        if pos < 0:
            raise HandleError("Cannot seek to a negative offset")
        self._pos = pos

    def read(self, size: int = -1) -> bytes:
        self._check_open()
        end = len(self._data) if size is None or size < 0 else self._pos + size
        data = bytes(self._data[self._pos:end])
        self._pos += len(data)
        self.bytes_fetched += len(data)
        return data

    def readinto(self, buffer, offset: int = 0, length: int | None = None) -> int:
        target = window(buffer, offset, length)
        data = self.read(len(target))
        target[:len(data)] = data
        return len(data)

    def write(self, data, offset: int = 0, length: int | None = None) -> None:
        self._check_open()
        if not self.writable:
            raise ReadOnlyHandleError("byte array handle is read-only")
        chunk = window(data, offset, length)
        end = self._pos + len(chunk)
        if self._pos > len(self._data):
            self._data.extend(b"\x00" * (self._pos - len(self._data)))
        self._data[self._pos:end] = chunk
        self._pos = end

    def fetch(self, start: int, length: int) -> bytes:
        """Return exactly `length` bytes starting at absolute offset `start`."""
        return fetch_exact(self, start, length)

    def read_struct(self, fmt: str) -> tuple:
        return read_struct(self, fmt)

    def set_byte_order(self, order: str) -> None:
        self.byte_order = check_byte_order(order)

    def length(self) -> int:
        return len(self._data)

    def getvalue(self) -> bytes:
        return bytes(self._data)

    def exists(self) -> bool:
        return True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self):
        self._closed = True


def open_local_handle(source: Union[Path, str, BinaryIO], writable: bool = False):
    """Create a handle over a local path or binary file object."""
    if isinstance(source, (io.BytesIO, bytes, bytearray)):
        data = source.getvalue() if isinstance(source, io.BytesIO) else source
        return BytesHandle(data, writable=writable)
    return FileHandle(source, "rw" if writable else "r")
