"""Read-only handles over gzip, bzip2 and zip compressed local files."""

import bz2
import gzip
import logging
import os
import zipfile
from typing import Optional

from ..core.model import HandleError, ReadOnlyHandleError
from .base import check_byte_order, fetch_exact, read_struct
from .stream import SequentialStreamAdapter

logger = logging.getLogger(__name__)

# (kind, magic bytes) checked at offset 0
_SIGNATURES = (
    ("zip", b"PK\x03\x04"),
    ("gzip", b"\x1f\x8b"),
    ("bzip2", b"BZh"),
)


def archive_kind(path) -> Optional[str]:
    """Return "zip", "gzip" or "bzip2" when `path` starts with that magic, else None."""
    try:
        with open(path, "rb") as f:
            head = f.read(4)
    except OSError:
        return None
    for kind, magic in _SIGNATURES:
        if head.startswith(magic):
            return kind
    return None


def is_archive(path) -> bool:
    return archive_kind(path) is not None


class ArchiveHandle:
    """Decompressed view of a local archive; zip files expose their first entry."""

    def __init__(self, path, kind: Optional[str] = None):
        self.name = os.fspath(path)
        self.kind = kind or archive_kind(self.name)
        if self.kind is None:
            raise HandleError(f"{self.name} is not a zip, gzip or bzip2 file")
        self.byte_order = "big"
        self._length: Optional[int] = None
        self._zip: Optional[zipfile.ZipFile] = None
        self._entry: Optional[zipfile.ZipInfo] = None
        if self.kind == "zip":
            try:
                self._zip = zipfile.ZipFile(self.name)
            except zipfile.BadZipFile as e:
                raise HandleError(f"Cannot open zip file {self.name}: {e}") from e
            entries = [info for info in self._zip.infolist() if not info.is_dir()]
            if not entries:
                self._zip.close()
                raise HandleError(f"{self.name} has no entries")
            self._entry = entries[0]
            self._length = self._entry.file_size
        # reopening means decompressing again from the start, so always skip forward
        self._stream = SequentialStreamAdapter(self._open_stream, None)

    def _decompressor(self):
        if self.kind == "zip":
            return self._zip.open(self._entry)
        if self.kind == "gzip":
            return gzip.open(self.name, "rb")
        return bz2.open(self.name, "rb")

    def _open_stream(self, offset: int):
        stream = self._decompressor()
        remaining = offset
        while remaining > 0:
            chunk = stream.read(min(remaining, 64 * 1024))
            if not chunk:
                break
            remaining -= len(chunk)
        return stream

    @property
    def fp(self) -> int:
        return self._stream.fp

    @property
    def reconnects(self) -> int:
        return self._stream.reconnects

    def tell(self) -> int:
        return self._stream.fp

    def seek(self, pos: int) -> None:
        self._stream.seek(pos)

    def read(self, size: int = -1) -> bytes:
        try:
            return self._stream.read(size)
        except (OSError, EOFError, zipfile.BadZipFile) as e:
            raise HandleError(f"Cannot decompress {self.name}: {e}") from e

    def readinto(self, buffer, offset: int = 0, length: Optional[int] = None) -> int:
        return self._stream.readinto(buffer, offset, length)

    def write(self, data, offset: int = 0, length: Optional[int] = None) -> None:
        raise ReadOnlyHandleError(f"{self.name} is a compressed file and read-only")

    def fetch(self, start: int, length: int) -> bytes:
        """Return exactly `length` bytes starting at absolute offset `start`."""
        return fetch_exact(self, start, length)

    def read_struct(self, fmt: str) -> tuple:
        return read_struct(self, fmt)

    def set_byte_order(self, order: str) -> None:
        self.byte_order = check_byte_order(order)

    def length(self) -> int:
        """Uncompressed size; gzip and bzip2 need one full decompression pass."""
        if self._length is None:
            total = 0
            with self._decompressor() as stream:
                while chunk := stream.read(1024 * 1024):
                    total += len(chunk)
            self._length = total
        return self._length

    def exists(self) -> bool:
        return True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self):
        self._stream.close()
        if self._zip is not None:
            self._zip.close()
            self._zip = None

    def __repr__(self):
        return f"ArchiveHandle({self.name!r}, kind={self.kind!r})"


def open_archive_handle(path) -> ArchiveHandle:
    """Create a handle over a compressed local file."""
    return ArchiveHandle(path)
