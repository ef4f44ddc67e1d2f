"""Tests for local file and in-memory handles."""

import io

import pytest

from fasthandle.core.model import HandleClosedError, HandleError, ReadOnlyHandleError
from fasthandle.io.base import SeekableHandle
from fasthandle.io.local import BytesHandle, FileHandle, open_local_handle


@pytest.fixture
def data_file(tmp_path):
    path = tmp_path / "data.bin"
    path.write_bytes(b"0123456789")
    return path


class TestFileHandle:
    """Test the local file handle."""

    def test_basic_read_and_seek(self, data_file):
        """Test reads advance the offset and seek repositions it."""
        with FileHandle(data_file) as handle:
            assert handle.read(5) == b"01234"
            assert handle.tell() == 5
            handle.seek(2)
            assert handle.read(3) == b"234"
            assert handle.fp == 5
            assert handle.bytes_fetched == 8

    def test_read_at_eof(self, data_file):
        with FileHandle(data_file) as handle:
            handle.seek(10)
            assert handle.read(4) == b""

    def test_readinto_window(self, data_file):
        buffer = bytearray(8)
        with FileHandle(data_file) as handle:
            count = handle.readinto(buffer, 2, 4)
        assert count == 4
        assert buffer == b"\x00\x000123\x00\x00"

    def test_fetch(self, data_file):
        """Test exact window fetches."""
        with FileHandle(data_file) as handle:
            assert handle.fetch(6, 4) == b"6789"
            with pytest.raises(HandleError, match="Not enough data"):
                handle.fetch(8, 4)
            with pytest.raises(HandleError):
                handle.fetch(-1, 2)

    def test_length_and_exists(self, data_file):
        with FileHandle(data_file) as handle:
            assert handle.length() == 10
            assert handle.exists()

    def test_read_only_rejects_write(self, data_file):
        with FileHandle(data_file) as handle:
            with pytest.raises(ReadOnlyHandleError):
                handle.write(b"x")

    def test_read_write(self, data_file):
        """Test writing through an "rw" handle."""
        with FileHandle(data_file, "rw") as handle:
            handle.seek(8)
            handle.write(b"--abcdef--", 2, 6)
            assert handle.length() == 14
        assert data_file.read_bytes() == b"01234567abcdef"

    def test_rw_creates_file(self, tmp_path):
        path = tmp_path / "new.bin"
        with FileHandle(path, "rw") as handle:
            handle.write(b"hello")
        assert path.read_bytes() == b"hello"

    def test_set_length(self, data_file):
        with FileHandle(data_file, "rw") as handle:
            handle.set_length(4)
        assert data_file.read_bytes() == b"0123"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            FileHandle(tmp_path / "missing.bin")

    def test_invalid_mode(self, data_file):
        with pytest.raises(ValueError):
            FileHandle(data_file, "w")

    def test_closed_handle(self, data_file):
        handle = FileHandle(data_file)
        handle.close()
        assert not handle.exists()
        with pytest.raises(HandleClosedError):
            handle.read(1)

    def test_binary_io_source(self):
        """Test a caller-owned file object is not closed."""
        bio = io.BytesIO(b"abcdef")
        handle = FileHandle(bio)
        assert handle.fetch(1, 3) == b"bcd"
        assert handle.length() == 6
        handle.close()
        assert not bio.closed

    def test_byte_order(self, tmp_path):
        """Test struct decoding follows the handle's byte order."""
        path = tmp_path / "ints.bin"
        path.write_bytes(b"\x00\x01\x00\x01")
        with FileHandle(path) as handle:
            assert handle.read_struct("H") == (1,)
            handle.set_byte_order("little")
            assert handle.read_struct("H") == (256,)
            with pytest.raises(ValueError):
                handle.set_byte_order("middle")

    def test_protocol(self, data_file):
        with FileHandle(data_file) as handle:
            assert isinstance(handle, SeekableHandle)


class TestBytesHandle:
    """Test the in-memory handle."""

    def test_read_and_seek(self):
        handle = BytesHandle(b"0123456789")
        assert handle.read(3) == b"012"
        handle.seek(7)
        assert handle.read() == b"789"
        assert handle.read(1) == b""

    def test_write_grows(self):
        """Test writing past the end zero-fills the gap."""
        handle = BytesHandle(b"ab")
        handle.seek(4)
        handle.write(b"cd")
        assert handle.getvalue() == b"ab\x00\x00cd"
        assert handle.length() == 6

    def test_overwrite(self):
        handle = BytesHandle(b"abcdef")
        handle.seek(1)
        handle.write(b"XY")
        assert handle.getvalue() == b"aXYdef"
        assert handle.tell() == 3

    def test_read_only(self):
        handle = BytesHandle(b"abc", writable=False)
        with pytest.raises(ReadOnlyHandleError):
            handle.write(b"x")

    def test_negative_seek(self):
        with pytest.raises(HandleError):
            BytesHandle().seek(-1)

    def test_closed(self):
        handle = BytesHandle(b"abc")
        handle.close()
        with pytest.raises(HandleClosedError):
            handle.read(1)


class TestFactory:
    """Test open_local_handle dispatch."""

    def test_path(self, data_file):
        handle = open_local_handle(str(data_file))
        assert isinstance(handle, FileHandle)
        handle.close()

    def test_bytes_io(self):
        handle = open_local_handle(io.BytesIO(b"abc"))
        assert isinstance(handle, BytesHandle)
        assert handle.read() == b"abc"

    def test_writable(self, tmp_path):
        handle = open_local_handle(tmp_path / "out.bin", writable=True)
        assert handle.mode == "rw"
        handle.close()
