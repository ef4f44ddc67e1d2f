"""Tests for compressed local files."""

import bz2
import gzip
import zipfile

import pytest

from fasthandle.core.model import HandleError, ReadOnlyHandleError
from fasthandle.io.archive import ArchiveHandle, archive_kind, is_archive, open_archive_handle

PAYLOAD = b"header line\n" + bytes(range(256)) * 64


@pytest.fixture
def archives(tmp_path):
    gz = tmp_path / "data.bin.gz"
    gz.write_bytes(gzip.compress(PAYLOAD))
    bz = tmp_path / "data.bin.bz2"
    bz.write_bytes(bz2.compress(PAYLOAD))
    zp = tmp_path / "data.zip"
    with zipfile.ZipFile(zp, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        zf.writestr("data.bin", PAYLOAD)
        zf.writestr("other.bin", b"ignored")
    plain = tmp_path / "data.bin"
    plain.write_bytes(PAYLOAD)
    return {"gzip": gz, "bzip2": bz, "zip": zp, "plain": plain}


class TestDetection:
    """Test magic-byte sniffing."""

    def test_kinds(self, archives):
        assert archive_kind(archives["gzip"]) == "gzip"
        assert archive_kind(archives["bzip2"]) == "bzip2"
        assert archive_kind(archives["zip"]) == "zip"
        assert archive_kind(archives["plain"]) is None
        assert is_archive(archives["zip"])
        assert not is_archive(archives["plain"])

    def test_missing_file(self, tmp_path):
        assert archive_kind(tmp_path / "missing") is None


class TestArchiveHandle:
    """Test reading decompressed bytes."""

    @pytest.mark.parametrize("kind", ["gzip", "bzip2", "zip"])
    def test_read_and_seek(self, archives, kind):
        with open_archive_handle(archives[kind]) as handle:
            assert handle.kind == kind
            assert handle.length() == len(PAYLOAD)
            assert handle.read(11) == PAYLOAD[:11]
            handle.seek(5000)
            assert handle.read(8) == PAYLOAD[5000:5008]
            assert handle.reconnects == 0
            handle.seek(3)
            assert handle.read(4) == PAYLOAD[3:7]
            assert handle.reconnects == 1

    def test_fetch(self, archives):
        with ArchiveHandle(archives["gzip"]) as handle:
            assert handle.fetch(100, 10) == PAYLOAD[100:110]
            with pytest.raises(HandleError):
                handle.fetch(len(PAYLOAD) - 1, 2)

    def test_read_only(self, archives):
        with ArchiveHandle(archives["zip"]) as handle:
            with pytest.raises(ReadOnlyHandleError):
                handle.write(b"x")

    def test_not_an_archive(self, archives):
        with pytest.raises(HandleError):
            ArchiveHandle(archives["plain"])

    def test_empty_zip(self, tmp_path):
        path = tmp_path / "empty.zip"
        with zipfile.ZipFile(path, "w") as zf:
            zf.writestr("folder/", b"")
        with pytest.raises(HandleError, match="no entries"):
            ArchiveHandle(path)
