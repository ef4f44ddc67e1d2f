"""Tests for errors, settings and the identifier map."""

import pytest

from fasthandle.core.config import DEFAULT_CACHE_TTL, Settings
from fasthandle.core.idmap import IdentifierMap
from fasthandle.core.model import (DelayedNotFoundError, Fault, HandleClosedError, HandleError,
                                   ReadOnlyHandleError, Ready)
from fasthandle.io.local import BytesHandle


class TestErrors:
    """Test the exception hierarchy."""

    def test_handle_errors_are_ioerrors(self):
        for cls in (HandleError, HandleClosedError, ReadOnlyHandleError, DelayedNotFoundError):
            assert issubclass(cls, IOError)

    def test_fault_replays_cause(self):
        cause = ConnectionError("no route")
        fault = Fault(cause)

        with pytest.raises(DelayedNotFoundError) as excinfo:
            fault.raise_delayed("length failed")

        assert excinfo.value.cause is cause
        assert excinfo.value.__cause__ is cause
        assert "no route" in str(excinfo.value)

    def test_ready_defaults(self):
        assert Ready(length=10).is_bucket is False
        assert Ready(length=None, is_bucket=True).length is None


class TestSettings:
    """Test settings defaults and environment parsing."""

    def test_defaults(self):
        settings = Settings()
        assert settings.cache_listings is False
        assert settings.cache_ttl == DEFAULT_CACHE_TTL == 3600.0
        assert settings.remote_cache_root is None

    def test_from_env(self):
        settings = Settings.from_env({
            "FASTHANDLE_CACHE_LISTINGS": "yes",
            "FASTHANDLE_CACHE_TTL": "12.5",
            "FASTHANDLE_REMOTE_CACHE_ROOT": "/tmp/cache",
            "FASTHANDLE_S3_REGION": "eu-west-1",
            "FASTHANDLE_HTTP_TIMEOUT": "5",
        })
        assert settings.cache_listings is True
        assert settings.cache_ttl == 12.5
        assert settings.remote_cache_root == "/tmp/cache"
        assert settings.s3_region == "eu-west-1"
        assert settings.http_timeout == 5.0

    def test_from_env_false_flag(self):
        assert Settings.from_env({"FASTHANDLE_CACHE_LISTINGS": "0"}).cache_listings is False

    def test_copy_is_independent(self):
        settings = Settings()
        other = settings.copy(cache_ttl=1.0)
        other.cache_listings = True
        assert settings.cache_ttl == 3600.0
        assert settings.cache_listings is False

    def test_copy_does_not_share_client_args(self):
        settings = Settings(extra_s3_client_args={"verify": False})
        other = settings.copy()
        other.extra_s3_client_args["verify"] = True
        assert settings.extra_s3_client_args == {"verify": False}


class TestIdentifierMap:
    """Test identifier mapping semantics."""

    def test_string_mapping(self):
        id_map = IdentifierMap()
        id_map.map("alias", "/data/real.tif")
        assert id_map.get_id("alias") == "/data/real.tif"
        assert id_map.get_handle("alias") is None
        assert "alias" in id_map

    def test_identity_fallback(self):
        id_map = IdentifierMap()
        assert id_map.get_id("unmapped") == "unmapped"
        assert id_map.get("unmapped") is None

    def test_handle_mapping(self):
        id_map = IdentifierMap()
        handle = BytesHandle(b"abc")
        id_map.map("mem", handle)
        assert id_map.get_handle("mem") is handle
        # a handle is not a replacement name
        assert id_map.get_id("mem") == "mem"

    def test_none_removes_entry(self):
        id_map = IdentifierMap()
        id_map.map("alias", "target")
        id_map.map("alias", None)
        assert "alias" not in id_map
        assert len(id_map) == 0

    def test_empty_string_removes_entry(self):
        id_map = IdentifierMap()
        id_map.map("alias", "target")
        id_map.map("alias", "")
        assert "alias" not in id_map

    def test_none_id_ignored(self):
        id_map = IdentifierMap()
        id_map.map(None, "target")
        assert len(id_map) == 0

    def test_clear(self):
        id_map = IdentifierMap()
        id_map.map("a", "b")
        id_map.map("c", BytesHandle())
        id_map.clear()
        assert list(id_map) == []

    def test_maps_are_not_shared(self):
        first, second = IdentifierMap(), IdentifierMap()
        first.map("alias", "target")
        assert second.get_id("alias") == "alias"
