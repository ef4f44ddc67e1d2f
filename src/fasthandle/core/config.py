"""Runtime settings shared by the resolver and the remote handles."""

from __future__ import annotations
import os
from dataclasses import dataclass, field, replace

DEFAULT_CACHE_TTL = 60.0 * 60.0  # one hour


def _env_flag(value: str | None) -> bool:
    return value is not None and value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(slots=True)
class Settings:
    cache_listings: bool = False
    cache_ttl: float = DEFAULT_CACHE_TTL      # seconds
    remote_cache_root: str | None = None      # local mirror for s3:// objects
    s3_region: str = "us-east-1"
    http_timeout: float = 30.0
    extra_s3_client_args: dict = field(default_factory=dict)

    @classmethod
    def from_env(cls, environ=None) -> "Settings":
        """Build settings from ``FASTHANDLE_*`` environment variables."""
        env = os.environ if environ is None else environ
        settings = cls()
        if "FASTHANDLE_CACHE_LISTINGS" in env:
            settings.cache_listings = _env_flag(env["FASTHANDLE_CACHE_LISTINGS"])
        if env.get("FASTHANDLE_CACHE_TTL"):
            settings.cache_ttl = float(env["FASTHANDLE_CACHE_TTL"])
        if env.get("FASTHANDLE_REMOTE_CACHE_ROOT"):
            settings.remote_cache_root = env["FASTHANDLE_REMOTE_CACHE_ROOT"]
        if env.get("FASTHANDLE_S3_REGION"):
            settings.s3_region = env["FASTHANDLE_S3_REGION"]
        if env.get("FASTHANDLE_HTTP_TIMEOUT"):
            settings.http_timeout = float(env["FASTHANDLE_HTTP_TIMEOUT"])
        return settings

    def copy(self, **changes) -> "Settings":
        changes.setdefault("extra_s3_client_args", dict(self.extra_s3_client_args))
        return replace(self, **changes)
