"""Read-only handle over objects in S3-compatible storage using boto3."""

from __future__ import annotations
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import unquote, urlsplit

import boto3
from botocore import UNSIGNED
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ..core.config import Settings
from ..core.model import (DelayedNotFoundError, Fault, HandleError, InvalidIdentifierError,
                          LookupResult, ReadOnlyHandleError, Ready)
from .base import check_byte_order, fetch_exact, read_struct
from .stream import SequentialStreamAdapter

logger = logging.getLogger(__name__)

DEFAULT_S3_PROTOCOL = "https"
S3_MAX_FORWARD_SEEK = 1024 * 1024  # 1 MiB

SCHEME_PATTERN = re.compile(r"s3(\+[A-Za-z0-9]+)?://.*", re.DOTALL)


def can_handle_scheme(identifier: str) -> bool:
    """Return True if `identifier` uses the s3 or s3+<transport> scheme."""
    return SCHEME_PATTERN.fullmatch(identifier) is not None


def _host_from_netloc(netloc: str) -> str:
    """Host part of `netloc` with its case kept (``hostname`` lowercases it)."""
    hostinfo = netloc.rpartition("@")[2]
    if hostinfo.startswith("["):
        return hostinfo[1:hostinfo.index("]")]
    return hostinfo.partition(":")[0]


@dataclass(slots=True, frozen=True)
class ObjectReference:
    server: str                   # protocol://host
    port: int                     # 0 = client default
    bucket: Optional[str]
    key: Optional[str]
    access_key: Optional[str] = None
    secret_key: Optional[str] = None

    @classmethod
    def parse(cls, identifier: str) -> "ObjectReference":
        try:
            parts = urlsplit(identifier)
            port = parts.port or 0
            host = _host_from_netloc(parts.netloc) if parts.hostname else None
        except ValueError as e:
            raise InvalidIdentifierError(f"Invalid URI {identifier}: {e}") from e
        if not parts.scheme or not host:
            raise InvalidIdentifierError(f"Invalid URI {identifier}: no host")

        scheme = parts.scheme
        if scheme == "s3":
            protocol = DEFAULT_S3_PROTOCOL
        elif scheme.startswith("s3+"):
            protocol = scheme[3:]
        else:
            protocol = scheme
        if ":" in host:
            host = f"[{host}]"

        # Leading / means the first element is always ""
        pathparts = (parts.path or "/").split("/", 2)
        bucket = pathparts[1] if len(pathparts) > 1 and pathparts[1] else None
        key = pathparts[2] if len(pathparts) > 2 and pathparts[2] else None

        access_key = unquote(parts.username) if parts.username is not None else None
        secret_key = unquote(parts.password) if parts.password is not None else None
        return cls(f"{protocol}://{host}", port, bucket, key, access_key, secret_key)

    @property
    def endpoint_url(self) -> str:
        return f"{self.server}:{self.port}" if self.port else self.server

    @property
    def cache_key(self) -> str:
        return "/".join([self.server.replace("://", "/"), str(self.port),
                         str(self.bucket), str(self.key)])

    def __str__(self):
        return f"server:{self.server} port:{self.port} bucket:{self.bucket} path:{self.key}"


def make_s3_client(reference: ObjectReference, settings: Settings):
    """Create a boto3 client for the endpoint named by `reference`.

    Embedded credentials are used for signed requests; without them requests
    go out unsigned so public buckets can be read anonymously.
    """
    client_kwargs = {
        'service_name': 's3',
        'endpoint_url': reference.endpoint_url,
        'region_name': settings.s3_region,
    }
    if reference.access_key:
        client_kwargs['aws_access_key_id'] = reference.access_key
        client_kwargs['aws_secret_access_key'] = reference.secret_key or ""
        signature = 's3v4'
    else:
        signature = UNSIGNED
    client_kwargs['config'] = Config(signature_version=signature, s3={'addressing_style': 'path'})
    client_kwargs.update(settings.extra_s3_client_args)
    return boto3.client(**client_kwargs)


class ObjectStoreHandle:
    """Read-only random access to one object (or bucket) in S3-compatible storage.

    The remote lookup runs at construction. When it fails the failure is kept
    and replayed as DelayedNotFoundError by every operation that needs the
    object, while `exists()` simply reports False.
    """

    def __init__(self, identifier: str, initialize: bool = True,
                 settings: Optional[Settings] = None, client=None):
        self.identifier = identifier
        self.reference = ObjectReference.parse(identifier)
        self.settings = settings or Settings()
        self.byte_order = "big"
        self._client = client
        self._state: LookupResult = Fault(HandleError("handle was not initialized"))
        self._stream = SequentialStreamAdapter(self._open_stream, S3_MAX_FORWARD_SEEK)
        if initialize:
            self._state = self._lookup()

    # --- accessors ---
    @property
    def server(self) -> str:
        return self.reference.server

    @property
    def port(self) -> int:
        return self.reference.port

    @property
    def bucket(self) -> Optional[str]:
        return self.reference.bucket

    @property
    def path(self) -> Optional[str]:
        return self.reference.key

    @property
    def cache_key(self) -> str:
        return self.reference.cache_key

    @property
    def fp(self) -> int:
        return self._stream.fp

    @property
    def mark(self) -> int:
        return self._stream.mark

    @property
    def bytes_fetched(self) -> int:
        return self._stream.bytes_fetched

    @property
    def reconnects(self) -> int:
        return self._stream.reconnects

    # --- remote calls ---
    def _get_client(self):
        if self._client is None:
            self._client = make_s3_client(self.reference, self.settings)
        return self._client

    def _lookup(self) -> LookupResult:
        ref = self.reference
        try:
            if ref.bucket is None:
                raise HandleError("bucket is null")
            client = self._get_client()
            if ref.key is None:
                client.head_bucket(Bucket=ref.bucket)
                logger.debug("isBucket? %s True", self)
                return Ready(length=None, is_bucket=True)
            stat = client.head_object(Bucket=ref.bucket, Key=ref.key)
            return Ready(length=int(stat["ContentLength"]))
        except (ClientError, BotoCoreError, ValueError, HandleError) as e:
            logger.debug("lookup failed for %s: %s", self, e)
            return Fault(e)

    def _require_object(self, what: str) -> Ready:
        state = self._state
        if isinstance(state, Fault):
            state.raise_delayed(f"{what} failed for {self.identifier}")
        if state.is_bucket:
            raise DelayedNotFoundError(f"{what} failed for {self.identifier}: not an object")
        return state

    def _open_stream(self, offset: int):
        state = self._require_object("open")
        if state.length is not None and offset >= state.length:
            return _EmptyBody()
        kwargs = {'Bucket': self.bucket, 'Key': self.path}
        if offset > 0:
            kwargs['Range'] = f"bytes={offset}-"
        try:
            response = self._get_client().get_object(**kwargs)
        except (ClientError, BotoCoreError) as e:
            raise HandleError(f"failed to load s3: {self.identifier}\n\t{self}") from e
        return response["Body"]

    def reset_stream(self, offset: int = 0) -> None:
        """Re-issue the GET starting at `offset`, replacing the current stream."""
        self._require_object("reset")
        logger.debug("Resetting %s at %d", self, offset)
        self._stream.reset(offset)

    def download(self, destination: Path) -> None:
        if self.path is None:
            raise HandleError("Download path=None not allowed")
        destination = Path(destination)
        try:
            client = self._get_client()
            client.head_object(Bucket=self.bucket, Key=self.path)
            destination.parent.mkdir(parents=True, exist_ok=True)
            client.download_file(self.bucket, self.path, str(destination))
        except (ClientError, BotoCoreError, ValueError, OSError) as e:
            raise HandleError(f"Download failed {self}") from e

    # --- handle API ---
    def is_bucket(self) -> bool:
        state = self._state
        return isinstance(state, Ready) and state.is_bucket and self.path is None

    def exists(self) -> bool:
        return isinstance(self._state, Ready)

    def length(self) -> int:
        return self._require_object("length").length

    def tell(self) -> int:
        return self._stream.fp

    def seek(self, pos: int) -> None:
        self._require_object("seek")
        diff = pos - self._stream.fp
        if diff < 0 or diff > S3_MAX_FORWARD_SEEK:
            self._stream.reset(pos)
        else:
            self._stream.seek(pos)

    def read(self, size: int = -1) -> bytes:
        self._require_object("read")
        return self._stream.read(size)

    def readinto(self, buffer, offset: int = 0, length: Optional[int] = None) -> int:
        self._require_object("read")
        return self._stream.readinto(buffer, offset, length)

    def write(self, data, offset: int = 0, length: Optional[int] = None) -> None:
        raise ReadOnlyHandleError(f"{self.identifier} is read-only")

    def fetch(self, start: int, length: int) -> bytes:
        """Return exactly `length` bytes starting at absolute offset `start`."""
        return fetch_exact(self, start, length)

    def read_struct(self, fmt: str) -> tuple:
        return read_struct(self, fmt)

    def set_byte_order(self, order: str) -> None:
        self.byte_order = check_byte_order(order)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self):
        self._stream.close()

    def __str__(self):
        return str(self.reference)

    def __repr__(self):
        return f"ObjectStoreHandle({self.identifier!r})"


class _EmptyBody:
    def read(self, size: int = -1) -> bytes:
        return b""

    def close(self):
        pass


def cache_object(identifier: str, settings: Settings, client=None) -> str:
    """Download an object below `settings.remote_cache_root` unless already there.

    Returns the local path of the cached copy.
    """
    root = settings.remote_cache_root
    if root is None:
        raise HandleError("Remote cache root dir is not set")
    handle = ObjectStoreHandle(identifier, initialize=False, settings=settings, client=client)
    root_path = Path(root).resolve()
    cache_path = root_path.joinpath(*handle.cache_key.split("/"))
    if root_path not in cache_path.resolve().parents:
        raise HandleError(f"Cache path for {identifier} escapes {root_path}")

    if cache_path.exists():
        logger.debug("Found existing cache for %s at %s", handle, cache_path)
    else:
        logger.debug("Caching %s to %s", handle, cache_path)
        handle.download(cache_path)
        logger.debug("Downloaded %s", cache_path)
    handle.close()
    return str(cache_path)
