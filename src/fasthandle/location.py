"""Identifier resolution: one addressing scheme over local paths, HTTP(S) and S3.

A `LocationResolver` turns identifier strings into handles and `Location`
objects. It owns the identifier map and the directory listing cache, and is
meant to be owned by one worker; create one resolver per thread or task.
"""

from __future__ import annotations
import logging
import os
import posixpath
import re
import stat
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, NamedTuple, Optional, Union
from urllib.parse import SplitResult, urlsplit, urlunsplit

from .core.config import DEFAULT_CACHE_TTL, Settings
from .core.idmap import IdentifierMap
from .core.model import HandleError, InvalidIdentifierError
from .io.archive import ArchiveHandle, archive_kind
from .io.http import HTTPHandle, fetch_text
from .io.local import FileHandle
from .io.s3 import ObjectStoreHandle, cache_object, can_handle_scheme

logger = logging.getLogger(__name__)

IS_WINDOWS = os.name == "nt"

URL_PATTERN = re.compile(r"[A-Za-z0-9]+(\+[A-Za-z0-9]+)?://.*", re.DOTALL)
# getParent has gone past the root of a URL
URL_ABOVE_PARENT = re.compile(r"[A-Za-z0-9]+(\+[A-Za-z0-9]+)?:/")
# characters never allowed unescaped in a URI
_INVALID_URI_CHARS = re.compile(r'[\s<>"{}|\\^`]')

FILE, HTTP, S3, URL = "file", "http", "s3", "url"


def _parse_uri(identifier: str) -> SplitResult:
    """Split `identifier` as a URI, raising ValueError for invalid syntax."""
    if _INVALID_URI_CHARS.search(identifier):
        raise ValueError(f"illegal character in URI {identifier!r}")
    parts = urlsplit(identifier)
    parts.port  # validates the authority
    return parts


def classify_identifier(identifier: str) -> str:
    """Return "s3", "http", "url" (other schemes) or "file" for `identifier`."""
    if not URL_PATTERN.fullmatch(identifier):
        return FILE
    try:
        parts = _parse_uri(identifier)
    except ValueError as e:
        # Some readers pass paths with URI-like characters that are not URIs
        logger.debug("Invalid URL: %s %s", identifier, e)
        return FILE
    if can_handle_scheme(identifier):
        return S3
    if parts.scheme in ("http", "https"):
        return HTTP
    return URL


def _normalize_path(path: str) -> str:
    """Remove dot segments from a URI path, keeping a trailing slash."""
    if not path:
        return path
    normalized = posixpath.normpath(path)
    if normalized == ".":
        normalized = ""
    if path.endswith(("/", "/.", "/..")) and not normalized.endswith("/"):
        normalized += "/"
    return normalized


class ListingEntry(NamedTuple):
    names: List[str]
    captured_at: float


class Location:
    """A file path or URL bound to the resolver that created it.

    Constructing a Location does no I/O; existence, size and listings are
    looked up when asked for.
    """

    def __init__(self, resolver: "LocationResolver", parent: Optional[str], child: str):
        self._resolver = resolver
        self._uri: Optional[SplitResult] = None
        self.kind = FILE

        if URL_PATTERN.fullmatch(child) or parent is None:
            pathname = child
        elif URL_PATTERN.fullmatch(parent) and classify_identifier(parent) != FILE:
            pathname = parent.rstrip("/") + "/" + child
        else:
            pathname = parent + os.sep + child

        self.identifier = pathname
        self._target = resolver.get_mapped_id(pathname)
        kind = classify_identifier(self._target)
        if kind != FILE:
            self._uri = _parse_uri(self._target)
            self.kind = kind
        logger.debug("Location(%s, %s) -> %s", parent, child, self.kind)

    @property
    def is_url(self) -> bool:
        return self._uri is not None

    # --- naming ---
    @property
    def absolute_path(self) -> str:
        if self._uri is not None:
            return urlunsplit(self._uri._replace(path=_normalize_path(self._uri.path)))
        return os.path.abspath(self._target)

    def absolute(self) -> "Location":
        return self._resolver.location(self.absolute_path)

    @property
    def canonical_path(self) -> str:
        return self.absolute_path if self._uri is not None else os.path.realpath(self._target)

    def canonical(self) -> "Location":
        return self._resolver.location(self.canonical_path)

    @property
    def name(self) -> str:
        path = self._uri.path if self._uri is not None else self._target
        stripped = path.rstrip("/" + os.sep)
        return os.path.basename(stripped) if stripped else ""

    @property
    def parent(self) -> Optional[str]:
        if self._uri is not None:
            abs_path = self.absolute_path
            abs_path = abs_path[:abs_path.rfind("/")]
            if URL_ABOVE_PARENT.fullmatch(abs_path):
                return None
            return abs_path
        path = self._target.rstrip(os.sep) or self._target
        parent = os.path.dirname(path)
        if not parent or parent == path:
            return None
        return parent

    def parent_location(self) -> Optional["Location"]:
        parent = self.parent
        return None if parent is None else self._resolver.location(parent)

    @property
    def path(self) -> str:
        if self._uri is not None:
            return (self._uri.hostname or "") + self._uri.path
        return self._target

    def is_absolute(self) -> bool:
        return True if self._uri is not None else os.path.isabs(self._target)

    def to_url(self) -> str:
        if self._uri is not None:
            return self._uri.geturl()
        return Path(os.path.abspath(self._target)).as_uri()

    # --- lookups ---
    def exists(self) -> bool:
        if self._uri is not None:
            try:
                with self._resolver._probe(self._target) as handle:
                    return handle.exists()
            except (HandleError, InvalidIdentifierError, OSError) as e:
                logger.debug("Failed to retrieve content from URL %s: %s", self._target, e)
                return False
        if os.path.exists(self._target):
            return True
        if self._resolver.get_mapped_handle(self._target) is not None:
            return True
        mapped = self._resolver.get_mapped_id(self._target)
        return mapped is not None and os.path.exists(mapped)

    def is_directory(self) -> bool:
        if self.kind == S3:
            try:
                with self._resolver._probe(self._target) as handle:
                    return handle.is_bucket()
            except (HandleError, InvalidIdentifierError) as e:
                logger.debug("Bucket lookup failed for %s: %s", self._target, e)
                return False
        if self._uri is not None:
            return self.list() is not None
        return os.path.isdir(self._target)

    def is_file(self) -> bool:
        if self._uri is not None:
            return not self.is_directory() and self.exists()
        return os.path.isfile(self._target)

    def is_hidden(self) -> bool:
        if self._uri is not None:
            return False
        dot_file = self.name.startswith(".")
        if IS_WINDOWS and not dot_file:
            try:
                attributes = os.stat(self._target).st_file_attributes
            except (OSError, AttributeError):
                return False
            return bool(attributes & stat.FILE_ATTRIBUTE_HIDDEN)
        return dot_file

    def can_read(self) -> bool:
        if self._uri is not None:
            return self.is_directory() or self.is_file()
        return os.access(self._target, os.R_OK)

    def can_write(self) -> bool:
        if self._uri is not None:
            return False
        return os.access(self._target, os.W_OK)

    def length(self) -> int:
        """Size in bytes, 0 when it cannot be determined."""
        if self._uri is not None:
            try:
                with self._resolver._probe(self._target) as handle:
                    return handle.length()
            except (HandleError, InvalidIdentifierError, OSError) as e:
                logger.debug("Could not determine URL's content length %s: %s", self._target, e)
                return 0
        try:
            return os.path.getsize(self._target)
        except OSError:
            return 0

    def last_modified(self) -> int:
        """Modification time in epoch milliseconds, 0 when unknown."""
        if self.kind == HTTP:
            try:
                with self._resolver._probe(self._target) as handle:
                    return getattr(handle, "last_modified", 0)
            except (HandleError, OSError) as e:
                logger.debug("Could not determine URL's last modification time %s: %s", self._target, e)
                return 0
        if self._uri is not None:
            return 0
        try:
            return int(os.path.getmtime(self._target) * 1000)
        except OSError:
            return 0

    def list(self, hide_hidden: bool = False) -> Optional[List[str]]:
        return self._resolver.list(self, hide_hidden)

    def list_locations(self, hide_hidden: bool = False) -> Optional[List["Location"]]:
        names = self.list(hide_hidden)
        if names is None:
            return None
        base = self.absolute_path
        return [self._resolver.location(base, name).absolute() for name in names]

    def open(self, writable: bool = False):
        return self._resolver.resolve(self.identifier, writable=writable)

    # --- local file management ---
    def create_new_file(self) -> bool:
        if self._uri is not None:
            raise HandleError("Unimplemented")
        try:
            with open(self._target, "xb"):
                pass
        except FileExistsError:
            return False
        return True

    def mkdirs(self) -> bool:
        if self._uri is not None:
            return False
        try:
            os.makedirs(self._target)
        except OSError:
            return False
        return True

    def delete(self) -> bool:
        if self._uri is not None:
            return False
        try:
            if os.path.isdir(self._target):
                os.rmdir(self._target)
            else:
                os.remove(self._target)
        except OSError:
            return False
        return True

    def __eq__(self, other):
        if isinstance(other, Location):
            return self.absolute_path == other.absolute_path
        return self.absolute_path == str(other)

    def __hash__(self):
        return hash(self.absolute_path)

    def __str__(self):
        return self._uri.geturl() if self._uri is not None else self._target

    def __repr__(self):
        return f"Location({str(self)!r})"


class LocationResolver:
    """Resolves identifiers to handles and owns the per-worker mapping state."""

    def __init__(self, settings: Optional[Settings] = None,
                 id_map: Optional[IdentifierMap] = None, session=None):
        self.settings = (settings if settings is not None else Settings.from_env()).copy()
        self.id_map = id_map if id_map is not None else IdentifierMap()
        self._session = session
        self._listings: Dict[str, ListingEntry] = {}
        self._clock = time.monotonic

    # --- identifier map ---
    def map_id(self, identifier: str, filename: Optional[str]) -> None:
        self.id_map.map(identifier, filename)

    def map_handle(self, identifier: str, handle) -> None:
        self.id_map.map(identifier, handle)

    def get_mapped_id(self, identifier: str) -> str:
        return self.id_map.get_id(identifier)

    def get_mapped_handle(self, identifier: str):
        return self.id_map.get_handle(identifier)

    # --- cache control ---
    def cache_directory_listings(self, cache: bool) -> None:
        self.settings.cache_listings = cache

    def set_cache_directory_timeout(self, seconds: float) -> None:
        self.settings.cache_ttl = float(seconds)

    def clear_directory_listings_cache(self) -> None:
        self._listings.clear()

    def clean_stale_cache_entries(self) -> None:
        cutoff = self._clock() - self.settings.cache_ttl
        for key, entry in list(self._listings.items()):
            if entry.captured_at < cutoff:
                self._listings.pop(key, None)

    def reset(self) -> None:
        """Restore default cache settings and drop all cached and mapped state."""
        self.settings.cache_listings = False
        self.settings.cache_ttl = DEFAULT_CACHE_TTL
        self._listings.clear()
        self.id_map.clear()

    # --- handles ---
    def resolve(self, identifier: Union[str, os.PathLike], writable: bool = False,
                allow_archives: bool = True):
        """Return an open handle for `identifier`.

        A handle mapped to the identifier is returned as-is; the caller must
        not close it.
        """
        identifier = os.fspath(identifier)
        handle = self.id_map.get_handle(identifier)
        if handle is not None:
            logger.debug("resolve %s -> mapped %r", identifier, handle)
            return handle
        handle = self._open(self.id_map.get_id(identifier), writable, allow_archives)
        logger.debug("Created new handle %s -> %r", identifier, handle)
        return handle

    def _open(self, target: str, writable: bool, allow_archives: bool, use_cache: bool = True):
        if can_handle_scheme(target):
            if use_cache and self.settings.remote_cache_root is not None:
                return FileHandle(cache_object(target, self.settings), "r")
            return ObjectStoreHandle(target, settings=self.settings)
        if target.startswith(("http://", "https://")):
            return HTTPHandle(target, session=self._session, timeout=self.settings.http_timeout)
        if allow_archives and not writable:
            kind = archive_kind(target)
            if kind is not None:
                return ArchiveHandle(target, kind)
        return FileHandle(target, "rw" if writable else "r")

    @contextmanager
    def _probe(self, identifier: str) -> Iterator:
        """Yield a handle for a metadata lookup, closing it unless it is mapped."""
        mapped = self.id_map.get_handle(identifier)
        if mapped is not None:
            yield mapped
            return
        handle = self._open(self.id_map.get_id(identifier), False, False, use_cache=False)
        try:
            yield handle
        finally:
            handle.close()

    def check_valid_id(self, identifier: str) -> None:
        """Raise if `identifier` cannot be opened; a mapped handle is left open."""
        if self.id_map.get_handle(identifier) is not None:
            return
        handle = self.resolve(identifier)
        try:
            if not handle.exists():
                raise HandleError(f"{identifier} does not exist")
        finally:
            handle.close()

    # --- locations ---
    def location(self, path: Union[str, os.PathLike, Location],
                 child: Optional[str] = None) -> Location:
        """Build a Location from a path, or from a parent and a child name."""
        if isinstance(path, Location):
            path = path.absolute_path
        path = os.fspath(path)
        if child is None:
            return Location(self, None, path)
        return Location(self, path, child)

    def list(self, path: Union[str, os.PathLike, Location],
             hide_hidden: bool = False) -> Optional[List[str]]:
        """List the children of a directory, or None if it cannot be listed."""
        location = path if isinstance(path, Location) else self.location(path)
        key = location.absolute_path + str(hide_hidden)
        if self.settings.cache_listings:
            self.clean_stale_cache_entries()
            entry = self._listings.get(key)
            if entry is not None:
                logger.debug("listing cache hit for %s", key)
                return list(entry.names)

        result = self._list_uncached(location, hide_hidden)
        if result is not None and self.settings.cache_listings:
            self._listings[key] = ListingEntry(list(result), self._clock())
        logger.debug("list(%s) returning %s", location, None if result is None else len(result))
        return result

    def _list_uncached(self, location: Location, hide_hidden: bool) -> Optional[List[str]]:
        if location.kind == S3:
            # Only buckets count as directories
            return [] if location.is_directory() else None
        if location.kind == HTTP:
            return self._list_http(location, hide_hidden)
        if location.kind == URL:
            return None
        return self._list_local(location, hide_hidden)

    def _list_local(self, location: Location, hide_hidden: bool) -> Optional[List[str]]:
        try:
            names = os.listdir(location._target)
        except OSError:
            return None
        base = os.path.abspath(location._target)
        return [
            name for name in names
            if not hide_hidden or not (name.startswith(".") or self.location(base, name).is_hidden())
        ]

    def _list_http(self, location: Location, hide_hidden: bool) -> Optional[List[str]]:
        """Scrape `a href` links from an index page.

        An absolute link after the first child means the page is not a plain
        directory index and the listing is abandoned.
        """
        base = location.absolute_path
        try:
            s = fetch_text(base, session=self._session, timeout=self.settings.http_timeout)
        except HandleError as e:
            logger.debug("Could not retrieve directory listing %s: %s", base, e)
            return None

        files: List[str] = []
        while (ndx := s.find("a href")) != -1:
            ndx += 8
            idx = s.find('"', ndx)
            if idx < 0:
                break
            link = s[ndx:idx]
            if files and link.startswith("/"):
                return None
            s = s[idx + 1:]
            if link.startswith("?"):
                continue
            check = self.location(base, link)
            if check.exists() and (not hide_hidden or not check.is_hidden()):
                files.append(check.name)
        return files or None
