"""fasthandle - one seekable-handle API for local files, HTTP(S) URLs and S3 objects."""

from .core.config import Settings                                        # re-export
from .core.idmap import IdentifierMap
from .core.model import (HandleError, HandleClosedError, ReadOnlyHandleError,
                         DelayedNotFoundError, InvalidIdentifierError)
from .io import SeekableHandle, ObjectReference, ObjectStoreHandle, HTTPHandle, FileHandle, BytesHandle
from .location import Location, LocationResolver, classify_identifier


def open_handle(identifier, writable: bool = False, *, resolver: LocationResolver | None = None):
    """Open a handle for a path, URL or s3:// identifier."""
    resolver = resolver or LocationResolver()
    return resolver.resolve(identifier, writable=writable)


__all__ = [
    "open_handle", "Location", "LocationResolver", "classify_identifier",
    "Settings", "IdentifierMap", "SeekableHandle",
    "ObjectReference", "ObjectStoreHandle", "HTTPHandle", "FileHandle", "BytesHandle",
    "HandleError", "HandleClosedError", "ReadOnlyHandleError",
    "DelayedNotFoundError", "InvalidIdentifierError",
]
