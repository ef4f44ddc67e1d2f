"""Handle implementations - uniform seek/read access to local, HTTP and S3 bytes."""

# Re-export these for import convenience
from .base import SeekableHandle, fetch_exact, read_struct
from .local import FileHandle, BytesHandle, open_local_handle
from .stream import SequentialStreamAdapter
from .http import HTTPHandle, open_http_handle, HTTP_MAX_FORWARD_SEEK
from .s3 import ObjectReference, ObjectStoreHandle, cache_object, can_handle_scheme, S3_MAX_FORWARD_SEEK
from .archive import ArchiveHandle, archive_kind, is_archive
