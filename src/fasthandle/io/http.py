"""Read-only HTTP handle streaming with Range requests using requests."""

import logging
from email.utils import parsedate_to_datetime
from typing import Optional

import requests

from ..core.model import HandleError, ReadOnlyHandleError
from .base import check_byte_order, fetch_exact, read_struct
from .stream import SequentialStreamAdapter

logger = logging.getLogger(__name__)

HTTP_MAX_FORWARD_SEEK = 1024 * 1024  # 1 MiB
DEFAULT_TIMEOUT = 30.0

# Module-level session for connection pooling
_session = None


def _get_session():
    """Get or create the global requests session."""
    global _session
    if _session is None:
        _session = requests.Session()
    return _session


def _parse_last_modified(value: Optional[str]) -> int:
    """Return a Last-Modified header as epoch milliseconds, 0 when absent."""
    if not value:
        return 0
    try:
        return int(parsedate_to_datetime(value).timestamp() * 1000)
    except (TypeError, ValueError):
        return 0


class HTTPHandle:
    """Read-only handle over an HTTP(S) resource."""

    def __init__(self, url: str, session: Optional[requests.Session] = None,
                 timeout: float = DEFAULT_TIMEOUT):
        self.url = url
        self.timeout = timeout
        self.byte_order = "big"
        self.requests_made = 0
        self.content_length: Optional[int] = None
        self.last_modified = 0
        self._exists = False
        self._status: Optional[int] = None
        self._session = session or _get_session()

        # Perform HEAD request immediately
        self._perform_head()
        self._stream = SequentialStreamAdapter(self._open_stream, HTTP_MAX_FORWARD_SEEK)

    def _perform_head(self):
        """Perform HEAD request to check existence and size."""
        try:
            response = self._session.head(self.url, timeout=self.timeout, allow_redirects=True)
            self.requests_made += 1
        except requests.RequestException as e:
            raise HandleError(f"HEAD request failed: {e}") from e

        self._status = response.status_code
        if response.status_code >= 400:
            logger.debug("HEAD %s returned %d", self.url, response.status_code)
            return
        self._exists = True

        content_length_header = response.headers.get('content-length')
        if content_length_header:
            self.content_length = int(content_length_header)
        self.last_modified = _parse_last_modified(response.headers.get('last-modified'))

    def _open_stream(self, offset: int):
        """Open a streaming GET positioned at `offset`."""
        if not self._exists:
            raise HandleError(f"{self.url} not found (status {self._status})")
        headers = {'Accept-Encoding': 'identity'}
        if offset > 0:
            headers['Range'] = f'bytes={offset}-'
        try:
            response = self._session.get(self.url, headers=headers, stream=True, timeout=self.timeout)
            self.requests_made += 1
        except requests.RequestException as e:
            raise HandleError(f"GET request failed: {e}") from e

        if response.status_code == 416:
            # Range starts at or beyond the end
            response.close()
            return _EmptyStream()
        if response.status_code >= 400:
            response.close()
            raise HandleError(f"GET request failed with status {response.status_code}")

        raw = response.raw
        if offset > 0 and response.status_code == 200:
            # Server ignored Range, discard the leading bytes
            logger.debug("%s ignored Range, discarding %d bytes", self.url, offset)
            remaining = offset
            while remaining > 0:
                chunk = raw.read(min(remaining, 64 * 1024))
                if not chunk:
                    break
                remaining -= len(chunk)
        return raw

    @property
    def fp(self) -> int:
        return self._stream.fp

    @property
    def bytes_fetched(self) -> int:
        return self._stream.bytes_fetched

    @property
    def reconnects(self) -> int:
        return self._stream.reconnects

    def tell(self) -> int:
        return self._stream.fp

    def seek(self, pos: int) -> None:
        self._stream.seek(pos)

    def read(self, size: int = -1) -> bytes:
        return self._stream.read(size)

    def readinto(self, buffer, offset: int = 0, length: Optional[int] = None) -> int:
        return self._stream.readinto(buffer, offset, length)

    def write(self, data, offset: int = 0, length: Optional[int] = None) -> None:
        raise ReadOnlyHandleError(f"{self.url} is read-only")

    def fetch(self, start: int, length: int) -> bytes:
        """Return exactly `length` bytes starting at absolute offset `start`."""
        return fetch_exact(self, start, length)

    def read_struct(self, fmt: str) -> tuple:
        return read_struct(self, fmt)

    def set_byte_order(self, order: str) -> None:
        self.byte_order = check_byte_order(order)

    def length(self) -> int:
        if not self._exists:
            raise HandleError(f"{self.url} not found (status {self._status})")
        if self.content_length is None:
            raise HandleError(f"{self.url} did not report a content length")
        return self.content_length

    def exists(self) -> bool:
        return self._exists

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self):
        # Session is shared, only the current response is released
        self._stream.close()

    def __repr__(self):
        return f"HTTPHandle({self.url!r})"


class _EmptyStream:
    def read(self, size: int = -1) -> bytes:
        return b""

    def close(self):
        pass


def fetch_text(url: str, session: Optional[requests.Session] = None,
               timeout: float = DEFAULT_TIMEOUT) -> str:
    """GET a whole document as text (used for directory index pages)."""
    session = session or _get_session()
    try:
        response = session.get(url, timeout=timeout)
    except requests.RequestException as e:
        raise HandleError(f"GET request failed: {e}") from e
    if response.status_code >= 400:
        raise HandleError(f"GET request failed with status {response.status_code}")
    return response.text


def open_http_handle(url: str, **kwargs) -> HTTPHandle:
    """Create an HTTP handle."""
    return HTTPHandle(url, **kwargs)
