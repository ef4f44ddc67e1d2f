from __future__ import annotations
import logging
from typing import Any, Dict, Iterator

logger = logging.getLogger(__name__)


class IdentifierMap:
    """Identifier -> replacement name or live handle.

    One map per resolver; resolvers are owned by a single worker so the map
    is never shared and needs no locking.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, Any] = {}

    def map(self, identifier: str | None, value: Any) -> None:
        if identifier is None:
            return
        if value is None or (isinstance(value, str) and not value):
            self._entries.pop(identifier, None)
        else:
            self._entries[identifier] = value
        logger.debug("map %s -> %r", identifier, value)

    def get(self, identifier: str | None) -> Any:
        if identifier is None:
            return None
        return self._entries.get(identifier)

    def get_id(self, identifier: str) -> str:
        """Return the replacement name for `identifier`, or `identifier` itself."""
        value = self.get(identifier)
        return value if isinstance(value, str) else identifier

    def get_handle(self, identifier: str | None):
        """Return the live handle mapped to `identifier`, if any."""
        value = self.get(identifier)
        return None if value is None or isinstance(value, str) else value

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)
