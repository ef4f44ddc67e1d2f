from __future__ import annotations
from dataclasses import dataclass
from typing import Literal

ByteOrder = Literal["big", "little"]


class HandleError(IOError):
    """Raised when a handle cannot be opened, read, written or positioned."""
    pass


class HandleClosedError(HandleError):
    """Raised when an operation is attempted on a closed handle."""
    pass


class ReadOnlyHandleError(HandleError):
    """Raised when writing to a handle that only supports reading."""
    pass


class DelayedNotFoundError(HandleError):
    """Raised by operations on a handle whose remote lookup failed at open time.

    The original failure is kept as ``cause`` and chained as ``__cause__``.
    """

    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message)
        self.cause = cause
        self.__cause__ = cause


class InvalidIdentifierError(ValueError):
    """Raised when an identifier claimed by a backend cannot be parsed by it."""
    pass


@dataclass(slots=True, frozen=True)
class Ready:
    """Outcome of a successful remote lookup."""
    length: int | None
    is_bucket: bool = False


@dataclass(slots=True, frozen=True)
class Fault:
    """Outcome of a failed remote lookup, replayed on later access."""
    error: BaseException

    def raise_delayed(self, what: str):
        raise DelayedNotFoundError(f"{what}: {self.error}", self.error) from self.error


LookupResult = Ready | Fault
