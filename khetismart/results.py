"""Result types and error taxonomy shared by the adapter, codec and cache layers."""

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar, Union

T = TypeVar("T")


class ErrorKind(str, Enum):
    TRANSPORT = "transport"
    EXTRACT = "extract"
    QUOTA = "quota_exceeded"
    DECODE = "decode"


class TransportError(Exception):
    """Raised when the remote generation call fails outright."""


class StoreWriteError(Exception):
    """Raised by a store when a write fails; the previous value stays in place."""


class QuotaExceeded(StoreWriteError):
    """Raised by a store when a write would exceed its storage quota."""


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    kind: ErrorKind
    detail: str = ""

    @property
    def ok(self) -> bool:
        return False


Result = Union[Ok[T], Err]
