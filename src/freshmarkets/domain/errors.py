# freshmarkets/domain/errors.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

T = TypeVar("T")


class FreshMarketsError(Exception):
    """Base class for every error raised by this package."""


class RpcFailure(FreshMarketsError, RuntimeError):
    """Transport error, revert or malformed JSON-RPC response."""

    def __init__(self, method: str, message: str) -> None:
        super().__init__(f"{method}: {message}")
        self.method = method
        self.message = message


class TimeoutExceeded(RpcFailure):
    """A bounded operation lost the race against its timer."""

    def __init__(self, operation: str, bound_s: float) -> None:
        super().__init__(operation, f"timed out after {bound_s:g}s")
        self.operation = operation
        self.bound_s = bound_s


class MalformedEvent(FreshMarketsError, ValueError):
    """A log entry does not carry the fields its event schema requires."""


class FatalRangeError(FreshMarketsError):
    """No block range can be computed (tip height or network identity unknown)."""


class InvalidRequest(FreshMarketsError, ValueError):
    pass


@dataclass(slots=True, frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool: return True

    def unwrap_or(self, default: T) -> T:
        return self.value


@dataclass(slots=True, frozen=True)
class Err:
    error: Exception

    @property
    def ok(self) -> bool: return False

    def unwrap_or(self, default: T) -> T:
        return default


Result = Union[Ok[T], Err]
