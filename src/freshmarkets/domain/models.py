from __future__ import annotations
import re
from dataclasses import dataclass, field
from fractions import Fraction
from typing import Any, Mapping, Sequence
from .errors import InvalidRequest
from .value_types import Address

_ADDR_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


@dataclass(slots=True, frozen=True)
class BlockRange:
    start: int
    end: int

    def __post_init__(self) -> None:
        if not 0 <= self.start <= self.end:
            raise ValueError(f"invalid block range [{self.start}, {self.end}]")

    def span(self) -> int: return self.end - self.start + 1

    def tail(self, blocks: int) -> "BlockRange":
        """The last `blocks` blocks of this range (the whole range if shorter)."""
        if blocks <= 0:
            return BlockRange(self.end, self.end)
        return BlockRange(max(self.start, self.end - blocks + 1), self.end)


@dataclass(slots=True, frozen=True)
class ChainProfile:
    name: str
    chain_id: int | None
    blocks_per_minute: Fraction


@dataclass(slots=True, frozen=True)
class EventLog:
    address: Address
    topics: tuple[str, ...]           # lowercased with 0x
    data_hex: str                     # hex with 0x (or "0x")
    block_number: int
    tx_hash: str
    log_index: int


@dataclass(slots=True, frozen=True)
class PairCreationEvent:
    token0: Address
    token1: Address
    pair: Address
    block_number: int
    factory: Address


@dataclass(slots=True, frozen=True)
class TransferEvent:
    sender: Address
    recipient: Address
    value: int


@dataclass(slots=True)
class HolderBalance:
    address: Address
    value: int          # signed net flow, later replaced by the live balance
    first_seen: int


@dataclass(slots=True, frozen=True)
class PairRecord:
    pair_address: Address
    tokens: tuple[Address, Address]
    init_liquidity: str
    top_holders: tuple[Address, ...]
    created_at: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "pair_address": self.pair_address,
            "tokens": list(self.tokens),
            "init_liquidity": self.init_liquidity,
            "top_holders": list(self.top_holders),
            "created_at": self.created_at,
        }


@dataclass(slots=True, frozen=True)
class ScanRequest:
    chain: str
    factories: tuple[str, ...]
    window_minutes: int

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "ScanRequest":
        if not isinstance(raw, Mapping):
            raise InvalidRequest(f"request must be an object, got {type(raw).__name__}")
        factories = raw.get("factories")
        if isinstance(factories, str) or not isinstance(factories, Sequence):
            raise InvalidRequest("factories must be a list of contract addresses")
        req = cls(chain=raw.get("chain"), factories=tuple(factories), window_minutes=raw.get("window_minutes"))
        req.validate()
        return req

    def validate(self) -> None:
        if not isinstance(self.chain, str) or not self.chain.strip():
            raise InvalidRequest("chain must be a non-empty string")
        if isinstance(self.factories, str) or not isinstance(self.factories, Sequence):
            raise InvalidRequest("factories must be a list of contract addresses")
        for f in self.factories:
            if not isinstance(f, str) or not _ADDR_RE.match(f):
                raise InvalidRequest(f"invalid factory address: {f!r}")
        w = self.window_minutes
        if isinstance(w, bool) or not isinstance(w, int) or w <= 0:
            raise InvalidRequest("window_minutes must be a positive integer")


@dataclass(slots=True, frozen=True)
class ScanResponse:
    pairs: tuple[PairRecord, ...] = ()
    window_minutes: int | None = None
    scanned_factories: tuple[str, ...] = field(default_factory=tuple)
    error: str | None = None

    @property
    def count(self) -> int: return len(self.pairs)

    @classmethod
    def failure(cls, message: str) -> "ScanResponse":
        return cls(error=message or "Unknown error occurred")

    def to_dict(self) -> dict[str, Any]:
        if self.error is not None:
            return {"error": self.error, "pairs": [], "count": 0}
        return {
            "pairs": [p.to_dict() for p in self.pairs],
            "count": self.count,
            "window_minutes": self.window_minutes,
            "scanned_factories": list(self.scanned_factories),
        }
