from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Sequence

from eth_utils import function_signature_to_4byte_selector, keccak, to_checksum_address

from .errors import MalformedEvent, RpcFailure
from .models import EventLog, PairCreationEvent, TransferEvent
from .value_types import Address, Topic0


# --------- 32B word slicing (fast, no eth_abi) --------------------------------

def _word(b: bytes, i: int) -> bytes:
    return b[i*32:(i+1)*32]

def _u256(w: bytes) -> int:
    return int.from_bytes(w, "big")

def _addr_from_word(w: bytes) -> Address:
    return Address(to_checksum_address("0x" + w[-20:].hex()))

def _hexstr_to_bytes(s: str) -> bytes:
    h = s[2:] if s[:2].lower() == "0x" else s
    if len(h) % 2: h = "0" + h
    return bytes.fromhex(h) if h else b""

_WORD_DECODERS: dict[str, Callable[[bytes], Any]] = {
    "address": _addr_from_word,
    "uint256": _u256,
}


# ---------------------------- event schemas ----------------------------------

@dataclass(slots=True, frozen=True)
class EventSchema:
    """Named, typed layout of one event signature (indexed topics + data words)."""
    name: str
    indexed: tuple[tuple[str, str], ...]
    data: tuple[tuple[str, str], ...]

    @property
    def signature(self) -> str:
        types = [t for _, t in self.indexed + self.data]
        return f"{self.name}({','.join(types)})"

    @property
    def topic0(self) -> Topic0:
        return Topic0("0x" + keccak(text=self.signature).hex())


PAIR_CREATED = EventSchema(
    name="PairCreated",
    indexed=(("token0", "address"), ("token1", "address")),
    data=(("pair", "address"), ("index", "uint256")),
)

TRANSFER = EventSchema(
    name="Transfer",
    indexed=(("from", "address"), ("to", "address")),
    data=(("value", "uint256"),),
)


def decode_log(schema: EventSchema, log: EventLog) -> dict[str, Any]:
    """Decode one raw log into named fields; raise MalformedEvent if it does not fit `schema`."""
    topics = log.topics
    if not topics or topics[0].lower() != schema.topic0:
        raise MalformedEvent(f"{schema.name}: unexpected topic0 in log {log.tx_hash}:{log.log_index}")
    if len(topics) != 1 + len(schema.indexed):
        raise MalformedEvent(f"{schema.name}: expected {1 + len(schema.indexed)} topics, got {len(topics)}")
    try:
        data = _hexstr_to_bytes(log.data_hex)
    except ValueError as e:
        raise MalformedEvent(f"{schema.name}: bad data hex ({e})") from e
    if len(data) < 32 * len(schema.data):
        raise MalformedEvent(f"{schema.name}: data too short ({len(data)} bytes)")

    out: dict[str, Any] = {}
    try:
        for (name, typ), topic in zip(schema.indexed, topics[1:]):
            out[name] = _WORD_DECODERS[typ](_hexstr_to_bytes(topic).rjust(32, b"\0"))
    except ValueError as e:
        raise MalformedEvent(f"{schema.name}: bad topic ({e})") from e
    for i, (name, typ) in enumerate(schema.data):
        out[name] = _WORD_DECODERS[typ](_word(data, i))
    return out


def decode_pair_created(log: EventLog, factory: Address | None = None) -> PairCreationEvent:
    f = decode_log(PAIR_CREATED, log)
    if factory is None:
        try:
            factory = Address(to_checksum_address(log.address))
        except ValueError as e:
            raise MalformedEvent(f"PairCreated: bad emitter address {log.address!r}") from e
    return PairCreationEvent(
        token0=f["token0"],
        token1=f["token1"],
        pair=f["pair"],
        block_number=log.block_number,
        factory=factory,
    )


def decode_transfer(log: EventLog) -> TransferEvent:
    f = decode_log(TRANSFER, log)
    return TransferEvent(sender=f["from"], recipient=f["to"], value=f["value"])


# ---------------------------- eth_call helpers -------------------------------

def encode_call(signature: str, args: Sequence[Address] = ()) -> str:
    """ABI-encode a call whose arguments are all addresses."""
    body = function_signature_to_4byte_selector(signature)
    for a in args:
        body += bytes.fromhex(to_checksum_address(a)[2:]).rjust(32, b"\0")
    return "0x" + body.hex()


def _require_words(ret: bytes, n: int, what: str) -> None:
    if len(ret) < 32 * n:
        raise RpcFailure("eth_call", f"{what}: expected {32 * n} bytes, got {len(ret)}")

def decode_uint(ret: bytes, index: int = 0, *, what: str = "uint") -> int:
    _require_words(ret, index + 1, what)
    return _u256(_word(ret, index))

def decode_address(ret: bytes, *, what: str = "address") -> Address:
    _require_words(ret, 1, what)
    return _addr_from_word(_word(ret, 0))


def format_units(value: int, decimals: int) -> str:
    """Render a raw integer amount like ethers' formatUnits ("1.0", "0.000123")."""
    if decimals < 0:
        raise ValueError(f"negative decimals: {decimals}")
    sign = "-" if value < 0 else ""
    whole, frac = divmod(abs(value), 10 ** decimals)
    frac_s = str(frac).rjust(decimals, "0").rstrip("0") if decimals else ""
    return f"{sign}{whole}.{frac_s or '0'}"
