"""Shared fixtures: an in-memory RPCClient and raw-log builders."""

import asyncio
from typing import Any, Sequence

import pytest
from eth_utils import to_checksum_address

from freshmarkets.domain.decoding import PAIR_CREATED, TRANSFER
from freshmarkets.domain.errors import RpcFailure
from freshmarkets.domain.models import EventLog


def addr(n: int) -> str:
    """Deterministic checksum address, e.g. addr(1) -> 0x1111...1111."""
    return to_checksum_address("0x" + f"{n:02x}" * 20)


ZERO = "0x" + "00" * 20


def word(value: int) -> str:
    return f"{value:064x}"


def addr_word(a: str) -> str:
    return a.lower()[2:].rjust(64, "0")


def pair_created_log(factory: str, token0: str, token1: str, pair: str, block: int, index: int = 1) -> EventLog:
    return EventLog(
        address=factory.lower(),
        topics=(PAIR_CREATED.topic0, "0x" + addr_word(token0), "0x" + addr_word(token1)),
        data_hex="0x" + addr_word(pair) + word(index),
        block_number=block,
        tx_hash="0x" + f"{block:064x}",
        log_index=0,
    )


def transfer_log(token: str, sender: str, recipient: str, value: int, block: int = 990) -> EventLog:
    return EventLog(
        address=token.lower(),
        topics=(TRANSFER.topic0, "0x" + addr_word(sender), "0x" + addr_word(recipient)),
        data_hex="0x" + word(value),
        block_number=block,
        tx_hash="0x" + f"{block:064x}",
        log_index=0,
    )


def ret_uint(*values: int) -> bytes:
    return bytes.fromhex("".join(word(v) for v in values))


def ret_addr(a: str) -> bytes:
    return bytes.fromhex(addr_word(a))


class FakeRPC:
    """Programmable RPCClient.

    `fail` holds method names that raise RpcFailure; `delay` maps method
    names (or call signatures) to seconds slept before answering, and
    `slow_addresses` does the same per contract address for `call`.
    `peak_in_flight` records the most concurrent `get_block` calls seen.
    """

    def __init__(self, tip: int = 1_000, chain: int = 1) -> None:
        self.tip = tip
        self.chain = chain
        self.timestamps: dict[int, int] = {}
        self.logs: list[EventLog] = []
        self.calls: dict[tuple[str, str, tuple[str, ...]], Any] = {}
        self.fail: set[str] = set()
        self.fail_addresses: set[str] = set()
        self.delay: dict[str, float] = {}
        self.slow_addresses: dict[str, float] = {}
        self.in_flight = 0
        self.peak_in_flight = 0
        self.log_queries: list[tuple[str, int, int]] = []
        self.call_log: list[tuple[str, str, tuple[str, ...]]] = []

    async def _enter(self, method: str, address: str | None = None) -> None:
        if method in self.delay:
            await asyncio.sleep(self.delay[method])
        if method in self.fail or (address is not None and address.lower() in self.fail_addresses):
            raise RpcFailure(method, "boom")

    async def latest_block(self) -> int:
        await self._enter("latest_block")
        return self.tip

    async def chain_id(self) -> int:
        await self._enter("chain_id")
        return self.chain

    async def get_block(self, number: int) -> dict[str, Any] | None:
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            await self._enter("get_block")
        finally:
            self.in_flight -= 1
        if number not in self.timestamps:
            return None
        return {"number": number, "timestamp": self.timestamps[number]}

    async def get_logs(self, address: str, topic0s: Sequence[str], from_block: int, to_block: int) -> list[EventLog]:
        self.log_queries.append((address.lower(), from_block, to_block))
        await self._enter("get_logs", address)
        return [
            l for l in self.logs
            if l.address == address.lower()
            and l.topics and l.topics[0] in topic0s
            and from_block <= l.block_number <= to_block
        ]

    async def call(self, address: str, signature: str, args: Sequence[str] = ()) -> bytes:
        key = (address.lower(), signature, tuple(a.lower() for a in args))
        self.call_log.append(key)
        await self._enter("call", address)
        if signature in self.delay:
            await asyncio.sleep(self.delay[signature])
        if address.lower() in self.slow_addresses:
            await asyncio.sleep(self.slow_addresses[address.lower()])
        if key not in self.calls:
            raise RpcFailure("eth_call", f"execution reverted: {signature}")
        res = self.calls[key]
        if isinstance(res, Exception):
            raise res
        return res

    # -- programming helpers ------------------------------------------------

    def on_call(self, address: str, signature: str, result: Any, args: Sequence[str] = ()) -> None:
        self.calls[(address.lower(), signature, tuple(a.lower() for a in args))] = result

    def add_pair(self, factory: str, token0: str, token1: str, pair: str, block: int, ts: int | None = None,
                 reserves: tuple[int, int] | None = (10**18, 2 * 10**6), decimals: tuple[int, int] = (18, 6)) -> None:
        self.logs.append(pair_created_log(factory, token0, token1, pair, block))
        if ts is not None:
            self.timestamps[block] = ts
        if reserves is not None:
            self.on_call(pair, "getReserves()", ret_uint(reserves[0], reserves[1], 1_700_000_000))
            self.on_call(pair, "token0()", ret_addr(token0))
            self.on_call(pair, "token1()", ret_addr(token1))
            self.on_call(token0, "decimals()", ret_uint(decimals[0]))
            self.on_call(token1, "decimals()", ret_uint(decimals[1]))


@pytest.fixture
def rpc() -> FakeRPC:
    return FakeRPC()
