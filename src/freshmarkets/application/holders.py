from __future__ import annotations

import asyncio
import logging
from typing import Iterable, Sequence

from ..domain.decoding import TRANSFER, decode_transfer, decode_uint
from ..domain.errors import Err, Ok, Result, RpcFailure
from ..domain.models import BlockRange, HolderBalance, TransferEvent
from ..domain.value_types import ZERO_ADDRESS, Address, Strategy
from ..ports.rpc import RPCClient
from .scanning import scan_events
from .utils import bounded

log = logging.getLogger(__name__)

BALANCE_OF = "balanceOf(address)"
STRATEGIES: tuple[Strategy, ...] = ("largest_transfer", "net_balance")


# ---------- pure ranking helpers ---------------------------------------------

def accumulate_net_flows(transfers: Iterable[TransferEvent], max_recipients: int) -> list[HolderBalance]:
    """Signed net flow of every recipient, in first-seen order.

    Mint and burn legs are not attributed to the zero address. Only the first
    `max_recipients` distinct recipients are returned.
    """
    net: dict[Address, int] = {}
    recipients: dict[Address, int] = {}
    for t in transfers:
        if t.sender != ZERO_ADDRESS:
            net[t.sender] = net.get(t.sender, 0) - t.value
        if t.recipient != ZERO_ADDRESS:
            net[t.recipient] = net.get(t.recipient, 0) + t.value
            if t.recipient not in recipients and len(recipients) < max_recipients:
                recipients[t.recipient] = len(recipients)
    return [HolderBalance(addr, net[addr], idx) for addr, idx in recipients.items()]


def rank_balances(balances: Iterable[HolderBalance], limit: int) -> list[Address]:
    positive = [b for b in balances if b.value > 0]
    positive.sort(key=lambda b: (-b.value, b.first_seen))
    return [b.address for b in positive[:max(0, limit)]]


def rank_by_largest_transfer(transfers: Iterable[TransferEvent], limit: int) -> list[Address]:
    inbound = [(t.recipient, t.value) for t in transfers if t.recipient != ZERO_ADDRESS and t.value > 0]
    inbound.sort(key=lambda rv: rv[1], reverse=True)   # stable: equal values keep log order
    out: list[Address] = []
    seen: set[Address] = set()
    for recipient, _ in inbound:
        if len(out) >= limit:
            break
        if recipient not in seen:
            seen.add(recipient)
            out.append(recipient)
    return out


def merge_holders(*lists: Sequence[Address], cap: int = 10) -> list[Address]:
    """Order-preserving, de-duplicated union of several holder lists, capped at `cap`."""
    out: list[Address] = []
    seen: set[Address] = set()
    for addr in (a for lst in lists for a in lst):
        if len(out) >= cap:
            break
        if addr not in seen:
            seen.add(addr)
            out.append(addr)
    return out


# ---------- approximator -----------------------------------------------------

class HolderApproximator:
    """Approximate top holders of a token from recent Transfer logs.

    `largest_transfer` ranks recipients of the biggest single inbound
    transfers over the last `narrow_blocks` of the range and makes no extra
    calls. `net_balance` accumulates signed flows over the whole range and
    confirms each recipient with a live balanceOf (at most `max_recipients`
    calls). Whichever runs first, the other is tried once if it fails. The
    primary is bounded by `strategy_timeout_s`; with `budget_s` set, the
    fallback is bounded by what is left of that budget.
    """

    def __init__(
        self,
        rpc: RPCClient,
        *,
        primary: Strategy = "largest_transfer",
        narrow_blocks: int = 5_000,
        max_recipients: int = 100,
        strategy_timeout_s: float | None = None,
        budget_s: float | None = None,
    ) -> None:
        if primary not in STRATEGIES:
            raise ValueError(f"unknown holder strategy: {primary!r}")
        self.rpc = rpc
        self.primary = primary
        self.narrow_blocks = narrow_blocks
        self.max_recipients = max_recipients
        self.strategy_timeout_s = strategy_timeout_s
        self.budget_s = budget_s

    async def _transfers(self, token: Address, block_range: BlockRange) -> list[TransferEvent]:
        return await scan_events(self.rpc, token, TRANSFER, block_range, decode_transfer)

    async def largest_transfer(self, token: Address, limit: int, block_range: BlockRange) -> list[Address]:
        transfers = await self._transfers(token, block_range.tail(self.narrow_blocks))
        return rank_by_largest_transfer(transfers, limit)

    async def net_balance(self, token: Address, limit: int, block_range: BlockRange) -> list[Address]:
        transfers = await self._transfers(token, block_range)
        holders = accumulate_net_flows(transfers, self.max_recipients)
        if not holders:
            return []
        results = await asyncio.gather(
            *(self.rpc.call(token, BALANCE_OF, [hb.address]) for hb in holders),
            return_exceptions=True,
        )
        failed = 0
        for hb, res in zip(holders, results):
            if isinstance(res, BaseException):
                if not isinstance(res, Exception):
                    raise res
                # keep the accumulated net flow for this address
                failed += 1
                continue
            try:
                hb.value = decode_uint(res, what="balanceOf")
            except RpcFailure:
                failed += 1
        if failed == len(holders):
            raise RpcFailure("balanceOf", f"all {failed} balance reads failed for {token}")
        if failed:
            log.debug("%s: %d/%d balance reads fell back to net flow", token, failed, len(holders))
        return rank_balances(holders, limit)

    async def _run(self, strategy: Strategy, token: Address, limit: int, block_range: BlockRange,
                   timeout_s: float | None) -> Result[list[Address]]:
        fn = self.largest_transfer if strategy == "largest_transfer" else self.net_balance
        return await bounded(fn(token, limit, block_range), timeout_s, f"holders[{strategy}] {token}")

    async def try_top_holders(self, token: Address, limit: int, block_range: BlockRange) -> Result[list[Address]]:
        if limit <= 0:
            return Ok([])
        loop = asyncio.get_running_loop()
        started = loop.time()
        res = await self._run(self.primary, token, limit, block_range, self.strategy_timeout_s)
        if res.ok:
            return res
        fallback: Strategy = "net_balance" if self.primary == "largest_transfer" else "largest_transfer"
        log.info("holders for %s: %s failed, trying %s", token, self.primary, fallback)
        timeout_s = self.strategy_timeout_s
        if self.budget_s is not None:
            # the fallback gets whatever the primary left of the budget
            timeout_s = max(0.0, self.budget_s - (loop.time() - started))
        return await self._run(fallback, token, limit, block_range, timeout_s)

    async def top_holders(self, token: Address, limit: int, block_range: BlockRange) -> list[Address]:
        """Never raises: returns [] when both strategies fail."""
        res = await self.try_top_holders(token, limit, block_range)
        if isinstance(res, Err):
            return []
        return res.value
