from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Mapping

from eth_utils import to_checksum_address

from ..config import Settings
from ..domain.chains import block_range_for_window, resolve_profile
from ..domain.errors import FatalRangeError, InvalidRequest
from ..domain.models import BlockRange, PairCreationEvent, PairRecord, ScanRequest, ScanResponse
from ..domain.value_types import Address
from ..ports.rpc import RPCClient
from .holders import HolderApproximator, merge_holders
from .liquidity import NO_LIQUIDITY, snapshot
from .scanning import scan_pair_creations
from .utils import bounded

log = logging.getLogger(__name__)


async def _block_timestamp(rpc: RPCClient, number: int) -> int | None:
    block = await rpc.get_block(number)
    return None if block is None else int(block["timestamp"])


async def enrich_event(
    *,
    rpc: RPCClient,
    event: PairCreationEvent,
    settings: Settings,
    approximator: HolderApproximator,
    holder_range: BlockRange,
    now: Callable[[], float] = time.time,
) -> PairRecord:
    """Timestamp, liquidity and holders for one pair, each under its own bound."""

    async def pair_holders() -> list[Address]:
        h0, h1 = await asyncio.gather(
            approximator.top_holders(event.token0, settings.holders_per_token, holder_range),
            approximator.top_holders(event.token1, settings.holders_per_token, holder_range),
        )
        return merge_holders(h0, h1, cap=settings.max_holders)

    ts, liq, holders = await asyncio.gather(
        bounded(_block_timestamp(rpc, event.block_number), settings.block_timeout_s, f"block {event.block_number}"),
        bounded(snapshot(rpc, event.pair), settings.liquidity_timeout_s, f"liquidity {event.pair}"),
        bounded(pair_holders(), settings.holders_timeout_s, f"holders {event.pair}"),
    )
    created_at = ts.unwrap_or(None)
    return PairRecord(
        pair_address=event.pair,
        tokens=(event.token0, event.token1),
        init_liquidity=liq.unwrap_or(NO_LIQUIDITY),
        top_holders=tuple(holders.unwrap_or([])),
        created_at=int(now()) if created_at is None else created_at,
    )


def _unfinished_record(event: PairCreationEvent, now: Callable[[], float]) -> PairRecord:
    """Record for a pair whose enrichment was cut off by the request deadline."""
    return PairRecord(
        pair_address=event.pair,
        tokens=(event.token0, event.token1),
        init_liquidity=NO_LIQUIDITY,
        top_holders=(),
        created_at=int(now()),
    )


def _remaining(deadline: float | None) -> float | None:
    if deadline is None:
        return None
    return max(0.0, deadline - asyncio.get_running_loop().time())


async def _locate_events(rpc: RPCClient, req: ScanRequest) -> tuple[int, list[PairCreationEvent]]:
    # Init -> RangeComputed
    try:
        tip, chain_id = await asyncio.gather(rpc.latest_block(), rpc.chain_id())
    except Exception as e:
        raise FatalRangeError(f"cannot compute block range for {req.chain}: {e}") from e
    profile = resolve_profile(req.chain, chain_id)
    window = block_range_for_window(profile, req.window_minutes, tip)
    log.info("%s (chain id %s): scanning blocks %d-%d (%d min at %s blocks/min)",
             profile.name, chain_id, window.start, window.end, req.window_minutes, profile.blocks_per_minute)

    # RangeComputed -> EventsScanned; a failing factory is skipped
    factories = [Address(to_checksum_address(f)) for f in req.factories]
    scans = await asyncio.gather(*(
        bounded(scan_pair_creations(rpc, f, window), None, f"scan {f}") for f in factories
    ))
    events: list[PairCreationEvent] = []
    for f, res in zip(factories, scans):
        if res.ok:
            log.info("factory %s: %d PairCreated events", f, len(res.value))
            events.extend(res.value)
        else:
            log.warning("factory %s skipped: %s", f, res.error)
    return tip, events


async def _enrich_all(
    rpc: RPCClient,
    events: list[PairCreationEvent],
    tip: int,
    settings: Settings,
    now: Callable[[], float],
    deadline: float | None,
) -> list[PairRecord]:
    """Enrich every event; whatever is unfinished at `deadline` gets default fields."""
    if not events:
        return []
    approximator = HolderApproximator(
        rpc,
        primary=settings.holder_strategy,
        narrow_blocks=settings.holder_narrow_blocks,
        max_recipients=settings.holder_max_recipients,
        strategy_timeout_s=settings.holder_strategy_timeout_s,
        budget_s=settings.holders_timeout_s,
    )
    holder_range = BlockRange(max(0, tip - settings.holder_lookback_blocks + 1), tip)
    sem = asyncio.Semaphore(settings.max_concurrency)

    async def worker(ev: PairCreationEvent) -> PairRecord:
        async with sem:
            return await enrich_event(
                rpc=rpc, event=ev, settings=settings,
                approximator=approximator, holder_range=holder_range, now=now,
            )

    tasks = [asyncio.ensure_future(worker(ev)) for ev in events]
    _, pending = await asyncio.wait(tasks, timeout=_remaining(deadline))
    if pending:
        log.warning("request deadline reached: %d/%d pairs left with default fields", len(pending), len(tasks))
        for t in pending:
            t.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
    return [
        _unfinished_record(ev, now) if t in pending else t.result()
        for ev, t in zip(events, tasks)
    ]


async def scan_new_pairs(
    rpc: RPCClient,
    request: ScanRequest | Mapping[str, Any],
    *,
    settings: Settings | None = None,
    now: Callable[[], float] = time.time,
) -> ScanResponse:
    """List AMM pairs created in the last `window_minutes`, newest first.

    Always returns a well-formed response: per-pair failures degrade to
    defaults, and pairs still being enriched when the request deadline
    expires keep their default fields. Only a failure to compute the block
    range or to finish the factory scans in time yields the error shape.
    """
    settings = settings or Settings()
    try:
        req = request if isinstance(request, ScanRequest) else ScanRequest.from_dict(request)
        req.validate()
    except InvalidRequest as e:
        return ScanResponse.failure(str(e))

    t0 = time.monotonic()
    deadline = None
    if settings.request_deadline_s is not None:
        deadline = asyncio.get_running_loop().time() + settings.request_deadline_s
    try:
        tip, events = await asyncio.wait_for(_locate_events(rpc, req), _remaining(deadline))
        records = await _enrich_all(rpc, events, tip, settings, now, deadline)
    except asyncio.TimeoutError:
        log.error("request deadline of %gs exceeded before the factory scans finished", settings.request_deadline_s)
        return ScanResponse.failure(f"request deadline of {settings.request_deadline_s:g}s exceeded")
    except FatalRangeError as e:
        log.error("%s", e)
        return ScanResponse.failure(str(e))
    except Exception as e:
        log.exception("scan_new_pairs failed")
        return ScanResponse.failure(str(e) or type(e).__name__)

    # PerEventEnrichment -> Sorted (stable: ties keep insertion order)
    ordered = sorted(records, key=lambda r: r.created_at, reverse=True)
    log.info("found %d pairs across %d factories in %.2fs", len(ordered), len(req.factories), time.monotonic() - t0)
    return ScanResponse(
        pairs=tuple(ordered),
        window_minutes=req.window_minutes,
        scanned_factories=tuple(req.factories),
    )
