from __future__ import annotations

import logging
from typing import Callable, TypeVar

from ..domain.decoding import PAIR_CREATED, EventSchema, decode_pair_created
from ..domain.errors import MalformedEvent
from ..domain.models import BlockRange, EventLog, PairCreationEvent
from ..domain.value_types import Address
from ..ports.rpc import RPCClient

E = TypeVar("E")
log = logging.getLogger(__name__)


async def scan_events(
    rpc: RPCClient,
    address: Address,
    schema: EventSchema,
    block_range: BlockRange,
    decode: Callable[[EventLog], E],
) -> list[E]:
    """One eth_getLogs over the whole range; logs that do not fit `schema` are dropped.

    RpcFailure from the query itself propagates: the caller bounds the range.
    """
    raw = await rpc.get_logs(address, [schema.topic0], block_range.start, block_range.end)
    out: list[E] = []
    dropped = 0
    for entry in raw:
        try:
            out.append(decode(entry))
        except MalformedEvent as e:
            dropped += 1
            log.debug("drop %s log %s:%s: %s", schema.name, entry.tx_hash, entry.log_index, e)
    if dropped:
        log.info("%s@%s: dropped %d malformed of %d logs", schema.name, address, dropped, len(raw))
    return out


async def scan_pair_creations(rpc: RPCClient, factory: Address, block_range: BlockRange) -> list[PairCreationEvent]:
    return await scan_events(
        rpc, factory, PAIR_CREATED, block_range,
        lambda entry: decode_pair_created(entry, factory=factory),
    )
