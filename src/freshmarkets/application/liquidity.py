from __future__ import annotations

import asyncio
import logging

from ..domain.decoding import decode_address, decode_uint, format_units
from ..domain.errors import Err, Ok, Result
from ..domain.value_types import Address
from ..ports.rpc import RPCClient

log = logging.getLogger(__name__)

NO_LIQUIDITY = "0, 0"

GET_RESERVES = "getReserves()"
TOKEN0       = "token0()"
TOKEN1       = "token1()"
DECIMALS     = "decimals()"


async def read_liquidity(rpc: RPCClient, pair: Address) -> str:
    """Current reserves of a V2 pair, each scaled by its token's decimals ("r0, r1")."""
    reserves, t0_ret, t1_ret = await asyncio.gather(
        rpc.call(pair, GET_RESERVES),
        rpc.call(pair, TOKEN0),
        rpc.call(pair, TOKEN1),
    )
    # getReserves() -> (uint112 reserve0, uint112 reserve1, uint32 blockTimestampLast)
    reserve0 = decode_uint(reserves, 0, what="getReserves")
    reserve1 = decode_uint(reserves, 1, what="getReserves")
    token0 = decode_address(t0_ret, what="token0")
    token1 = decode_address(t1_ret, what="token1")

    dec0_ret, dec1_ret = await asyncio.gather(rpc.call(token0, DECIMALS), rpc.call(token1, DECIMALS))
    dec0 = decode_uint(dec0_ret, what="decimals")
    dec1 = decode_uint(dec1_ret, what="decimals")
    if dec0 > 255 or dec1 > 255:
        raise ValueError(f"decimals out of uint8 range ({dec0}, {dec1})")

    return f"{format_units(reserve0, dec0)}, {format_units(reserve1, dec1)}"


async def try_snapshot(rpc: RPCClient, pair: Address) -> Result[str]:
    try:
        return Ok(await read_liquidity(rpc, pair))
    except Exception as e:
        log.warning("liquidity for %s unavailable: %s: %s", pair, type(e).__name__, e)
        return Err(e)


async def snapshot(rpc: RPCClient, pair: Address) -> str:
    """Never raises: any failed read degrades to NO_LIQUIDITY."""
    return (await try_snapshot(rpc, pair)).unwrap_or(NO_LIQUIDITY)
