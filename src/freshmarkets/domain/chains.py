# freshmarkets/domain/chains.py
from __future__ import annotations

import math
from fractions import Fraction

from .models import BlockRange, ChainProfile

# Reference mainnet cadence used for any chain without a profile.
DEFAULT_BLOCKS_PER_MINUTE = Fraction(12)

CHAIN_PROFILES: tuple[ChainProfile, ...] = (
    ChainProfile("ethereum", 1,     Fraction(12)),
    ChainProfile("polygon",  137,   Fraction(28)),
    ChainProfile("arbitrum", 42161, Fraction(12)),
    ChainProfile("optimism", 10,    Fraction(12)),
)

_BY_ID   = {p.chain_id: p for p in CHAIN_PROFILES}
_BY_NAME = {p.name: p for p in CHAIN_PROFILES}


def resolve_profile(chain: str, chain_id: int | None = None) -> ChainProfile:
    """Network identity wins over the requested name; unknown chains get the default rate."""
    if chain_id is not None and chain_id in _BY_ID:
        return _BY_ID[chain_id]
    key = chain.strip().lower()
    if key in _BY_NAME:
        return _BY_NAME[key]
    return ChainProfile(key, chain_id, DEFAULT_BLOCKS_PER_MINUTE)


def blocks_for_window(window_minutes: int | float, blocks_per_minute: Fraction) -> int:
    return max(0, math.ceil(Fraction(window_minutes) * blocks_per_minute))


def block_range_for_window(
    chain: str | ChainProfile,
    window_minutes: int | float,
    current_block: int,
) -> BlockRange:
    profile = chain if isinstance(chain, ChainProfile) else resolve_profile(chain)
    tip = max(0, int(current_block))
    blocks = blocks_for_window(window_minutes, profile.blocks_per_minute)
    return BlockRange(start=max(0, tip - blocks), end=tip)
