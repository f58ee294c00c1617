# freshmarkets/config.py
# Process-wide settings: built once at startup, never mutated.
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping

from .domain.value_types import Strategy

DEFAULT_RPCS: dict[str, str] = {
    "ethereum": "https://eth.llamarpc.com",
    "polygon":  "https://polygon.llamarpc.com",
    "arbitrum": "https://arbitrum.llamarpc.com",
    "optimism": "https://optimism.llamarpc.com",
    "base":     "https://base.llamarpc.com",
    "bsc":      "https://bsc.llamarpc.com",
}
FALLBACK_RPC = "https://eth.llamarpc.com"

_PREFIX = "FRESHMARKETS_"


def resolve_rpc_url(chain: str, env: Mapping[str, str] | None = None) -> str:
    """RPC_URL_<CHAIN>, then RPC_URL, then the built-in default for the chain."""
    env = os.environ if env is None else env
    url = (env.get(f"RPC_URL_{chain.strip().upper()}") or env.get("RPC_URL") or "").strip()
    if url and url not in {"https://", "http://"}:
        return url
    return DEFAULT_RPCS.get(chain.strip().lower(), FALLBACK_RPC)


def _float(env: Mapping[str, str], key: str, default: float, *, zero_ok: bool = False) -> float:
    raw = env.get(_PREFIX + key)
    if raw is None or not raw.strip():
        return default
    try:
        v = float(raw)
    except ValueError:
        raise ValueError(f"{_PREFIX}{key} must be a number, got {raw!r}") from None
    if v < 0 or (v == 0 and not zero_ok):
        raise ValueError(f"{_PREFIX}{key} must be > 0, got {raw!r}")
    return v


def _int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(_PREFIX + key)
    if raw is None or not raw.strip():
        return default
    try:
        v = int(raw)
    except ValueError:
        raise ValueError(f"{_PREFIX}{key} must be an integer, got {raw!r}") from None
    if v <= 0:
        raise ValueError(f"{_PREFIX}{key} must be > 0, got {raw!r}")
    return v


@dataclass(slots=True, frozen=True)
class Settings:
    block_timeout_s: float = 3.0
    liquidity_timeout_s: float = 3.0
    holders_timeout_s: float = 4.0
    holder_strategy_timeout_s: float = 2.0
    request_deadline_s: float | None = 25.0
    max_concurrency: int = 16
    holders_per_token: int = 5
    max_holders: int = 10
    holder_lookback_blocks: int = 20_000
    holder_narrow_blocks: int = 5_000
    holder_max_recipients: int = 100
    holder_strategy: Strategy = "largest_transfer"
    rpc_timeout_s: float = 20.0
    rpc_env: Mapping[str, str] | None = None   # RPC_URL* snapshot; None reads os.environ

    def rpc_url(self, chain: str) -> str:
        return resolve_rpc_url(chain, self.rpc_env)

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "Settings":
        env = os.environ if env is None else env
        strategy = (env.get(_PREFIX + "HOLDER_STRATEGY") or "largest_transfer").strip().lower()
        if strategy not in ("largest_transfer", "net_balance"):
            raise ValueError(f"{_PREFIX}HOLDER_STRATEGY must be largest_transfer or net_balance, got {strategy!r}")
        deadline = _float(env, "REQUEST_DEADLINE_S", 25.0, zero_ok=True)
        return cls(
            block_timeout_s=_float(env, "BLOCK_TIMEOUT_S", 3.0),
            liquidity_timeout_s=_float(env, "LIQUIDITY_TIMEOUT_S", 3.0),
            holders_timeout_s=_float(env, "HOLDERS_TIMEOUT_S", 4.0),
            holder_strategy_timeout_s=_float(env, "HOLDER_STRATEGY_TIMEOUT_S", 2.0),
            request_deadline_s=deadline or None,
            max_concurrency=_int(env, "MAX_CONCURRENCY", 16),
            holder_lookback_blocks=_int(env, "HOLDER_LOOKBACK_BLOCKS", 20_000),
            holder_strategy=strategy,  # type: ignore[arg-type]
            rpc_timeout_s=_float(env, "RPC_TIMEOUT_S", 20.0),
            rpc_env={k: v for k, v in env.items() if k == "RPC_URL" or k.startswith("RPC_URL_")},
        )
