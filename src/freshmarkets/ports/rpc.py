# freshmarkets/ports/rpc.py
from __future__ import annotations

from typing import Any, Protocol, Sequence
from ..domain.models import EventLog
from ..domain.value_types import Address, Topic0


class RPCClient(Protocol):
    """Port defining the read-only Ethereum JSON-RPC surface the scanner needs.

    Implementations raise RpcFailure for transport errors, reverts and
    malformed responses.
    """

    async def latest_block(self) -> int:
        """Return the latest block number as an integer."""

    async def chain_id(self) -> int:
        """Return the network's chain id (eth_chainId)."""

    async def get_block(self, number: int) -> dict[str, Any] | None:
        """Return the block header (at least an int `timestamp`) or None if unknown."""

    async def get_logs(
        self,
        address: Address,
        topic0s: Sequence[Topic0],
        from_block: int,
        to_block: int,
    ) -> list[EventLog]:
        """Return normalized, typed logs for [from_block, to_block] inclusive."""

    async def call(self, address: Address, signature: str, args: Sequence[Address] = ()) -> bytes:
        """eth_call a view method at `latest`; return the raw ABI-encoded result."""
