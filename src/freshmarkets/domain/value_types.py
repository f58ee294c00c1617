from __future__ import annotations
from typing import NewType, Literal

Address  = NewType("Address", str)   # 0x-prefixed, EIP-55 checksum once decoded
Topic0   = NewType("Topic0", str)    # 66-char 0x-hash
Strategy = Literal["largest_transfer", "net_balance"]

ZERO_ADDRESS = Address("0x0000000000000000000000000000000000000000")
