from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, TypeVar

from ..domain.errors import Err, Ok, Result, TimeoutExceeded

T = TypeVar("T")
log = logging.getLogger(__name__)


async def bounded(aw: Awaitable[T], timeout_s: float | None, operation: str) -> Result[T]:
    """Race `aw` against a timer; the loser is cancelled.

    Any failure, timeout included, comes back as Err instead of raising.
    """
    t0 = time.monotonic()
    try:
        if timeout_s is None:
            return Ok(await aw)
        return Ok(await asyncio.wait_for(aw, timeout_s))
    except asyncio.TimeoutError:
        log.warning("%s timed out after %.1fs (bound %gs)", operation, time.monotonic() - t0, timeout_s)
        return Err(TimeoutExceeded(operation, timeout_s))
    except Exception as e:
        log.warning("%s failed: %s: %s", operation, type(e).__name__, e)
        return Err(e)
