from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable, TypeVar

T = TypeVar("T")


class PerfTimeoutError(TimeoutError):
    """Raised when a pipeline stage exceeds its time budget."""

    def __init__(self, stage: str, timeout_ms: int):
        super().__init__(f"{stage} exceeded {timeout_ms} ms")
        self.stage = stage
        self.timeout_ms = timeout_ms


def elapsed_ms(start_ts: float) -> int:
    return int((time.monotonic() - start_ts) * 1000)


async def enforce_timeout(
    coro_fn: Callable[[], Awaitable[T]],
    timeout_ms: int,
    stage: str = "operation",
) -> T:
    # wait_for cancels the inner task on expiry, so nothing keeps running
    try:
        return await asyncio.wait_for(coro_fn(), timeout=max(1, timeout_ms) / 1000.0)
    except asyncio.TimeoutError as exc:
        raise PerfTimeoutError(stage, timeout_ms) from exc


__all__ = ["PerfTimeoutError", "elapsed_ms", "enforce_timeout"]
