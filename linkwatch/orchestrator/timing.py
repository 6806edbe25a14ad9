"""Delay helpers used to pace requests against a target site."""
from __future__ import annotations

import asyncio
import random


def jitter(max_ms: int) -> int:
    """Return a random delay in ``[0, max_ms]`` milliseconds, 0 when max_ms <= 0."""
    if max_ms <= 0:
        return 0
    return random.randint(0, max_ms)


async def sleep_ms(ms: int) -> None:
    if ms <= 0:
        return
    await asyncio.sleep(ms / 1000)
