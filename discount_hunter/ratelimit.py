import asyncio
import random
from typing import Dict, Optional


class RateLimiter:
    """
    Fixed minimum spacing between requests on the same channel (host).

    Each caller reserves the next free slot and sleeps until it arrives.
    The reservation is made before any await, so concurrent workers on one
    event loop never get the same slot.
    """

    def __init__(self, min_interval: float):
        if min_interval < 0:
            raise ValueError("min_interval must be >= 0")
        self.min_interval = min_interval
        self._next_slot: Dict[str, float] = {}

    def reserve(self, channel: str = "default") -> float:
        """Reserve a slot and return how long to wait for it."""
        now = asyncio.get_running_loop().time()
        slot = max(now, self._next_slot.get(channel, now))
        self._next_slot[channel] = slot + self.min_interval
        return slot - now

    async def acquire(self, channel: str = "default") -> float:
        delay = self.reserve(channel)
        if delay > 0:
            await asyncio.sleep(delay)
        return delay


def backoff_delay(
    attempt: int,
    base: float,
    jitter: float,
    cap: float,
    retry_after: Optional[float] = None,
    rng: Optional[random.Random] = None,
) -> float:
    """Exponential backoff for the given (1-based) failed attempt, plus jitter."""
    rng = rng or random
    delay = min(cap, base * (2 ** (attempt - 1))) + rng.uniform(0, jitter)
    if retry_after:
        # honour the server hint, but never past the cap
        delay = max(delay, min(retry_after, cap))
    return delay
