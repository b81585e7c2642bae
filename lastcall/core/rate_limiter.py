"""
Token Bucket Rate Limiter - controls outbound SMS throughput.

Provides:
- TokenBucket primitive
- Per-dispatch send limiter sized from settings.blast_send_rps
"""

import asyncio
import logging
import time
from typing import Optional


logger = logging.getLogger(__name__)


class TokenBucket:
    """
    Token Bucket rate limiter for controlling request throughput.

    Used to keep blast sends under the provider's messages-per-second limit.
    """

    def __init__(self, rate: float, capacity: Optional[float] = None):
        """
        Initialize token bucket.

        Args:
            rate: Tokens per second (RPS limit)
            capacity: Maximum bucket capacity (defaults to rate)
        """
        if rate <= 0:
            raise ValueError("rate must be positive")
        self.rate = rate
        self.capacity = capacity if capacity is not None else rate
        self.tokens = self.capacity
        self.last_update = time.monotonic()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self.last_update
        self.tokens = min(self.capacity, self.tokens + elapsed * self.rate)
        self.last_update = now

    async def acquire(self, tokens: float = 1.0) -> None:
        """
        Acquire tokens from bucket, waiting if necessary.

        Args:
            tokens: Number of tokens to acquire
        """
        while True:
            async with self._lock:
                self._refill()

                if self.tokens >= tokens:
                    self.tokens -= tokens
                    return

                needed = tokens - self.tokens
                wait_time = needed / self.rate

            # Wait outside the lock to allow other coroutines
            await asyncio.sleep(wait_time)


def create_send_limiter(rate: Optional[float] = None) -> Optional[TokenBucket]:
    """Build a fresh limiter for one blast dispatch. A rate of 0 disables limiting."""
    if rate is None:
        from ..config import settings
        rate = settings.blast_send_rps
    if not rate or rate <= 0:
        logger.debug("[BLAST] Send rate limiting disabled")
        return None
    return TokenBucket(rate=rate)
