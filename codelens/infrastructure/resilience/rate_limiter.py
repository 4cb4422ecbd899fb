"""Implementation of a token bucket rate limiter.

Controls the frequency of outgoing requests to prevent hitting API rate limits.
Tokens refill continuously at `refill_rate` per second; the refill is computed
lazily on every call, so no background timer is needed.
"""

import asyncio
import logging
import time
from typing import Callable, Dict

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 50
DEFAULT_REFILL_RATE = 5.0  # tokens per second


class TokenBucketRateLimiter:
    """Token bucket admission control.

    The token count is only touched inside synchronous sections (no await
    between read and write), so interleaved coroutines on one event loop
    never observe a torn update.
    """

    def __init__(
        self,
        max_tokens: float = DEFAULT_MAX_TOKENS,
        refill_rate: float = DEFAULT_REFILL_RATE,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initializes the rate limiter with a full bucket.

        Args:
            max_tokens: Bucket capacity.
            refill_rate: Tokens added per second.
            clock: Monotonic time source in seconds.
        """
        if max_tokens <= 0 or refill_rate <= 0:
            raise ValueError("max_tokens and refill_rate must be positive.")

        self.max_tokens = float(max_tokens)
        self.refill_rate = float(refill_rate)
        self._clock = clock
        self._tokens = self.max_tokens
        self._last_refill = clock()
        logger.info(f"RateLimiter initialized: capacity={self.max_tokens:g}, refill={self.refill_rate:g}/s")

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._last_refill)
        self._tokens = min(self.max_tokens, self._tokens + elapsed * self.refill_rate)
        self._last_refill = now

    def try_consume(self, tokens: float = 1) -> bool:
        """Consumes `tokens` if available. Never blocks."""
        self._refill()
        if self._tokens >= tokens:
            self._tokens -= tokens
            return True
        return False

    async def wait_for_token(self, tokens: float = 1) -> float:
        """Suspends until `tokens` are available, then consumes them.

        After a wait the bucket is treated as fully drained (tokens set to 0)
        instead of subtracting the exact amount needed.

        Returns:
            Seconds spent waiting (0.0 if the tokens were available at once).
        """
        self._refill()
        if self._tokens >= tokens:
            self._tokens -= tokens
            return 0.0

        wait_time = (tokens - self._tokens) / self.refill_rate
        logger.debug(f"Rate limit reached. Waiting for {wait_time:.2f} seconds.")
        await asyncio.sleep(wait_time)

        self._refill()
        self._tokens = 0.0
        return wait_time

    def tokens_available(self) -> float:
        """Current token count after lazy refill."""
        self._refill()
        return self._tokens

    def reset(self) -> None:
        """Refills the bucket and restarts the refill clock."""
        self._tokens = self.max_tokens
        self._last_refill = self._clock()
        logger.debug("Rate limiter reset.")

    def stats(self) -> Dict[str, float]:
        return {
            "tokens": self.tokens_available(),
            "max_tokens": self.max_tokens,
            "refill_rate": self.refill_rate,
        }
