"""
Process-wide rate limiter for paid image provider calls.

Every job calls the provider seven times in a row, and several jobs may run at
once. This limiter is shared by all of them so the combined request rate stays
bounded:
- token bucket with a configurable per-minute rate and burst size
- optional minimum spacing between consecutive requests
- a pause window after the provider answers 429

It never retries anything; callers that cannot get a token fail their step.
"""

import logging
import threading
import time
from collections import deque
from datetime import datetime
from typing import Optional

logger = logging.getLogger(__name__)

# First 429 pauses for 30s, then 60s, 120s, ... capped at 5 minutes.
BASE_PAUSE_SECONDS = 30.0
MAX_PAUSE_SECONDS = 300.0


class ProviderRateLimiter:
    """
    Thread-safe token bucket.

    Provider calls run in worker threads, so the limiter blocks with
    `time.sleep` and guards its state with a lock.
    """

    def __init__(
        self,
        max_requests_per_minute: int = 30,
        burst_capacity: int = 7,
        min_interval_seconds: float = 0.0,
    ):
        if max_requests_per_minute <= 0:
            raise ValueError("max_requests_per_minute must be positive")
        if burst_capacity <= 0:
            raise ValueError("burst_capacity must be positive")

        self.max_requests_per_minute = max_requests_per_minute
        self.burst_capacity = burst_capacity
        self.min_interval_seconds = min_interval_seconds

        self.tokens = float(burst_capacity)
        self.max_tokens = float(burst_capacity)
        self.refill_rate = max_requests_per_minute / 60.0  # tokens per second
        self.last_refill = time.monotonic()

        self.request_times: deque = deque(maxlen=max(max_requests_per_minute, burst_capacity))
        self.last_request_time: Optional[float] = None

        self.paused_until: Optional[float] = None
        self.consecutive_429s = 0

        self.lock = threading.RLock()

        logger.info(
            "Provider rate limiter initialized: %d req/min, burst: %d, min interval: %.1fs",
            max_requests_per_minute,
            burst_capacity,
            min_interval_seconds,
        )

    def _refill_tokens(self, now: float) -> None:
        elapsed = now - self.last_refill
        self.tokens = min(self.max_tokens, self.tokens + elapsed * self.refill_rate)
        self.last_refill = now

    def _pause_remaining(self, now: float) -> float:
        if self.paused_until is None:
            return 0.0
        if now < self.paused_until:
            return self.paused_until - now
        self.paused_until = None
        logger.info("Provider pause window expired, resuming requests")
        return 0.0

    def _wait_needed(self, now: float) -> float:
        """Seconds until a request may go out, 0 when one may go out now."""
        paused = self._pause_remaining(now)
        if paused > 0:
            return paused

        self._refill_tokens(now)
        if self.tokens < 1.0:
            return (1.0 - self.tokens) / self.refill_rate

        if self.last_request_time is not None:
            since_last = now - self.last_request_time
            if since_last < self.min_interval_seconds:
                return self.min_interval_seconds - since_last
        return 0.0

    def acquire(self, timeout: Optional[float] = None) -> bool:
        """
        Block until a provider request may be made.

        Args:
            timeout: Maximum time to wait in seconds (None = wait forever)

        Returns:
            True if permission was granted, False if the timeout was reached
        """
        deadline = None if timeout is None else time.monotonic() + timeout

        while True:
            with self.lock:
                now = time.monotonic()
                wait = self._wait_needed(now)
                if wait <= 0:
                    self.tokens -= 1.0
                    self.last_request_time = now
                    self.request_times.append(now)
                    logger.debug(
                        "Rate limiter: token acquired (tokens remaining: %.1f/%.0f)",
                        self.tokens,
                        self.max_tokens,
                    )
                    return True

            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    logger.error("Rate limiter timeout reached after %.1fs", timeout)
                    return False
                wait = min(wait, remaining)

            # Sleep outside the lock.
            time.sleep(min(1.0, wait))

    def report_429(self) -> None:
        """Pause all further acquisitions after the provider answered 429."""
        with self.lock:
            self.consecutive_429s += 1
            pause = min(BASE_PAUSE_SECONDS * 2 ** (self.consecutive_429s - 1), MAX_PAUSE_SECONDS)
            self.paused_until = time.monotonic() + pause
            logger.error(
                "Provider 429 (consecutive: %d). Pausing provider requests for %.1fs",
                self.consecutive_429s,
                pause,
            )

    def report_success(self) -> None:
        with self.lock:
            if self.consecutive_429s > 0:
                self.consecutive_429s -= 1
                logger.info("Provider request succeeded, 429 counter now %d", self.consecutive_429s)

    def get_stats(self) -> dict:
        """Current limiter state, suitable for a health endpoint."""
        with self.lock:
            now = time.monotonic()
            self._refill_tokens(now)
            recent = sum(1 for t in self.request_times if t > now - 60.0)
            paused_for = self._pause_remaining(now)
            return {
                "tokens_available": round(self.tokens, 2),
                "max_tokens": self.max_tokens,
                "requests_last_minute": recent,
                "max_requests_per_minute": self.max_requests_per_minute,
                "is_paused": paused_for > 0,
                "consecutive_429s": self.consecutive_429s,
                "paused_until": (
                    datetime.fromtimestamp(time.time() + paused_for).isoformat()
                    if paused_for > 0
                    else None
                ),
            }
