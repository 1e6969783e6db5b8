"""In-memory admission guard for the checkout endpoint.

Each client key owns the list of request timestamps (milliseconds) seen in
the current window. State lives only in the process; a restart resets every
limit, which is fine for abuse-damping.
"""

import hashlib
import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


def _now_ms() -> float:
    return time.time() * 1000


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float     # epoch ms


class RateLimiter:

    def __init__(self, max_requests: int = 10, window_ms: int = 60_000, clock: Callable[[], float] = _now_ms):
        if max_requests < 1 or window_ms <= 0:
            raise ValueError("max_requests must be >= 1 and window_ms > 0")
        self.max_requests = max_requests
        self.window_ms = window_ms
        self.clock = clock
        self._store: Dict[str, List[float]] = {}
        self._lock = threading.Lock()
        self._stop: Optional[threading.Event] = None
        self._sweeper: Optional[threading.Thread] = None

    def check(self, key: str) -> RateLimitDecision:
        with self._lock:
            now = self.clock()
            window_start = now - self.window_ms
            timestamps = [ts for ts in self._store.get(key, []) if ts > window_start]

            if len(timestamps) >= self.max_requests:
                self._store[key] = timestamps
                return RateLimitDecision(
                    allowed=False,
                    limit=self.max_requests,
                    remaining=0,
                    reset_at=timestamps[0] + self.window_ms,
                )

            timestamps.append(now)
            self._store[key] = timestamps
            return RateLimitDecision(
                allowed=True,
                limit=self.max_requests,
                remaining=self.max_requests - len(timestamps),
                reset_at=now + self.window_ms,
            )

    def retry_after_ms(self, decision: RateLimitDecision) -> float:
        return max(decision.reset_at - self.clock(), 0)

    def sweep(self) -> int:
        """Drop keys with no request inside the current window. Returns how many were evicted."""
        with self._lock:
            window_start = self.clock() - self.window_ms
            stale = [k for k, ts in self._store.items() if all(t <= window_start for t in ts)]
            for k in stale:
                del self._store[k]
        if stale:
            logger.debug("Rate limiter evicted %d idle keys", len(stale))
        return len(stale)

    def __len__(self):
        with self._lock:
            return len(self._store)

    def start_sweeper(self, interval_s: float = 300):
        if self._sweeper is not None:
            return
        self._stop = threading.Event()

        def run(stop=self._stop):
            while not stop.wait(interval_s):
                self.sweep()

        self._sweeper = threading.Thread(target=run, name="rate-limit-sweeper", daemon=True)
        self._sweeper.start()

    def stop_sweeper(self):
        if self._sweeper is None:
            return
        self._stop.set()
        self._sweeper.join(timeout=1)
        self._sweeper = None
        self._stop = None


def rate_limit_headers(decision: RateLimitDecision) -> dict:
    return {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
        "X-RateLimit-Reset": str(math.ceil(decision.reset_at / 1000)),
    }


def client_key(headers) -> str:
    """Identify a client from proxy headers, falling back to a browser fingerprint."""
    forwarded_for = headers.get("x-forwarded-for")
    if forwarded_for:
        # may hold a chain of proxies; the first entry is the client
        ip = forwarded_for.split(",")[0].strip()
        if ip:
            return ip

    real_ip = headers.get("x-real-ip")
    if real_ip:
        return real_ip

    user_agent = headers.get("user-agent") or "unknown"
    accept_language = headers.get("accept-language") or ""
    combined = f"{user_agent}:{accept_language}".encode("utf-8")
    return "fallback:" + hashlib.blake2b(combined, digest_size=8).hexdigest()
