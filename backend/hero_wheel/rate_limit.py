"""Fixed-window rate limiting per client key."""
import logging
import threading
import time
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass
from typing import Protocol


logger = logging.getLogger(__name__)

DEFAULT_MAX_REQUESTS = 20
DEFAULT_WINDOW_MS = 60_000
DEFAULT_CLEANUP_THRESHOLD = 1000

FALLBACK_CLIENT_KEY = "127.0.0.1"


@dataclass
class RateLimitRecord:
    """Requests admitted in the current window for one key."""

    count: int
    window_reset_at: float  # ms, same clock as the limiter


@dataclass(frozen=True)
class RateLimitDecision:
    """Admit/deny decision with the quota left in the window."""

    allowed: bool
    remaining: int


class RateLimitStore(Protocol):
    """Backing map for rate limit records."""

    def get(self, key: str) -> RateLimitRecord | None:
        ...

    def set(self, key: str, record: RateLimitRecord) -> None:
        ...

    def delete(self, key: str) -> None:
        ...

    def items(self) -> Iterator[tuple[str, RateLimitRecord]]:
        ...

    def __len__(self) -> int:
        ...


class InMemoryRateLimitStore:
    """Dict-backed store, private to one process."""

    def __init__(self) -> None:
        self._records: dict[str, RateLimitRecord] = {}

    def get(self, key: str) -> RateLimitRecord | None:
        return self._records.get(key)

    def set(self, key: str, record: RateLimitRecord) -> None:
        self._records[key] = record

    def delete(self, key: str) -> None:
        self._records.pop(key, None)

    def items(self) -> Iterator[tuple[str, RateLimitRecord]]:
        # Snapshot so callers can delete while iterating
        return iter(list(self._records.items()))

    def __len__(self) -> int:
        return len(self._records)


def monotonic_ms() -> float:
    return time.monotonic() * 1000


class RateLimiter:
    """
    Fixed-window counter per key.

    - First request of a window creates {count: 1, window_reset_at: now + window}.
    - A window is over once window_reset_at <= now; the next request starts a new one.
    - When the store holds more than `cleanup_threshold` keys, records whose window
      has already expired are dropped. Live records are never removed, so this is
      a best-effort bound, not a hard cap.

    `check` is serialized with a lock: increment-then-compare must not
    interleave across threads or two requests could both take the last slot.
    """

    def __init__(
        self,
        store: RateLimitStore | None = None,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        window_ms: float = DEFAULT_WINDOW_MS,
        cleanup_threshold: int = DEFAULT_CLEANUP_THRESHOLD,
        clock: Callable[[], float] | None = None,
    ):
        if max_requests <= 0:
            raise ValueError("max_requests must be positive")
        if window_ms <= 0:
            raise ValueError("window_ms must be positive")
        self.store = store if store is not None else InMemoryRateLimitStore()
        self.max_requests = max_requests
        self.window_ms = window_ms
        self.cleanup_threshold = cleanup_threshold
        self._clock = clock or monotonic_ms
        self._lock = threading.Lock()

    def check(self, key: str) -> RateLimitDecision:
        """Count one request for `key` and decide whether to admit it."""
        with self._lock:
            now = self._clock()

            if len(self.store) > self.cleanup_threshold:
                self._cleanup(now)

            record = self.store.get(key)
            if record is None or record.window_reset_at <= now:
                self.store.set(key, RateLimitRecord(count=1, window_reset_at=now + self.window_ms))
                return RateLimitDecision(allowed=True, remaining=self.max_requests - 1)

            if record.count >= self.max_requests:
                return RateLimitDecision(allowed=False, remaining=0)

            record.count += 1
            self.store.set(key, record)
            return RateLimitDecision(allowed=True, remaining=self.max_requests - record.count)

    def _cleanup(self, now: float) -> int:
        """Drop records whose window has expired. Returns how many were removed."""
        removed = 0
        for key, record in self.store.items():
            if record.window_reset_at < now:
                self.store.delete(key)
                removed += 1
        if removed:
            logger.debug("Rate limit cleanup removed %d expired keys", removed)
        return removed


def get_client_key(headers: Mapping[str, str]) -> str:
    """
    Client identifier for rate limiting and per-client state.

    First X-Forwarded-For hop, else X-Real-IP, else loopback.
    """
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    real_ip = headers.get("x-real-ip")
    if real_ip and real_ip.strip():
        return real_ip.strip()
    return FALLBACK_CLIENT_KEY
