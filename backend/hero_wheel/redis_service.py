"""Redis service for wheel state, generation locking, history and shared rate limits."""
import json
import time
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

import redis.asyncio as redis

from hero_wheel.config import settings
from hero_wheel.errors import ErrorCode, WheelError
from hero_wheel.rate_limit import RateLimitDecision


@dataclass
class LockMetrics:
    """Metrics from lock acquisition for telemetry."""

    acquire_ms: float


class RedisService:
    """Redis client for per-client wheel state, locks, history and rate limits."""

    # Key prefixes
    LOCK_PREFIX = "lock:client:"
    STATE_PREFIX = "state:client:"
    HISTORY_PREFIX = "history:client:"
    RATE_LIMIT_PREFIX = "ratelimit:"

    # TTLs in seconds
    LOCK_TTL = settings.lock_ttl_seconds
    STATE_TTL = settings.wheel_state_ttl_seconds
    HISTORY_TTL = settings.history_ttl_seconds

    # Lua script for token-safe lock release (compare-and-delete)
    # Only deletes if current value matches token; prevents releasing another's lock
    RELEASE_LOCK_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    else
        return 0
    end
    """

    # Fixed-window counter, same rules as rate_limit.RateLimiter.
    # ARGV: now_ms, max_requests, window_ms. Returns {allowed, remaining}.
    # Expired windows are removed by PEXPIRE instead of a cleanup pass.
    RATE_LIMIT_SCRIPT = """
    local now = tonumber(ARGV[1])
    local max_requests = tonumber(ARGV[2])
    local window = tonumber(ARGV[3])
    local count = tonumber(redis.call("hget", KEYS[1], "count"))
    local reset_at = tonumber(redis.call("hget", KEYS[1], "reset_at"))
    if count == nil or reset_at == nil or reset_at <= now then
        redis.call("hset", KEYS[1], "count", 1, "reset_at", now + window)
        redis.call("pexpire", KEYS[1], window)
        return {1, max_requests - 1}
    end
    if count >= max_requests then
        return {0, 0}
    end
    count = redis.call("hincrby", KEYS[1], "count", 1)
    return {1, max_requests - count}
    """

    def __init__(self, redis_url: str | None = None):
        self._url = redis_url or settings.redis_url
        self._client: redis.Redis | None = None

    async def connect(self) -> None:
        """Connect to Redis."""
        if self._client is None:
            self._client = redis.from_url(self._url, decode_responses=True)

    async def close(self) -> None:
        """Close Redis connection."""
        if self._client:
            await self._client.close()
            self._client = None

    @property
    def client(self) -> redis.Redis:
        """Get Redis client, raise if not connected."""
        if self._client is None:
            raise RuntimeError("Redis not connected")
        return self._client

    # === Locking ===

    async def acquire_client_lock(self, client_key: str) -> str | None:
        """
        Attempt to acquire per-client generation lock with unique token.

        Returns token string if lock acquired, None if already locked.
        """
        key = f"{self.LOCK_PREFIX}{client_key}"
        token = str(uuid.uuid4())
        # SET NX EX returns True if key was set (lock acquired)
        acquired = await self.client.set(key, token, nx=True, ex=self.LOCK_TTL)
        return token if acquired is True else None

    async def release_client_lock(self, client_key: str, token: str) -> bool:
        """
        Release per-client lock only if token matches (token-safe).

        Returns True if lock was released, False if token didn't match.
        """
        key = f"{self.LOCK_PREFIX}{client_key}"
        result = await self.client.eval(self.RELEASE_LOCK_SCRIPT, 1, key, token)
        return result == 1

    @asynccontextmanager
    async def client_lock(self, client_key: str):
        """
        Context manager for the per-client generation lock.

        Raises GENERATION_IN_PROGRESS if lock cannot be acquired.
        Automatically releases lock on exit (token-safe).
        Yields LockMetrics for telemetry.
        """
        t0 = time.monotonic()
        token = await self.acquire_client_lock(client_key)
        if token is None:
            raise WheelError(
                ErrorCode.GENERATION_IN_PROGRESS,
                "Another generation is in progress for this client.",
            )
        metrics = LockMetrics(acquire_ms=(time.monotonic() - t0) * 1000)
        try:
            yield metrics
        finally:
            await self.release_client_lock(client_key, token)

    # === Wheel state ===

    async def get_wheel_state(self, client_key: str) -> dict[str, Any] | None:
        """
        Load the client's wheel state.

        Returns None if no state exists (new client or expired).
        """
        key = f"{self.STATE_PREFIX}{client_key}"
        cached = await self.client.get(key)
        if cached is None:
            return None
        return json.loads(cached)

    async def save_wheel_state(self, client_key: str, state: dict[str, Any]) -> None:
        """
        Save wheel state with TTL.

        State structure:
        {
            "angle": 37.12,          # resting angle after the last spin
            "plan": {...}            # SpinPlan of the last spin, busy until it ends
        }
        """
        key = f"{self.STATE_PREFIX}{client_key}"
        await self.client.setex(key, self.STATE_TTL, json.dumps(state))

    # === History ===

    async def get_history(self, client_key: str) -> list[dict[str, Any]]:
        """Recent generations, newest first."""
        key = f"{self.HISTORY_PREFIX}{client_key}"
        raw = await self.client.lrange(key, 0, -1)
        return [json.loads(item) for item in raw]

    async def push_history(
        self, client_key: str, item: dict[str, Any], max_items: int | None = None
    ) -> list[dict[str, Any]]:
        """
        Prepend a generation to the client's history.

        Entries with the same generatedImage are replaced; the list is trimmed
        to `max_items`. Returns the updated history.
        """
        limit = max_items or settings.history_max_items
        key = f"{self.HISTORY_PREFIX}{client_key}"
        existing = await self.get_history(client_key)
        updated = [item] + [
            entry
            for entry in existing
            if entry.get("generatedImage") != item.get("generatedImage")
        ]
        updated = updated[:limit]

        await self.client.delete(key)
        await self.client.rpush(key, *[json.dumps(entry) for entry in updated])
        await self.client.expire(key, self.HISTORY_TTL)
        return updated

    async def clear_history(self, client_key: str) -> None:
        """Remove the client's history."""
        key = f"{self.HISTORY_PREFIX}{client_key}"
        await self.client.delete(key)

    # === Rate limiting (shared backend) ===

    async def check_rate_limit(
        self, client_key: str, max_requests: int, window_ms: int
    ) -> RateLimitDecision:
        """Fixed-window check executed atomically in Redis."""
        key = f"{self.RATE_LIMIT_PREFIX}{client_key}"
        now_ms = int(time.time() * 1000)
        allowed, remaining = await self.client.eval(
            self.RATE_LIMIT_SCRIPT, 1, key, now_ms, max_requests, int(window_ms)
        )
        return RateLimitDecision(allowed=bool(allowed), remaining=int(remaining))


# Global instance
redis_service = RedisService()
