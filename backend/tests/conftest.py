"""Pytest fixtures for backend tests."""
import os
import tempfile
from typing import Any, Generator

# Keep stored uploads/results out of the working tree
os.environ.setdefault("HERO_WHEEL_STORAGE_ROOT", tempfile.mkdtemp(prefix="hero-wheel-test-"))

import pytest
from fastapi.testclient import TestClient

from hero_wheel.generation import GeneratedImage
from hero_wheel.main import app, build_rate_limiter
from hero_wheel.redis_service import RedisService
from hero_wheel.telemetry import LoggingTelemetrySink, telemetry_service


# Minimal PNG signature padded past the provider size check
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 2048
JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 2048


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (run long simulations)"
    )
    config.addinivalue_line(
        "markers", "e2e: needs a live Redis server"
    )


class MockRedis:
    """Mock Redis client for testing."""

    def __init__(self):
        self._store: dict[str, str] = {}
        self._lists: dict[str, list[str]] = {}
        self._rate: dict[str, dict[str, int]] = {}
        self._expiry: dict[str, int] = {}

    async def get(self, key: str) -> str | None:
        return self._store.get(key)

    async def set(
        self, key: str, value: str, nx: bool = False, ex: int | None = None
    ) -> bool | None:
        if nx and key in self._store:
            return None
        self._store[key] = value
        if ex is not None:
            self._expiry[key] = ex
        return True

    async def setex(self, key: str, ttl: int, value: str) -> bool:
        self._store[key] = value
        self._expiry[key] = ttl
        return True

    async def delete(self, key: str) -> int:
        removed = 0
        for bucket in (self._store, self._lists, self._rate):
            if key in bucket:
                del bucket[key]
                removed = 1
        return removed

    async def lrange(self, key: str, start: int, end: int) -> list[str]:
        items = self._lists.get(key, [])
        stop = None if end == -1 else end + 1
        return list(items[start:stop])

    async def rpush(self, key: str, *values: str) -> int:
        self._lists.setdefault(key, []).extend(values)
        return len(self._lists[key])

    async def expire(self, key: str, ttl: int) -> bool:
        self._expiry[key] = ttl
        return True

    async def eval(self, script: str, numkeys: int, *args) -> Any:
        """
        Execute Lua script (simplified mocks).

        Supports RELEASE_LOCK_SCRIPT (compare-and-delete) and RATE_LIMIT_SCRIPT
        (fixed window on KEYS[1] with ARGV now_ms, max_requests, window_ms).
        """
        if script == RedisService.RATE_LIMIT_SCRIPT:
            key = args[0]
            now, max_requests, window = int(args[1]), int(args[2]), int(args[3])
            record = self._rate.get(key)
            if record is None or record["reset_at"] <= now:
                self._rate[key] = {"count": 1, "reset_at": now + window}
                return [1, max_requests - 1]
            if record["count"] >= max_requests:
                return [0, 0]
            record["count"] += 1
            return [1, max_requests - record["count"]]

        key = args[0]
        expected_value = args[1]
        current_value = self._store.get(key)
        if current_value == expected_value:
            del self._store[key]
            return 1
        return 0

    async def close(self) -> None:
        pass

    def clear(self) -> None:
        self._store.clear()
        self._lists.clear()
        self._rate.clear()
        self._expiry.clear()


class FakeImageGenerator:
    """Stands in for the remote provider; records calls."""

    name = "fake"

    def __init__(self):
        self.calls: list[dict[str, Any]] = []
        self.content = PNG_BYTES
        self.content_type = "image/png"
        self.error: Exception | None = None

    async def generate(
        self, prompt: str, image_url: str, seed: int | None = None
    ) -> GeneratedImage:
        self.calls.append({"prompt": prompt, "image_url": image_url, "seed": seed})
        if self.error is not None:
            raise self.error
        return GeneratedImage(content=self.content, content_type=self.content_type)


class RecordingTelemetrySink:
    """Telemetry sink that keeps events in memory."""

    def __init__(self):
        self.events: list[tuple[str, dict[str, Any]]] = []

    def emit(self, event_name: str, data: dict[str, Any]) -> None:
        self.events.append((event_name, data))

    def get_events(self, event_name: str) -> list[dict[str, Any]]:
        return [data for name, data in self.events if name == event_name]


@pytest.fixture
def mock_redis() -> MockRedis:
    """Create a fresh mock Redis for each test."""
    return MockRedis()


@pytest.fixture
def redis_service_with_mock(mock_redis: MockRedis) -> Generator[RedisService, None, None]:
    """Create RedisService with mock client."""
    service = RedisService()
    service._client = mock_redis
    yield service
    mock_redis.clear()


@pytest.fixture
def fake_generator(monkeypatch) -> FakeImageGenerator:
    """Replace the configured image provider."""
    generator = FakeImageGenerator()
    monkeypatch.setattr("hero_wheel.main.image_generator", generator)
    return generator


@pytest.fixture
def telemetry() -> Generator[RecordingTelemetrySink, None, None]:
    """Capture telemetry events for the duration of a test."""
    sink = RecordingTelemetrySink()
    telemetry_service.set_sink(sink)
    yield sink
    telemetry_service.set_sink(LoggingTelemetrySink())


@pytest.fixture
def client_with_mock_redis(
    mock_redis: MockRedis, fake_generator: FakeImageGenerator
) -> Generator[TestClient, None, None]:
    """Create TestClient with mocked Redis, a fresh rate limiter and a fake provider."""
    from hero_wheel.redis_service import redis_service

    # Patch the global redis_service client
    original_client = redis_service._client
    redis_service._client = mock_redis
    app.state.rate_limiter = build_rate_limiter()

    with TestClient(app) as client:
        yield client

    # Restore original
    redis_service._client = original_client
    mock_redis.clear()


@pytest.fixture
def test_client() -> TestClient:
    """Create basic TestClient (for tests that don't need Redis)."""
    return TestClient(app)
