"""
Tests for POST /generate.

Covers the success path (image bytes, headers, stored result, history),
upstream failures and the per-client generation lock.
"""
import json

import pytest
from fastapi.testclient import TestClient

from hero_wheel.config import settings
from hero_wheel.constants import build_prompt
from hero_wheel.errors import ErrorCode, WheelError
from tests.conftest import JPEG_BYTES, PNG_BYTES


PHOTO = "https://i.ibb.co/abc123/photo.jpg"


def generate_body(**overrides) -> dict:
    body = {"imageUrl": PHOTO, "selectedHero": "Iron Man", "style": "anime"}
    body.update(overrides)
    return body


class TestUploadThenGenerate:
    def test_generate_accepts_own_upload_url(self, client_with_mock_redis: TestClient, fake_generator):
        """The URL returned by /upload is usable as-is for /generate."""
        upload = client_with_mock_redis.post(
            "/upload", files={"image": ("me.png", PNG_BYTES, "image/png")}
        )
        assert upload.status_code == 200
        image_url = upload.json()["imageUrl"]
        assert image_url.startswith("http://localhost:8000/files/uploads/")

        response = client_with_mock_redis.post(
            "/generate", json={"imageUrl": image_url, "selectedHero": "Thor"}
        )

        assert response.status_code == 200
        assert response.content == PNG_BYTES
        assert fake_generator.calls[0]["image_url"] == image_url

    def test_foreign_http_url_still_rejected(self, client_with_mock_redis: TestClient, fake_generator):
        response = client_with_mock_redis.post(
            "/generate",
            json={"imageUrl": "http://evil.example/files/uploads/a.png", "selectedHero": "Thor"},
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_REQUEST"
        assert fake_generator.calls == []


class TestGenerateSuccess:
    def test_returns_image_bytes(self, client_with_mock_redis: TestClient, fake_generator):
        response = client_with_mock_redis.post("/generate", json=generate_body())

        assert response.status_code == 200
        assert response.content == PNG_BYTES
        assert response.headers["content-type"] == "image/png"
        assert response.headers["cache-control"] == "no-store"
        assert response.headers["X-Hero"] == "Iron Man"
        assert response.headers["X-Style"] == "anime"

    def test_provider_receives_fixed_prompt(self, client_with_mock_redis: TestClient, fake_generator):
        client_with_mock_redis.post("/generate", json=generate_body(seed=1234))

        assert fake_generator.calls == [
            {
                "prompt": build_prompt("Iron Man", "anime"),
                "image_url": PHOTO,
                "seed": 1234,
            }
        ]

    def test_content_type_follows_provider(self, client_with_mock_redis: TestClient, fake_generator):
        fake_generator.content = JPEG_BYTES
        fake_generator.content_type = "image/jpeg"

        response = client_with_mock_redis.post("/generate", json=generate_body())

        assert response.headers["content-type"] == "image/jpeg"
        assert response.headers["X-Result-Url"].endswith(".jpg")

    def test_result_stored_and_served(self, client_with_mock_redis: TestClient, fake_generator):
        response = client_with_mock_redis.post("/generate", json=generate_body())

        result_url = response.headers["X-Result-Url"]
        assert result_url.startswith(f"{settings.public_base_url}/files/results/")
        assert result_url.endswith(".png")

        served = client_with_mock_redis.get(result_url.removeprefix(settings.public_base_url))
        assert served.status_code == 200
        assert served.content == PNG_BYTES

    def test_history_recorded(self, client_with_mock_redis: TestClient, mock_redis, fake_generator):
        response = client_with_mock_redis.post("/generate", json=generate_body())

        stored = [json.loads(item) for item in mock_redis._lists["history:client:127.0.0.1"]]
        assert len(stored) == 1
        item = stored[0]
        assert item["originalImage"] == PHOTO
        assert item["generatedImage"] == response.headers["X-Result-Url"]
        assert item["hero"] == "Iron Man"
        assert item["style"] == "anime"
        assert item["createdAt"].endswith("Z")

    def test_results_not_saved_when_disabled(
        self, client_with_mock_redis: TestClient, mock_redis, fake_generator, monkeypatch
    ):
        monkeypatch.setattr("hero_wheel.main.settings.save_results", False)

        response = client_with_mock_redis.post("/generate", json=generate_body())

        assert response.status_code == 200
        assert "X-Result-Url" not in response.headers
        assert "history:client:127.0.0.1" not in mock_redis._lists

    def test_lock_released_after_success(self, client_with_mock_redis: TestClient, mock_redis, fake_generator):
        client_with_mock_redis.post("/generate", json=generate_body())

        assert "lock:client:127.0.0.1" not in mock_redis._store
        second = client_with_mock_redis.post("/generate", json=generate_body())
        assert second.status_code == 200


class TestGenerateUpstreamErrors:
    @pytest.mark.parametrize(
        "code", [ErrorCode.UPSTREAM_UNAVAILABLE, ErrorCode.UPSTREAM_INVALID_RESPONSE]
    )
    def test_provider_error_is_502(self, client_with_mock_redis: TestClient, fake_generator, code):
        fake_generator.error = WheelError(code, "Provider failed")

        response = client_with_mock_redis.post("/generate", json=generate_body())

        assert response.status_code == 502
        data = response.json()
        assert data["error"]["code"] == code.value
        assert data["error"]["recoverable"] is True
        assert response.headers["X-RateLimit-Remaining"] == "19"

    def test_lock_released_after_failure(self, client_with_mock_redis: TestClient, mock_redis, fake_generator):
        fake_generator.error = WheelError(ErrorCode.UPSTREAM_UNAVAILABLE)
        client_with_mock_redis.post("/generate", json=generate_body())

        assert "lock:client:127.0.0.1" not in mock_redis._store

    def test_failure_not_recorded_in_history(
        self, client_with_mock_redis: TestClient, mock_redis, fake_generator
    ):
        fake_generator.error = WheelError(ErrorCode.UPSTREAM_INVALID_RESPONSE)
        client_with_mock_redis.post("/generate", json=generate_body())

        assert "history:client:127.0.0.1" not in mock_redis._lists

    def test_unexpected_error_is_internal(self, client_with_mock_redis: TestClient, fake_generator):
        fake_generator.error = RuntimeError("boom")

        response = client_with_mock_redis.post("/generate", json=generate_body())

        assert response.status_code == 500
        data = response.json()
        assert data["error"]["code"] == "INTERNAL_ERROR"
        assert data["error"]["details"] is None


class TestGenerationLock:
    def test_concurrent_generation_rejected(
        self, client_with_mock_redis: TestClient, mock_redis, fake_generator
    ):
        """A generation already holding the client's lock blocks a second one."""
        mock_redis._store["lock:client:127.0.0.1"] = "other-token"

        response = client_with_mock_redis.post("/generate", json=generate_body())

        assert response.status_code == 409
        data = response.json()
        assert data["error"]["code"] == "GENERATION_IN_PROGRESS"
        assert data["error"]["recoverable"] is True
        assert fake_generator.calls == []
        # Held lock belongs to someone else and must survive
        assert mock_redis._store["lock:client:127.0.0.1"] == "other-token"

    def test_lock_is_per_client(self, client_with_mock_redis: TestClient, mock_redis, fake_generator):
        mock_redis._store["lock:client:203.0.113.1"] = "other-token"

        response = client_with_mock_redis.post(
            "/generate", json=generate_body(), headers={"X-Forwarded-For": "203.0.113.2"}
        )
        assert response.status_code == 200


class TestGenerateTelemetry:
    def test_generation_completed(self, client_with_mock_redis: TestClient, fake_generator, telemetry):
        client_with_mock_redis.post("/generate", json=generate_body())

        events = telemetry.get_events("generation_completed")
        assert len(events) == 1
        event = events[0]
        assert event["client_key"] == "127.0.0.1"
        assert event["hero"] == "Iron Man"
        assert event["style"] == "anime"
        assert event["provider"] == "fake"
        assert event["image_bytes"] == len(PNG_BYTES)
        assert event["content_type"] == "image/png"
        assert event["result_saved"] is True
        assert event["elapsed_ms"] >= 0
        assert event["lock_acquire_ms"] >= 0

    def test_generation_failed(self, client_with_mock_redis: TestClient, fake_generator, telemetry):
        fake_generator.error = WheelError(ErrorCode.UPSTREAM_UNAVAILABLE)

        client_with_mock_redis.post("/generate", json=generate_body())

        assert telemetry.get_events("generation_completed") == []
        events = telemetry.get_events("generation_failed")
        assert len(events) == 1
        assert events[0]["reason"] == "UPSTREAM_UNAVAILABLE"
        assert events[0]["provider"] == "fake"
