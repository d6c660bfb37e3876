"""Application configuration from environment (HERO_WHEEL_* variables)."""
from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Server settings with production defaults."""

    model_config = ConfigDict(env_prefix="HERO_WHEEL_")

    # Server
    debug: bool = False
    redis_url: str = "redis://localhost:6379/0"
    host: str = "0.0.0.0"
    port: int = 8000
    public_base_url: str = "http://localhost:8000"

    # Protocol
    protocol_version: str = "1.0"

    # Rate limiting (fixed window per client key)
    rate_limit_backend: str = "memory"  # "memory" | "redis"
    rate_limit_max_requests: int = 20
    rate_limit_window_ms: int = 60_000
    rate_limit_cleanup_threshold: int = 1000

    # Wheel animation plan
    spin_min_rotations: float = 5.0
    spin_max_rotations: float = 10.0
    spin_min_duration_ms: float = 4000.0
    spin_max_duration_ms: float = 6000.0

    # Uploads
    allowed_image_types: list[str] = ["image/jpeg", "image/png", "image/webp"]
    max_image_size: int = 5 * 1024 * 1024  # 5MB
    storage_root: str = "data"
    save_results: bool = True

    # Generation provider
    generation_provider: str = "pollinations"  # "pollinations" | "local"
    generation_timeout_seconds: float = 120.0
    allow_insecure_image_urls: bool = False
    min_image_bytes: int = 1000
    image_width: int = 1024
    image_height: int = 1024
    pollinations_base_url: str = "https://image.pollinations.ai/prompt"
    pollinations_model: str = "kontext"
    local_api_base_url: str = "http://localhost:8080/v1"
    local_api_key: str | None = None
    local_model: str = "flux-kontext"

    # History (recent generations per client)
    history_max_items: int = 5
    history_ttl_seconds: int = 7 * 86400

    # Wheel state persistence (last resting angle per client)
    wheel_state_ttl_seconds: int = 86400

    # Per-client generation lock, auto-expires if the process crashes
    lock_ttl_seconds: int = 180


settings = Settings()
