"""Server-side telemetry events."""
import logging
from dataclasses import asdict, dataclass
from typing import Any, Protocol


logger = logging.getLogger(__name__)


class TelemetrySink(Protocol):
    """Protocol for telemetry sinks."""

    def emit(self, event_name: str, data: dict[str, Any]) -> None:
        """Emit a telemetry event."""
        ...


class LoggingTelemetrySink:
    """Default sink that logs telemetry events."""

    def emit(self, event_name: str, data: dict[str, Any]) -> None:
        """Log telemetry event."""
        logger.info("TELEMETRY %s: %s", event_name, data)


@dataclass
class SpinCompletedEvent:
    """spin_completed: a wheel spin resolved to a hero."""

    client_key: str
    spin_id: str
    hero: str
    hero_index: int
    full_rotations: float
    duration_ms: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class GenerationCompletedEvent:
    """generation_completed: provider returned a usable image."""

    client_key: str
    hero: str
    style: str
    provider: str
    image_bytes: int
    content_type: str
    elapsed_ms: float
    lock_acquire_ms: float
    result_saved: bool

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class GenerationFailedEvent:
    """generation_failed: provider call or response validation failed."""

    client_key: str
    hero: str
    style: str
    provider: str
    reason: str  # ErrorCode value
    elapsed_ms: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class RateLimitedEvent:
    """rate_limited: a request was denied by the rate limiter."""

    client_key: str
    path: str
    backend: str  # "memory" | "redis"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class TelemetryService:
    """Service for emitting server telemetry events."""

    def __init__(self, sink: TelemetrySink | None = None):
        self._sink = sink or LoggingTelemetrySink()
        self._sink_errors = 0  # Counter for sink failures

    def set_sink(self, sink: TelemetrySink) -> None:
        """Set the telemetry sink (useful for testing)."""
        self._sink = sink

    @property
    def sink_errors(self) -> int:
        return self._sink_errors

    def _safe_emit(self, event_name: str, data: dict[str, Any]) -> None:
        """
        Emit event with exception safety.

        Sink failures MUST NOT break HTTP requests.
        """
        try:
            self._sink.emit(event_name, data)
        except Exception as e:
            self._sink_errors += 1
            logger.warning(
                "Telemetry sink error (count=%d): %s - %s",
                self._sink_errors,
                event_name,
                str(e),
            )

    def emit_spin_completed(self, event: SpinCompletedEvent) -> None:
        self._safe_emit("spin_completed", event.to_dict())

    def emit_generation_completed(self, event: GenerationCompletedEvent) -> None:
        self._safe_emit("generation_completed", event.to_dict())

    def emit_generation_failed(self, event: GenerationFailedEvent) -> None:
        self._safe_emit("generation_failed", event.to_dict())

    def emit_rate_limited(self, event: RateLimitedEvent) -> None:
        self._safe_emit("rate_limited", event.to_dict())


# Global instance
telemetry_service = TelemetryService()
