"""Request and response models for the HTTP API."""
from enum import Enum

from pydantic import BaseModel, Field

from hero_wheel.config import settings
from hero_wheel.constants import STYLE_LABELS, SUPERHEROES
from hero_wheel.logic.wheel import TWO_PI


# === Enums ===


class ArtStyle(str, Enum):
    """Art style applied to the generated image."""

    REALISTIC = "realistic"
    COMIC = "comic"
    ANIME = "anime"


# === Request Models ===


class SpinRequest(BaseModel):
    """POST /spin request body."""

    imageUrl: str | None = Field(
        default=None, description="Uploaded photo; the wheel is disabled without one"
    )


class GenerateRequest(BaseModel):
    """
    POST /generate request body.

    Hero and style are validated against the allowlists by validators.py so
    that bad values map to INVALID_HERO / INVALID_STYLE instead of a 422.
    """

    imageUrl: str | None = Field(default=None, description="Public HTTPS URL of the photo")
    selectedHero: str | None = None
    style: str = ArtStyle.REALISTIC.value
    seed: int | None = None


# === Response Models ===


class StyleInfo(BaseModel):
    id: str
    description: str


class WheelConfiguration(BaseModel):
    """GET /heroes response: everything a client needs to draw the wheel."""

    protocolVersion: str = settings.protocol_version
    heroes: list[str] = Field(default_factory=lambda: list(SUPERHEROES))
    segmentAngle: float = TWO_PI / len(SUPERHEROES)
    styles: list[StyleInfo] = Field(
        default_factory=lambda: [
            StyleInfo(id=style, description=label) for style, label in STYLE_LABELS.items()
        ]
    )
    defaultStyle: str = ArtStyle.REALISTIC.value
    allowedImageTypes: list[str] = Field(
        default_factory=lambda: list(settings.allowed_image_types)
    )
    maxImageSize: int = settings.max_image_size


class UploadResponse(BaseModel):
    """POST /upload response."""

    imageUrl: str
    filename: str
    size: int
    type: str


class SpinAnimation(BaseModel):
    """Parameters a client needs to replay the spin animation."""

    startAngle: float
    targetAngle: float
    fullRotations: float
    randomOffset: float
    durationMs: float
    easing: str = "easeOutCubic"


class SpinResponse(BaseModel):
    """POST /spin response."""

    protocolVersion: str = settings.protocol_version
    spinId: str
    hero: str
    heroIndex: int
    finalAngle: float
    animation: SpinAnimation


class HistoryItem(BaseModel):
    """One past generation."""

    id: str
    originalImage: str
    generatedImage: str
    hero: str
    style: str
    createdAt: str


class HistoryResponse(BaseModel):
    """GET /history response."""

    protocolVersion: str = settings.protocol_version
    items: list[HistoryItem] = Field(default_factory=list)
