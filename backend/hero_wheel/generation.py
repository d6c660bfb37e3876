"""Image generation providers: Pollinations and local OpenAI-compatible servers."""
import base64
import binascii
import logging
from dataclasses import dataclass
from typing import Protocol
from urllib.parse import quote

import httpx

from hero_wheel.config import settings
from hero_wheel.errors import ErrorCode, WheelError


logger = logging.getLogger(__name__)

# encodeURIComponent-compatible safe characters
_URI_COMPONENT_SAFE = "-_.!~*'()"

ERROR_BODY_PREVIEW = 300


@dataclass
class GeneratedImage:
    """Raw image returned by a provider."""

    content: bytes
    content_type: str


class ImageGenerator(Protocol):
    """Opaque generation backend: prompt + photo reference -> image bytes."""

    name: str

    async def generate(
        self, prompt: str, image_url: str, seed: int | None = None
    ) -> GeneratedImage:
        ...


def sniff_image_type(data: bytes) -> str | None:
    """Detect PNG, JPEG or WEBP from magic bytes."""
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if data.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if len(data) >= 12 and data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return None


def _check_image_size(content: bytes, min_bytes: int) -> None:
    if len(content) < min_bytes:
        logger.warning("Generated image too small: %d bytes", len(content))
        raise WheelError(
            ErrorCode.UPSTREAM_INVALID_RESPONSE,
            "Generated image is too small. Please try again.",
        )


class PollinationsGenerator:
    """
    Pollinations image API.

    The prompt is the URL path, the source photo is passed by public URL.
    """

    name = "pollinations"

    def __init__(
        self,
        base_url: str | None = None,
        model: str | None = None,
        width: int | None = None,
        height: int | None = None,
        timeout: float | None = None,
        min_image_bytes: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.pollinations_base_url).rstrip("/")
        self.model = model or settings.pollinations_model
        self.width = width or settings.image_width
        self.height = height or settings.image_height
        self.timeout = timeout or settings.generation_timeout_seconds
        self.min_image_bytes = (
            settings.min_image_bytes if min_image_bytes is None else min_image_bytes
        )
        self._transport = transport

    def build_url(self, prompt: str, image_url: str, seed: int | None = None) -> str:
        url = (
            f"{self.base_url}/{quote(prompt, safe=_URI_COMPONENT_SAFE)}"
            f"?model={self.model}&width={self.width}&height={self.height}&safe=true"
            f"&image={quote(image_url, safe=_URI_COMPONENT_SAFE)}"
        )
        if seed:
            url += f"&seed={seed}"
        return url

    async def generate(
        self, prompt: str, image_url: str, seed: int | None = None
    ) -> GeneratedImage:
        url = self.build_url(prompt, image_url, seed)
        logger.info("Pollinations request model=%s prompt=%.100s", self.model, prompt)

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, follow_redirects=True, transport=self._transport
            ) as client:
                response = await client.get(url, headers={"Accept": "image/*"})
        except httpx.HTTPError as e:
            logger.error("Pollinations fetch error: %s", e)
            raise WheelError(
                ErrorCode.UPSTREAM_UNAVAILABLE,
                "Failed to connect to image generation server.",
                details=str(e),
            ) from e

        content_type = response.headers.get("content-type", "")
        logger.info(
            "Pollinations response status=%d content_type=%s",
            response.status_code,
            content_type,
        )

        if not content_type.startswith("image/"):
            preview = response.text[:ERROR_BODY_PREVIEW]
            logger.error("Non-image response (%s): %s", content_type, preview)
            raise WheelError(
                ErrorCode.UPSTREAM_INVALID_RESPONSE,
                "Image generation failed. Server returned non-image response.",
                details=preview,
            )

        if not response.is_success:
            raise WheelError(
                ErrorCode.UPSTREAM_INVALID_RESPONSE,
                f"Pollinations API error: {response.status_code} {response.reason_phrase}",
            )

        _check_image_size(response.content, self.min_image_bytes)
        return GeneratedImage(content=response.content, content_type=content_type)


class LocalOpenAIGenerator:
    """OpenAI-compatible /images/generations endpoint on a local inference server."""

    name = "local"

    def __init__(
        self,
        base_url: str | None = None,
        model: str | None = None,
        api_key: str | None = None,
        width: int | None = None,
        height: int | None = None,
        timeout: float | None = None,
        min_image_bytes: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.local_api_base_url).rstrip("/")
        self.model = model or settings.local_model
        self.api_key = api_key if api_key is not None else settings.local_api_key
        self.width = width or settings.image_width
        self.height = height or settings.image_height
        self.timeout = timeout or settings.generation_timeout_seconds
        self.min_image_bytes = (
            settings.min_image_bytes if min_image_bytes is None else min_image_bytes
        )
        self._transport = transport

    def build_payload(self, prompt: str, image_url: str, seed: int | None = None) -> dict:
        payload = {
            "model": self.model,
            "prompt": prompt,
            "n": 1,
            "size": f"{self.width}x{self.height}",
            "response_format": "b64_json",
            "image": image_url,
        }
        if seed:
            payload["seed"] = seed
        return payload

    async def generate(
        self, prompt: str, image_url: str, seed: int | None = None
    ) -> GeneratedImage:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        logger.info("Local generation request model=%s prompt=%.100s", self.model, prompt)

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.post(
                    "/images/generations",
                    json=self.build_payload(prompt, image_url, seed),
                    headers=headers,
                )
        except httpx.HTTPError as e:
            logger.error("Local generation server error: %s", e)
            raise WheelError(
                ErrorCode.UPSTREAM_UNAVAILABLE,
                "Failed to connect to image generation server.",
                details=str(e),
            ) from e

        if not response.is_success:
            raise WheelError(
                ErrorCode.UPSTREAM_INVALID_RESPONSE,
                f"Local generation server error: {response.status_code}",
                details=response.text[:ERROR_BODY_PREVIEW],
            )

        try:
            encoded = response.json()["data"][0]["b64_json"]
            content = base64.b64decode(encoded, validate=True)
        except (ValueError, KeyError, IndexError, TypeError, binascii.Error) as e:
            logger.error("Malformed generation response: %s", e)
            raise WheelError(
                ErrorCode.UPSTREAM_INVALID_RESPONSE,
                "Image generation failed. Server returned a malformed image.",
                details=response.text[:ERROR_BODY_PREVIEW],
            ) from e

        _check_image_size(content, self.min_image_bytes)
        return GeneratedImage(
            content=content,
            content_type=sniff_image_type(content) or "image/png",
        )


def create_generator(provider: str | None = None, **kwargs) -> ImageGenerator:
    """Build the configured provider."""
    provider = provider or settings.generation_provider
    if provider == "pollinations":
        return PollinationsGenerator(**kwargs)
    if provider == "local":
        return LocalOpenAIGenerator(**kwargs)
    raise ValueError(f"Unknown generation provider: {provider}")
