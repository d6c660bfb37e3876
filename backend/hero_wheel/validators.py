"""Request validators."""
from hero_wheel.config import settings
from hero_wheel.constants import STYLE_MODIFIERS, SUPERHEROES
from hero_wheel.errors import ErrorCode, WheelError
from hero_wheel.protocol import GenerateRequest
from hero_wheel.storage import FILES_ROUTE, format_bytes


def is_own_file_url(image_url: str) -> bool:
    """True for URLs this service handed out from /upload."""
    prefix = f"{settings.public_base_url.rstrip('/')}{FILES_ROUTE}/"
    return image_url.startswith(prefix) and len(image_url) > len(prefix)


def validate_image_url(image_url: str | None) -> str:
    """
    Validate the photo reference passed to the generation backend.

    Our own /files URLs are always accepted, whatever their scheme.
    Raises INVALID_REQUEST if missing or not a public HTTPS URL.
    """
    if not image_url:
        raise WheelError(
            ErrorCode.INVALID_REQUEST,
            "Image URL is required. Please provide a public HTTPS image URL.",
        )
    if is_own_file_url(image_url):
        return image_url
    if settings.allow_insecure_image_urls:
        if not image_url.startswith(("https://", "http://")):
            raise WheelError(
                ErrorCode.INVALID_REQUEST,
                "Image URL must be an HTTP(S) URL.",
            )
    elif not image_url.startswith("https://"):
        raise WheelError(
            ErrorCode.INVALID_REQUEST,
            "Image URL must be a public HTTPS URL (e.g. from ImgBB, Imgur).",
        )
    return image_url


def validate_hero(hero: str | None) -> str:
    """Raises INVALID_HERO if hero is missing or not on the wheel."""
    if not hero:
        raise WheelError(ErrorCode.INVALID_HERO, "Selected hero is required")
    if hero not in SUPERHEROES:
        raise WheelError(
            ErrorCode.INVALID_HERO,
            f"Invalid hero. Must be one of: {', '.join(SUPERHEROES)}",
        )
    return hero


def validate_style(style: str) -> str:
    """Raises INVALID_STYLE for anything but realistic, comic or anime."""
    if style not in STYLE_MODIFIERS:
        raise WheelError(
            ErrorCode.INVALID_STYLE,
            "Invalid style. Must be: realistic, comic, or anime",
        )
    return style


def validate_generate_request(request: GenerateRequest) -> None:
    """Run all validations on generate request."""
    validate_image_url(request.imageUrl)
    validate_hero(request.selectedHero)
    validate_style(request.style)


def validate_upload(content_type: str | None, size: int) -> None:
    """
    Validate an uploaded photo.

    Raises INVALID_IMAGE for unsupported types, empty files or files over the limit.
    """
    if content_type not in settings.allowed_image_types:
        raise WheelError(
            ErrorCode.INVALID_IMAGE,
            f"Invalid file type. Allowed types: {', '.join(settings.allowed_image_types)}",
        )
    if size == 0:
        raise WheelError(ErrorCode.INVALID_IMAGE, "Uploaded file is empty")
    if size > settings.max_image_size:
        raise WheelError(
            ErrorCode.INVALID_IMAGE,
            f"File too large. Maximum size is {format_bytes(settings.max_image_size)}",
        )
