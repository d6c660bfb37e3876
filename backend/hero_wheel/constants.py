"""Wheel configuration: hero allowlist, art styles and prompt text."""

# Wheel order defines angular position; index 0 starts at the wheel's zero angle.
SUPERHEROES: tuple[str, ...] = (
    "Spider-Man",
    "Iron Man",
    "Captain America",
    "Thor",
    "Hulk",
    "Black Panther",
    "Doctor Strange",
    "Wolverine",
    "Deadpool",
    "Black Widow",
    "Scarlet Witch",
    "Captain Marvel",
    "Ant-Man",
    "Vision",
    "Hawkeye",
    "Star-Lord",
)

DEFAULT_STYLE = "realistic"

STYLE_MODIFIERS: dict[str, str] = {
    "realistic": "photorealistic, cinematic lighting, detailed",
    "comic": "comic book style, bold colors, dynamic pose, Marvel Comics art",
    "anime": "anime style, vibrant colors, Japanese animation aesthetic",
}

STYLE_LABELS: dict[str, str] = {
    "realistic": "Cinematic, photorealistic",
    "comic": "Marvel Comics style",
    "anime": "Japanese animation",
}

GENERATION_PROMPT_TEMPLATE = (
    "Transform the uploaded person into {hero}. "
    "Keep the person's identity and face recognizable. "
    "High quality, cinematic lighting, detailed costume, realistic. "
    "No nudity. No gore."
)


def build_prompt(hero: str, style: str) -> str:
    """Fixed prompt for a hero and art style; unknown styles use the realistic modifier."""
    modifier = STYLE_MODIFIERS.get(style, STYLE_MODIFIERS[DEFAULT_STYLE])
    return f"{GENERATION_PROMPT_TEMPLATE.format(hero=hero)} {modifier}"
