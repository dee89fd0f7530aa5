from __future__ import annotations

from .models import Direction

PAST_DECADES: tuple[str, ...] = ("1950s", "1960s", "1970s", "1980s", "1990s", "2000s")
FUTURE_ERAS: tuple[str, ...] = (
    "2050s",
    "Solarpunk",
    "Cyberpunk",
    "Galactic Voyager",
    "Post-Apocalyptic",
    "2200s Utopia",
)

PROMPT_TEMPLATES: dict[Direction, str] = {
    Direction.PAST: (
        "Reimagine the person in this photo in the style of the {era}. This includes clothing, "
        "hairstyle, photo quality, and the overall aesthetic of that decade. The output must be "
        "a photorealistic image showing the person clearly."
    ),
    Direction.FUTURE: (
        "Reimagine the person in this photo in a futuristic {era} style. This includes clothing, "
        "technology, hairstyle, and the overall aesthetic of that era. The output must be a "
        "high-quality, imaginative image showing the person clearly."
    ),
}


def parse_direction(value: str | Direction) -> Direction:
    try:
        return Direction(value)
    except ValueError:
        raise ValueError(f"direction must be `past` or `future`, got: {value!r}") from None


def eras_for(direction: str | Direction) -> tuple[str, ...]:
    if parse_direction(direction) is Direction.PAST:
        return PAST_DECADES
    return FUTURE_ERAS


def build_prompt(direction: str | Direction, era: str) -> str:
    """Prompt for one era; the same (direction, era) pair always yields the same text."""
    return PROMPT_TEMPLATES[parse_direction(direction)].format(era=era)
