from __future__ import annotations

from datetime import UTC, datetime
import re

ARTIFACT_PREFIX = "past-forward"
_SLUG_INVALID = re.compile(r"[^a-z0-9]+")


def utc_now_iso() -> str:
    return datetime.now(UTC).isoformat()


def era_slug(era: str) -> str:
    slug = _SLUG_INVALID.sub("-", era.lower()).strip("-")
    return slug or "era"


def era_image_name(era: str) -> str:
    return f"{ARTIFACT_PREFIX}-{era_slug(era)}.jpg"


def album_image_name() -> str:
    return f"{ARTIFACT_PREFIX}-album.jpg"
