from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from cliprecall.config import PREVIEW_LENGTH

IMAGE_PREVIEW = "🖼 Image"
TAG_SEPARATOR = ","


class ContentType(str, Enum):
    TEXT = "text"
    IMAGE = "image"


@dataclass
class ClipboardEntry:
    id: int | None
    content_type: ContentType
    text_content: str | None
    image_bytes: bytes | None
    content_hash: str
    created_at: datetime
    expires_at: datetime | None = None
    pinned: bool = False
    is_sensitive: bool = False
    tags: list[str] = field(default_factory=list)

    @property
    def preview(self) -> str:
        if self.content_type == ContentType.IMAGE:
            return IMAGE_PREVIEW
        text = self.text_content or ""
        if len(text) > PREVIEW_LENGTH:
            return text[:PREVIEW_LENGTH] + "…"
        return text


def normalize_tags(tags: Iterable[str]) -> list[str]:
    """Trim, drop empties, deduplicate and sort a collection of tags."""
    cleaned = set()
    for tag in tags:
        for part in tag.split(TAG_SEPARATOR):
            part = part.strip()
            if part:
                cleaned.add(part)
    return sorted(cleaned)


def parse_tags(raw: str | None) -> list[str]:
    if not raw:
        return []
    return normalize_tags(raw.split(TAG_SEPARATOR))


def format_tags(tags: Iterable[str]) -> str | None:
    normalized = normalize_tags(tags)
    if not normalized:
        return None
    return TAG_SEPARATOR.join(normalized)
