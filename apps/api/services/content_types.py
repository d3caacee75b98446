"""Read-side records shared by the content feed services."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, Literal, Optional, Tuple


ImageLanguage = Literal["english", "hindi"]
SUPPORTED_IMAGE_LANGUAGES: Tuple[str, ...] = ("english", "hindi")
DEFAULT_IMAGE_LANGUAGE = "english"

# Stand-in for rows stored without a creation time; ranks them as oldest.
UNKNOWN_CREATED_AT = datetime(1970, 1, 1, tzinfo=timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Normalize to aware UTC; naive values are taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class ContentImage:
    url: str
    alt: Optional[str] = None
    language: str = DEFAULT_IMAGE_LANGUAGE

    @classmethod
    def from_json(cls, raw: Any) -> Optional["ContentImage"]:
        if not isinstance(raw, dict):
            return None
        url = str(raw.get("url") or "").strip()
        if not url:
            return None
        alt = raw.get("alt")
        language = str(raw.get("language") or DEFAULT_IMAGE_LANGUAGE).strip().lower()
        return cls(url=url, alt=str(alt) if alt is not None else None, language=language)

    def as_dict(self) -> Dict[str, Any]:
        return {"url": self.url, "alt": self.alt, "language": self.language}


@dataclass(frozen=True)
class CategorySummary:
    id: str
    title: str
    slug: str

    def as_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "title": self.title, "slug": self.slug}


@dataclass(frozen=True)
class ContentRecord:
    """Active content item as the feed sees it."""

    id: str
    title: str
    slug: str
    category_id: str
    images: Tuple[ContentImage, ...]
    sort_order: int
    created_at: datetime
    updated_at: Optional[datetime] = None

    def with_images(self, images: Tuple[ContentImage, ...]) -> "ContentRecord":
        return replace(self, images=images)


@dataclass(frozen=True)
class ContentFilter:
    """Predicate shared by ``count`` and ``find``.

    ``category_ids=None`` means no category restriction. Inactive items
    (soft-deleted or suspended) are always excluded.
    """

    category_ids: Optional[FrozenSet[str]] = None

    @classmethod
    def for_categories(cls, category_ids) -> "ContentFilter":
        return cls(category_ids=frozenset(category_ids))


ALL_ACTIVE = ContentFilter()


@dataclass(frozen=True)
class ContentSort:
    """``manual``: sort_order asc, created_at desc. ``trending``: score desc, created_at desc."""

    kind: Literal["manual", "trending"] = "manual"
    now: Optional[datetime] = None

    @classmethod
    def trending(cls, now: datetime) -> "ContentSort":
        return cls(kind="trending", now=now)


MANUAL_ORDER = ContentSort()


@dataclass(frozen=True)
class RankedContent:
    record: ContentRecord
    trending_score: Optional[float] = None

