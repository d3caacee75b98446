"""Per-language image narrowing for content listings."""

from __future__ import annotations

from typing import List, Optional, Sequence

from services.content_types import RankedContent


def filter_images(items: Sequence[RankedContent], language: Optional[str]) -> List[RankedContent]:
    """Keep only images tagged ``language``; no tag means no change.

    Runs on an already-sliced page so totals stay item based.
    """
    if not language:
        return list(items)
    filtered: List[RankedContent] = []
    for item in items:
        images = tuple(image for image in item.record.images if image.language == language)
        filtered.append(
            RankedContent(record=item.record.with_images(images), trending_score=item.trending_score)
        )
    return filtered
