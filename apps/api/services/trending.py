"""Trending score for content items.

score = 2 * image_count + 7 / (age_days + 1) - 0.1 * sort_order

Richer and fresher items rank higher; the rational decay keeps week-old items
competitive. Weights and the +1 offset are fixed output contracts.
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, Iterable, List

from services.content_types import ContentRecord, RankedContent, as_utc


IMAGE_COUNT_WEIGHT = 2.0
RECENCY_NUMERATOR = 7.0
RECENCY_OFFSET_DAYS = 1.0
SORT_ORDER_WEIGHT = -0.1
SECONDS_PER_DAY = 86400.0

ALGORITHM_DESCRIPTOR: Dict[str, object] = {
    "description": "Trending based on image count, recency, and sort order",
    "weights": {
        "image_count": IMAGE_COUNT_WEIGHT,
        "recency": "7-day decay",
        "sort_order": SORT_ORDER_WEIGHT,
    },
}


def age_in_days(created_at: datetime, now: datetime) -> float:
    return (as_utc(now) - as_utc(created_at)).total_seconds() / SECONDS_PER_DAY


def trending_score(item: ContentRecord, now: datetime) -> float:
    image_count = len(item.images)
    # Items stamped slightly after `now` (clock skew) score as brand new.
    age_days = max(age_in_days(item.created_at, now), 0.0)
    return (
        IMAGE_COUNT_WEIGHT * image_count
        + RECENCY_NUMERATOR / (age_days + RECENCY_OFFSET_DAYS)
        + SORT_ORDER_WEIGHT * item.sort_order
    )


def trending_sort_key(item: ContentRecord, now: datetime):
    return (-trending_score(item, now), -as_utc(item.created_at).timestamp(), item.id)


def rank_trending(items: Iterable[ContentRecord], now: datetime) -> List[RankedContent]:
    """Score and order items: score desc, then newest first."""
    ordered = sorted(items, key=lambda item: trending_sort_key(item, now))
    return [RankedContent(record=item, trending_score=trending_score(item, now)) for item in ordered]
