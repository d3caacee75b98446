"""Selection policy for the content feed.

Branches, in priority order:

1. explicit categories (``categories`` wins over ``category``): manual order
2. authenticated user with interests that match active items: manual order
3. everything else: all active items, trending order

Personalization is optional. Any interest lookup failure falls through to the
trending branch instead of failing the request.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, FrozenSet, List, Literal, Optional, Tuple, Union

from fastapi import HTTPException

from services.content_repository import ContentRepository
from services.content_types import (
    ALL_ACTIVE,
    MANUAL_ORDER,
    ContentFilter,
    ContentSort,
    RankedContent,
)
from services.interests import InterestResolver, is_valid_identifier
from services.pagination import page_offset

logger = logging.getLogger(__name__)


ExplicitFilterType = Literal["specific_single_category", "specific_multiple_categories"]
FallbackReason = Literal[
    "not_authenticated",
    "no_interests",
    "no_matching_items",
    "interest_lookup_failed",
]


@dataclass(frozen=True)
class SelectionRequest:
    page: int = 1
    limit: int = 20
    user_id: Optional[str] = None
    category_ids: Tuple[str, ...] = ()
    explicit_filter_type: Optional[ExplicitFilterType] = None
    language: Optional[str] = None

    def __post_init__(self) -> None:
        if self.page < 1:
            raise ValueError("page must be >= 1")
        if self.limit < 1:
            raise ValueError("limit must be >= 1")

    @property
    def has_explicit_filter(self) -> bool:
        return bool(self.category_ids)


@dataclass(frozen=True)
class ExplicitCategoryMode:
    category_ids: Tuple[str, ...]
    filter_type: ExplicitFilterType

    def describe(self) -> Dict[str, Any]:
        return {"is_personalized": False, "filter_type": self.filter_type}


@dataclass(frozen=True)
class PersonalizedMode:
    interest_category_ids: Tuple[str, ...]
    filter_type: Literal["user_interests"] = "user_interests"

    def describe(self) -> Dict[str, Any]:
        return {
            "is_personalized": True,
            "filter_type": self.filter_type,
            "interest_categories": list(self.interest_category_ids),
        }


@dataclass(frozen=True)
class TrendingFallbackMode:
    reason: FallbackReason
    filter_type: Literal["trending_fallback"] = "trending_fallback"

    def describe(self) -> Dict[str, Any]:
        return {
            "is_personalized": False,
            "filter_type": self.filter_type,
            "fallback_reason": self.reason,
        }


SelectionMode = Union[ExplicitCategoryMode, PersonalizedMode, TrendingFallbackMode]


@dataclass
class FeedSelection:
    mode: SelectionMode
    total_count: int
    items: List[RankedContent] = field(default_factory=list)


def parse_category_ids(raw: Optional[str]) -> Tuple[str, ...]:
    """Split a comma-separated id list, dropping blanks and duplicates.

    Raises 400 on any malformed id.
    """
    tokens = [token.strip() for token in str(raw or "").split(",")]
    ids = list(dict.fromkeys(token.lower() for token in tokens if token))
    invalid = [token for token in ids if not is_valid_identifier(token)]
    if invalid:
        raise HTTPException(status_code=400, detail=f"Invalid category ID: {invalid[0]}")
    return tuple(ids)


def parse_single_category_id(raw: Optional[str]) -> Optional[str]:
    text = str(raw or "").strip()
    if not text:
        return None
    if not is_valid_identifier(text):
        raise HTTPException(status_code=400, detail=f"Invalid category ID: {text}")
    return text.lower()


def build_selection_request(
    *,
    category: Optional[str] = None,
    categories: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
    language: Optional[str] = None,
    user_id: Optional[str] = None,
) -> SelectionRequest:
    """Normalize raw query values into a SelectionRequest."""
    multiple = parse_category_ids(categories)
    if multiple:
        return SelectionRequest(
            page=page,
            limit=limit,
            user_id=user_id,
            category_ids=multiple,
            explicit_filter_type="specific_multiple_categories",
            language=language,
        )

    single = parse_single_category_id(category)
    if single:
        return SelectionRequest(
            page=page,
            limit=limit,
            user_id=user_id,
            category_ids=(single,),
            explicit_filter_type="specific_single_category",
            language=language,
        )

    return SelectionRequest(page=page, limit=limit, user_id=user_id, language=language)


async def fetch_page(
    repository: ContentRepository,
    content_filter: ContentFilter,
    sort: ContentSort,
    *,
    page: int,
    limit: int,
    total_count: Optional[int] = None,
) -> Tuple[List[RankedContent], int]:
    """Count and fetch one page with the same filter."""
    if total_count is None:
        total_count = await repository.count(content_filter)
    skip = page_offset(page, limit)
    if skip >= total_count:
        return [], total_count
    items = await repository.find(content_filter, sort, skip=skip, limit=limit)
    return items, total_count


async def _resolve_interests_fail_open(
    resolver: InterestResolver,
    user_id: Optional[str],
) -> Tuple[FrozenSet[str], FallbackReason]:
    """Return (interest ids, reason to use if the trending branch is taken)."""
    if not user_id:
        return frozenset(), "not_authenticated"
    try:
        interests = await resolver.resolve(user_id)
    except Exception as exc:
        logger.warning("Interest lookup failed for user %s, serving trending feed: %s", user_id, exc)
        return frozenset(), "interest_lookup_failed"
    return interests, "no_interests"


async def select_feed(
    request: SelectionRequest,
    *,
    repository: ContentRepository,
    resolver: InterestResolver,
    now: datetime,
) -> FeedSelection:
    if request.has_explicit_filter:
        mode: SelectionMode = ExplicitCategoryMode(
            category_ids=request.category_ids,
            filter_type=request.explicit_filter_type or "specific_multiple_categories",
        )
        items, total = await fetch_page(
            repository,
            ContentFilter.for_categories(request.category_ids),
            MANUAL_ORDER,
            page=request.page,
            limit=request.limit,
        )
        return FeedSelection(mode=mode, total_count=total, items=items)

    interests, reason = await _resolve_interests_fail_open(resolver, request.user_id)
    if interests:
        interest_filter = ContentFilter.for_categories(interests)
        interest_total = await repository.count(interest_filter)
        if interest_total > 0:
            items, total = await fetch_page(
                repository,
                interest_filter,
                MANUAL_ORDER,
                page=request.page,
                limit=request.limit,
                total_count=interest_total,
            )
            return FeedSelection(
                mode=PersonalizedMode(interest_category_ids=tuple(sorted(interests))),
                total_count=total,
                items=items,
            )
        reason = "no_matching_items"

    items, total = await fetch_page(
        repository,
        ALL_ACTIVE,
        ContentSort.trending(now),
        page=request.page,
        limit=request.limit,
    )
    return FeedSelection(mode=TrendingFallbackMode(reason=reason), total_count=total, items=items)
