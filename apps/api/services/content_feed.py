"""Content feed services: selection, ranking, image filtering and pagination."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from services.content_repository import ContentRepository, SqlContentRepository
from services.content_types import (
    ALL_ACTIVE,
    MANUAL_ORDER,
    CategorySummary,
    ContentFilter,
    ContentSort,
    RankedContent,
)
from services.feed_selection import SelectionRequest, fetch_page, parse_single_category_id, select_feed
from services.interests import InterestResolver, SqlInterestResolver, is_valid_identifier
from services.language_filter import filter_images
from services.pagination import paginate
from services.trending import ALGORITHM_DESCRIPTOR

logger = logging.getLogger(__name__)


def _item_payload(item: RankedContent, categories: Dict[str, CategorySummary]) -> Dict[str, Any]:
    record = item.record
    category = categories.get(record.category_id)
    payload: Dict[str, Any] = {
        "id": record.id,
        "title": record.title,
        "slug": record.slug,
        "category": category.as_dict() if category else None,
        "images": [image.as_dict() for image in record.images],
        "sort_order": record.sort_order,
        "created_at": record.created_at.isoformat(),
        "updated_at": record.updated_at.isoformat() if record.updated_at else None,
    }
    if item.trending_score is not None:
        payload["trending_score"] = item.trending_score
    return payload


async def _render_items(
    items: List[RankedContent],
    *,
    repository: ContentRepository,
    language: Optional[str],
) -> List[Dict[str, Any]]:
    categories = await repository.get_categories(item.record.category_id for item in items)
    return [_item_payload(item, categories) for item in filter_images(items, language)]


async def get_content_feed_service(
    *,
    request: SelectionRequest,
    db: Optional[AsyncSession] = None,
    repository: Optional[ContentRepository] = None,
    resolver: Optional[InterestResolver] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Build the main content feed for one request."""
    repository = repository or SqlContentRepository(db)
    resolver = resolver or SqlInterestResolver(db)
    current = now or datetime.now(timezone.utc)

    selection = await select_feed(request, repository=repository, resolver=resolver, now=current)
    pagination = paginate(request.page, request.limit, selection.total_count)
    personalization = selection.mode.describe()
    logger.info(
        "content_feed filter=%s user=%s page=%s total=%s returned=%s",
        personalization["filter_type"],
        request.user_id or "-",
        request.page,
        selection.total_count,
        len(selection.items),
    )
    return {
        "items": await _render_items(selection.items, repository=repository, language=request.language),
        **pagination.as_dict(),
        "personalization": personalization,
    }


async def get_trending_content_service(
    *,
    request: SelectionRequest,
    db: Optional[AsyncSession] = None,
    repository: Optional[ContentRepository] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Trending ranking over all active items or an explicit category set."""
    repository = repository or SqlContentRepository(db)
    current = now or datetime.now(timezone.utc)
    content_filter = ContentFilter.for_categories(request.category_ids) if request.has_explicit_filter else ALL_ACTIVE

    items, total = await fetch_page(
        repository,
        content_filter,
        ContentSort.trending(current),
        page=request.page,
        limit=request.limit,
    )
    pagination = paginate(request.page, request.limit, total)
    return {
        "items": await _render_items(items, repository=repository, language=request.language),
        **pagination.as_dict(),
        "filters": {
            "categories": list(request.category_ids) if request.has_explicit_filter else None,
            "language": request.language,
        },
        "algorithm": ALGORITHM_DESCRIPTOR,
    }


async def get_content_by_category_service(
    *,
    category_id: str,
    page: int,
    limit: int,
    language: Optional[str] = None,
    db: Optional[AsyncSession] = None,
    repository: Optional[ContentRepository] = None,
) -> Dict[str, Any]:
    repository = repository or SqlContentRepository(db)
    resolved_id = parse_single_category_id(category_id)
    if not resolved_id:
        raise HTTPException(status_code=400, detail="Invalid category ID")
    category = await repository.get_active_category(resolved_id)
    if category is None:
        raise HTTPException(status_code=404, detail="Category not found")

    items, total = await fetch_page(
        repository,
        ContentFilter.for_categories([resolved_id]),
        MANUAL_ORDER,
        page=page,
        limit=limit,
    )
    pagination = paginate(page, limit, total)
    return {
        "items": await _render_items(items, repository=repository, language=language),
        **pagination.as_dict(),
        "category": category.as_dict(),
    }


async def get_content_item_service(
    *,
    item_id: str,
    language: Optional[str] = None,
    db: Optional[AsyncSession] = None,
    repository: Optional[ContentRepository] = None,
) -> Dict[str, Any]:
    repository = repository or SqlContentRepository(db)
    if not is_valid_identifier(item_id):
        raise HTTPException(status_code=400, detail="Invalid content item ID")
    record = await repository.get_active(item_id.strip().lower())
    if record is None:
        raise HTTPException(status_code=404, detail="Content item not found")

    rendered = await _render_items([RankedContent(record=record)], repository=repository, language=language)
    return rendered[0]
