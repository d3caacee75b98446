"""Read access to content items and categories.

Both ``count`` and ``find`` go through a single predicate builder per backend,
so the totals reported with a page always describe the rows that page was cut
from.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from models.category import Category
from models.content_item import ContentItem
from services.content_types import (
    ALL_ACTIVE,
    CategorySummary,
    ContentFilter,
    ContentImage,
    ContentRecord,
    ContentSort,
    RankedContent,
    UNKNOWN_CREATED_AT,
    as_utc,
)
from services.trending import rank_trending


class ContentRepository(ABC):
    """Repository abstraction for active content; SQL backed or in-memory."""

    @abstractmethod
    async def count(self, content_filter: ContentFilter) -> int:
        raise NotImplementedError

    @abstractmethod
    async def find(
        self,
        content_filter: ContentFilter,
        sort: ContentSort,
        *,
        skip: int,
        limit: int,
    ) -> List[RankedContent]:
        raise NotImplementedError

    @abstractmethod
    async def get_active(self, item_id: str) -> Optional[ContentRecord]:
        raise NotImplementedError

    @abstractmethod
    async def get_categories(self, category_ids: Iterable[str]) -> Dict[str, CategorySummary]:
        raise NotImplementedError

    @abstractmethod
    async def get_active_category(self, category_id: str) -> Optional[CategorySummary]:
        raise NotImplementedError


def _parse_images(raw_images: Any) -> Tuple[ContentImage, ...]:
    if not isinstance(raw_images, list):
        return ()
    return tuple(image for image in (ContentImage.from_json(raw) for raw in raw_images) if image)


def _created_at(value: Optional[datetime]) -> datetime:
    return as_utc(value) if value is not None else UNKNOWN_CREATED_AT


@dataclass(frozen=True)
class _TrendingCandidate:
    """Just the columns the trending score reads."""

    id: str
    images: Tuple[ContentImage, ...]
    sort_order: int
    created_at: datetime


def _to_record(row: ContentItem) -> ContentRecord:
    return ContentRecord(
        id=row.id,
        title=row.title,
        slug=row.slug,
        category_id=row.category_id,
        images=_parse_images(row.images_json),
        sort_order=int(row.sort_order or 0),
        created_at=_created_at(row.created_at),
        updated_at=as_utc(row.updated_at) if row.updated_at else None,
    )


def _to_category(row: Category) -> CategorySummary:
    return CategorySummary(id=row.id, title=row.title, slug=row.slug)


def _content_predicate(content_filter: ContentFilter) -> list:
    clauses = [ContentItem.is_deleted.is_(False), ContentItem.is_suspended.is_(False)]
    if content_filter.category_ids is not None:
        clauses.append(ContentItem.category_id.in_(sorted(content_filter.category_ids)))
    return clauses


class SqlContentRepository(ContentRepository):
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def count(self, content_filter: ContentFilter) -> int:
        result = await self.db.execute(
            select(func.count()).select_from(ContentItem).where(*_content_predicate(content_filter))
        )
        return int(result.scalar() or 0)

    async def find(
        self,
        content_filter: ContentFilter,
        sort: ContentSort,
        *,
        skip: int,
        limit: int,
    ) -> List[RankedContent]:
        if sort.kind == "trending":
            return await self._find_trending(content_filter, sort.now, skip=skip, limit=limit)

        result = await self.db.execute(
            select(ContentItem)
            .where(*_content_predicate(content_filter))
            .order_by(
                ContentItem.sort_order.asc(),
                ContentItem.created_at.desc(),
                ContentItem.id.asc(),
            )
            .offset(skip)
            .limit(limit)
        )
        return [RankedContent(record=_to_record(row)) for row in result.scalars().all()]

    async def _find_trending(
        self,
        content_filter: ContentFilter,
        now: Optional[datetime],
        *,
        skip: int,
        limit: int,
    ) -> List[RankedContent]:
        # Image counts live in JSON, so the whole filtered set is scored here,
        # reading only the scored columns. Full rows are loaded for the page.
        result = await self.db.execute(
            select(
                ContentItem.id,
                ContentItem.images_json,
                ContentItem.sort_order,
                ContentItem.created_at,
            ).where(*_content_predicate(content_filter))
        )
        candidates = [
            _TrendingCandidate(
                id=row.id,
                images=_parse_images(row.images_json),
                sort_order=int(row.sort_order or 0),
                created_at=_created_at(row.created_at),
            )
            for row in result.all()
        ]
        ranked = rank_trending(candidates, now or datetime.now(timezone.utc))[skip:skip + limit]
        if not ranked:
            return []

        page_ids = [item.record.id for item in ranked]
        rows = await self.db.execute(select(ContentItem).where(ContentItem.id.in_(page_ids)))
        records = {row.id: _to_record(row) for row in rows.scalars().all()}
        return [
            RankedContent(record=records[item.record.id], trending_score=item.trending_score)
            for item in ranked
            if item.record.id in records
        ]

    async def get_active(self, item_id: str) -> Optional[ContentRecord]:
        result = await self.db.execute(
            select(ContentItem).where(ContentItem.id == item_id, *_content_predicate(ALL_ACTIVE))
        )
        row = result.scalar_one_or_none()
        return _to_record(row) if row else None

    async def get_categories(self, category_ids: Iterable[str]) -> Dict[str, CategorySummary]:
        ids = sorted(set(category_ids))
        if not ids:
            return {}
        result = await self.db.execute(select(Category).where(Category.id.in_(ids)))
        return {row.id: _to_category(row) for row in result.scalars().all()}

    async def get_active_category(self, category_id: str) -> Optional[CategorySummary]:
        result = await self.db.execute(
            select(Category).where(
                Category.id == category_id,
                Category.is_deleted.is_(False),
                Category.is_suspended.is_(False),
            )
        )
        row = result.scalar_one_or_none()
        return _to_category(row) if row else None


class InMemoryContentRepository(ContentRepository):
    """Dict-backed repository for local runs and tests."""

    def __init__(
        self,
        items: Iterable[ContentRecord] = (),
        categories: Iterable[CategorySummary] = (),
        inactive_item_ids: Iterable[str] = (),
        inactive_category_ids: Iterable[str] = (),
    ) -> None:
        self.items: Dict[str, ContentRecord] = {item.id: item for item in items}
        self.categories: Dict[str, CategorySummary] = {category.id: category for category in categories}
        self.inactive_item_ids = set(inactive_item_ids)
        self.inactive_category_ids = set(inactive_category_ids)

    def _matches(self, item: ContentRecord, content_filter: ContentFilter) -> bool:
        if item.id in self.inactive_item_ids:
            return False
        if content_filter.category_ids is not None and item.category_id not in content_filter.category_ids:
            return False
        return True

    def _matching(self, content_filter: ContentFilter) -> List[ContentRecord]:
        return [item for item in self.items.values() if self._matches(item, content_filter)]

    async def count(self, content_filter: ContentFilter) -> int:
        return len(self._matching(content_filter))

    async def find(
        self,
        content_filter: ContentFilter,
        sort: ContentSort,
        *,
        skip: int,
        limit: int,
    ) -> List[RankedContent]:
        rows = self._matching(content_filter)
        if sort.kind == "trending":
            now = sort.now or datetime.now(timezone.utc)
            return rank_trending(rows, now)[skip:skip + limit]

        ordered = sorted(rows, key=lambda item: item.id)
        ordered.sort(key=lambda item: as_utc(item.created_at), reverse=True)
        ordered.sort(key=lambda item: item.sort_order)
        return [RankedContent(record=item) for item in ordered[skip:skip + limit]]

    async def get_active(self, item_id: str) -> Optional[ContentRecord]:
        item = self.items.get(item_id)
        if item is None or not self._matches(item, ALL_ACTIVE):
            return None
        return item

    async def get_categories(self, category_ids: Iterable[str]) -> Dict[str, CategorySummary]:
        return {cid: self.categories[cid] for cid in set(category_ids) if cid in self.categories}

    async def get_active_category(self, category_id: str) -> Optional[CategorySummary]:
        if category_id in self.inactive_category_ids:
            return None
        return self.categories.get(category_id)
