"""Content library router: personalized feed, trending, category listings."""

from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field, model_serializer
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from routers.auth_scope import AuthContext, get_optional_auth_context
from routers.rate_limit import rate_limit
from services.content_feed import (
    get_content_by_category_service,
    get_content_feed_service,
    get_content_item_service,
    get_trending_content_service,
)
from services.content_types import ImageLanguage
from services.feed_selection import build_selection_request

router = APIRouter()


class CategoryResponse(BaseModel):
    id: str
    title: str
    slug: str


class ContentImageResponse(BaseModel):
    url: str
    alt: Optional[str] = None
    language: str


class ContentItemResponse(BaseModel):
    id: str
    title: str
    slug: str
    category: Optional[CategoryResponse] = None
    images: List[ContentImageResponse]
    sort_order: int
    created_at: str
    updated_at: Optional[str] = None
    trending_score: Optional[float] = None

    @model_serializer(mode="wrap")
    def _omit_unranked_score(self, handler):
        data = handler(self)
        if self.trending_score is None:
            data.pop("trending_score", None)
        return data


class PaginatedResponse(BaseModel):
    total_count: int
    page: int
    limit: int
    total_pages: int
    serial_number_start_from: int
    has_prev_page: bool
    has_next_page: bool
    prev_page: Optional[int] = None
    next_page: Optional[int] = None


class ExplicitCategoryPersonalization(BaseModel):
    is_personalized: Literal[False] = False
    filter_type: Literal["specific_single_category", "specific_multiple_categories"]


class InterestPersonalization(BaseModel):
    is_personalized: Literal[True] = True
    filter_type: Literal["user_interests"]
    interest_categories: List[str]


class TrendingFallbackPersonalization(BaseModel):
    is_personalized: Literal[False] = False
    filter_type: Literal["trending_fallback"]
    fallback_reason: Literal["not_authenticated", "no_interests", "no_matching_items", "interest_lookup_failed"]


Personalization = Annotated[
    Union[ExplicitCategoryPersonalization, InterestPersonalization, TrendingFallbackPersonalization],
    Field(discriminator="filter_type"),
]


class ContentFeedResponse(PaginatedResponse):
    items: List[ContentItemResponse]
    personalization: Personalization


class TrendingFilters(BaseModel):
    categories: Optional[List[str]] = None
    language: Optional[str] = None


class TrendingContentResponse(PaginatedResponse):
    items: List[ContentItemResponse]
    filters: TrendingFilters
    algorithm: Dict[str, Any]


class CategoryContentResponse(PaginatedResponse):
    items: List[ContentItemResponse]
    category: CategoryResponse


PageParam = Query(default=1, ge=1, description="1-based page number")
LimitParam = Query(
    default=settings.FEED_DEFAULT_LIMIT,
    ge=1,
    le=settings.FEED_MAX_LIMIT,
    description="Items per page",
)


@router.get("", response_model=ContentFeedResponse)
async def get_content_feed(
    category: Optional[str] = Query(default=None, description="Single category id"),
    categories: Optional[str] = Query(default=None, description="Comma-separated category ids"),
    page: int = PageParam,
    limit: int = LimitParam,
    language: Optional[ImageLanguage] = Query(default=None),
    _rate_limit: None = Depends(rate_limit("content_feed")),
    auth: Optional[AuthContext] = Depends(get_optional_auth_context),
    db: AsyncSession = Depends(get_db),
):
    """Explicit categories first, then the caller's interests, then trending."""
    request = build_selection_request(
        category=category,
        categories=categories,
        page=page,
        limit=limit,
        language=language,
        user_id=auth.user_id if auth else None,
    )
    return await get_content_feed_service(request=request, db=db)


@router.get("/trending", response_model=TrendingContentResponse)
async def get_trending_content(
    category: Optional[str] = Query(default=None),
    categories: Optional[str] = Query(default=None),
    page: int = PageParam,
    limit: int = LimitParam,
    language: Optional[ImageLanguage] = Query(default=None),
    _rate_limit: None = Depends(rate_limit("content_trending")),
    db: AsyncSession = Depends(get_db),
):
    request = build_selection_request(
        category=category,
        categories=categories,
        page=page,
        limit=limit,
        language=language,
    )
    return await get_trending_content_service(request=request, db=db)


@router.get("/by-category/{category_id}", response_model=CategoryContentResponse)
async def get_content_by_category(
    category_id: str,
    page: int = PageParam,
    limit: int = LimitParam,
    language: Optional[ImageLanguage] = Query(default=None),
    _rate_limit: None = Depends(rate_limit("content_by_category")),
    db: AsyncSession = Depends(get_db),
):
    return await get_content_by_category_service(
        category_id=category_id,
        page=page,
        limit=limit,
        language=language,
        db=db,
    )


@router.get("/{item_id}", response_model=ContentItemResponse)
async def get_content_item(
    item_id: str,
    language: Optional[ImageLanguage] = Query(default=None),
    _rate_limit: None = Depends(rate_limit("content_item")),
    db: AsyncSession = Depends(get_db),
):
    return await get_content_item_service(item_id=item_id, language=language, db=db)
