"""Pagination metadata for page/limit based listings."""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class PaginationMeta:
    total_count: int
    page: int
    limit: int
    total_pages: int
    serial_number_start_from: int
    has_prev_page: bool
    has_next_page: bool
    prev_page: Optional[int]
    next_page: Optional[int]

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


def page_offset(page: int, limit: int) -> int:
    return (page - 1) * limit


def paginate(page: int, limit: int, total_count: int) -> PaginationMeta:
    """Describe ``page`` of a ``limit``-sized listing over ``total_count`` rows.

    Pages past the end are valid and simply report no next page; nothing is
    clamped.
    """
    if page < 1:
        raise ValueError("page must be >= 1")
    if limit < 1:
        raise ValueError("limit must be >= 1")
    if total_count < 0:
        raise ValueError("total_count must be >= 0")

    total_pages = math.ceil(total_count / limit)
    has_prev_page = page > 1
    has_next_page = page < total_pages
    return PaginationMeta(
        total_count=total_count,
        page=page,
        limit=limit,
        total_pages=total_pages,
        serial_number_start_from=page_offset(page, limit) + 1,
        has_prev_page=has_prev_page,
        has_next_page=has_next_page,
        prev_page=page - 1 if has_prev_page else None,
        next_page=page + 1 if has_next_page else None,
    )
