"""Interest lookups that drive personalized content feeds."""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from typing import FrozenSet, Iterable, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from models.user_interest import UserInterest


class InterestResolutionError(RuntimeError):
    """Raised when interest storage could not be read."""


def is_valid_identifier(value: Optional[str]) -> bool:
    """True for canonical UUID strings, the id format of every stored row."""
    text = str(value or "").strip()
    if not text:
        return False
    try:
        return str(uuid.UUID(text)) == text.lower()
    except ValueError:
        return False


class InterestResolver(ABC):
    async def resolve(self, user_id: Optional[str]) -> FrozenSet[str]:
        """Return the category ids ``user_id`` follows; empty when unknown."""
        if not is_valid_identifier(user_id):
            return frozenset()
        interests = await self._lookup(str(user_id).strip().lower())
        return frozenset(cid for cid in interests if is_valid_identifier(cid))

    @abstractmethod
    async def _lookup(self, user_id: str) -> Iterable[str]:
        raise NotImplementedError


class SqlInterestResolver(InterestResolver):
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def _lookup(self, user_id: str) -> Iterable[str]:
        try:
            result = await self.db.execute(
                select(UserInterest.category_id).where(UserInterest.user_id == user_id)
            )
            return [str(row) for row in result.scalars().all()]
        except SQLAlchemyError as exc:
            await self.db.rollback()
            raise InterestResolutionError(f"Could not load interests for user {user_id}") from exc


class StaticInterestResolver(InterestResolver):
    """Interest map held in memory, keyed by user id."""

    def __init__(self, interests: Mapping[str, Iterable[str]]) -> None:
        self.interests = {user_id: tuple(ids) for user_id, ids in interests.items()}

    async def _lookup(self, user_id: str) -> Iterable[str]:
        return self.interests.get(user_id, ())
