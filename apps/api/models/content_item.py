"""ContentItem model for banner/sub-category entries shown in the app."""

import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, JSON, String, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from database import Base


class ContentItem(Base):
    """Image set published under a category.

    ``images_json`` holds an ordered list of ``{"url", "alt", "language"}``
    objects; ``sort_order`` is the admin-assigned priority (lower first).
    """

    __tablename__ = "content_items"
    __table_args__ = (
        UniqueConstraint("category_id", "slug", name="uq_content_items_category_slug"),
        Index("ix_content_items_active", "category_id", "is_deleted", "is_suspended"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    title = Column(String, nullable=False)
    slug = Column(String, nullable=False)
    category_id = Column(String, ForeignKey("categories.id"), nullable=False, index=True)
    images_json = Column(JSON, nullable=False, default=list)
    sort_order = Column(Integer, nullable=False, default=0)
    is_deleted = Column(Boolean, nullable=False, default=False)
    is_suspended = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    category = relationship("Category", back_populates="content_items")
