"""UserInterest model linking users to the categories they follow."""

from sqlalchemy import Column, DateTime, ForeignKey, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from database import Base


class UserInterest(Base):
    """One declared interest category for a user."""

    __tablename__ = "user_interests"

    user_id = Column(String, ForeignKey("users.id"), primary_key=True)
    category_id = Column(String, ForeignKey("categories.id"), primary_key=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User", back_populates="interests")
