"""Models package."""

from .user import User
from .category import Category
from .content_item import ContentItem
from .user_interest import UserInterest
