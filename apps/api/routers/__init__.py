"""Routers package."""

from . import (
    health,
    content,
)
