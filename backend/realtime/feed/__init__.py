"""Per-observer categorized ride feeds."""

from .categories import categorize, categories_for, default_category
from .projector import FeedProjector

__all__ = [
    "categorize",
    "categories_for",
    "default_category",
    "FeedProjector",
]
