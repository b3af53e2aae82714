"""Category registry package."""

from finfree.categories.defaults import (
    AVAILABLE_ICONS,
    DEFAULT_CATEGORIES,
    FEES_CATEGORY_ID,
    UNCATEGORIZED,
)
from finfree.categories.registry import (
    CategoryError,
    CategoryRegistry,
    DuplicateCategoryError,
    UnknownCategoryError,
)

__all__ = [
    "AVAILABLE_ICONS",
    "DEFAULT_CATEGORIES",
    "FEES_CATEGORY_ID",
    "UNCATEGORIZED",
    "CategoryError",
    "CategoryRegistry",
    "DuplicateCategoryError",
    "UnknownCategoryError",
]
