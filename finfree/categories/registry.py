"""
Category Registry

Resolves a transaction's category id to its definition and default
classification type.

DESIGN DECISION: Classification resolution order is fixed:
1. The registry's default type for the category
2. A literal per-transaction override, when one was given, replaces it

An unknown category never crashes a caller that renders data; it degrades
to UNCATEGORIZED. Callers that need to know (e.g. the budget editor) ask
for strict resolution and get UnknownCategoryError.

The registry is immutable. add/update/remove return a new registry.
"""

from typing import Iterable, Iterator, Optional

import structlog

from finfree.categories.defaults import (
    AVAILABLE_ICONS,
    BUILTIN_CATEGORY_IDS,
    UNCATEGORIZED,
)
from finfree.models.budget import CategoryDefinition
from finfree.models.transactions import ExpenseType


logger = structlog.get_logger(__name__)


class CategoryError(Exception):
    """Base exception for category registry errors."""
    pass


class UnknownCategoryError(CategoryError, KeyError):
    """No definition is registered for a category id."""

    def __init__(self, category_id: str):
        self.category_id = category_id
        super().__init__(f"Unknown category: {category_id!r}")

    def __str__(self) -> str:
        return self.args[0]


class DuplicateCategoryError(CategoryError):
    """A category with this id already exists."""
    pass


class CategoryRegistry:
    """
    Ordered, id-unique set of category definitions.

    Args:
        definitions: Built-in and custom definitions, in display order.
        fallback: Definition returned for unknown ids by `resolve` when
                  strict resolution is not requested. None disables it.
    """

    def __init__(
        self,
        definitions: Iterable[CategoryDefinition],
        fallback: Optional[CategoryDefinition] = UNCATEGORIZED,
    ):
        self._definitions: dict[str, CategoryDefinition] = {}
        for definition in definitions:
            if definition.id in self._definitions:
                raise DuplicateCategoryError(
                    f"Category id registered twice: {definition.id!r}"
                )
            self._definitions[definition.id] = definition
        self._fallback = fallback

    def __contains__(self, category_id: object) -> bool:
        return category_id in self._definitions

    def __iter__(self) -> Iterator[CategoryDefinition]:
        return iter(self._definitions.values())

    def __len__(self) -> int:
        return len(self._definitions)

    @property
    def definitions(self) -> list[CategoryDefinition]:
        return list(self._definitions.values())

    @property
    def ids(self) -> list[str]:
        return list(self._definitions)

    # -------------------------------------------------------------------------
    # Resolution
    # -------------------------------------------------------------------------

    def resolve(self, category_id: str, strict: bool = False) -> CategoryDefinition:
        """
        Resolve a category id to its definition.

        Raises:
            UnknownCategoryError: If the id is unregistered and either
                                  `strict` is set or no fallback is configured.
        """
        definition = self._definitions.get(category_id)
        if definition is not None:
            return definition
        if strict or self._fallback is None:
            raise UnknownCategoryError(category_id)
        logger.debug("category_unresolved", category_id=category_id)
        return self._fallback

    def default_type(self, category_id: str) -> ExpenseType:
        """Classification used when a transaction does not override it."""
        return self.resolve(category_id).default_type

    def classify(
        self,
        category_id: Optional[str],
        override: Optional[ExpenseType] = None,
    ) -> ExpenseType:
        """Registry default first; a literal override replaces it."""
        if override is not None:
            return override
        if not category_id:
            if self._fallback is None:
                raise UnknownCategoryError("")
            return self._fallback.default_type
        return self.default_type(category_id)

    def is_builtin(self, category_id: str) -> bool:
        return category_id in BUILTIN_CATEGORY_IDS

    # -------------------------------------------------------------------------
    # Custom categories
    # -------------------------------------------------------------------------

    def add(self, definition: CategoryDefinition) -> "CategoryRegistry":
        """
        Register a custom category.

        Raises:
            DuplicateCategoryError: If the id is already registered.
            CategoryError: If the icon is not one of the available icons.
        """
        if definition.id in self._definitions:
            raise DuplicateCategoryError(f"Category already exists: {definition.id!r}")
        self._check_icon(definition.icon)
        return CategoryRegistry([*self._definitions.values(), definition], self._fallback)

    def update(
        self,
        category_id: str,
        name: Optional[str] = None,
        icon: Optional[str] = None,
        default_type: Optional[ExpenseType] = None,
    ) -> "CategoryRegistry":
        """
        Change a category's display fields or default type.

        The id itself can never change: transactions reference it.
        """
        current = self.resolve(category_id, strict=True)
        changes = {}
        if name is not None:
            changes["name"] = name
        if icon is not None:
            self._check_icon(icon)
            changes["icon"] = icon
        if default_type is not None:
            changes["default_type"] = default_type
        # Re-validate through the model rather than model_copy, which skips validation
        updated = CategoryDefinition.model_validate({**current.model_dump(), **changes})
        return CategoryRegistry(
            [updated if d.id == category_id else d for d in self._definitions.values()],
            self._fallback,
        )

    def remove(self, category_id: str) -> "CategoryRegistry":
        """
        Remove a custom category.

        Whether the category is still referenced by transactions is checked
        by the caller before calling this.
        """
        self.resolve(category_id, strict=True)
        if self.is_builtin(category_id):
            raise CategoryError(f"Built-in category cannot be removed: {category_id!r}")
        return CategoryRegistry(
            [d for d in self._definitions.values() if d.id != category_id],
            self._fallback,
        )

    @staticmethod
    def _check_icon(icon: str) -> None:
        if icon not in AVAILABLE_ICONS:
            raise CategoryError(f"Unknown icon: {icon!r}")
