"""
Category & Budget Store

Holds the user's categories and answers role lookups for the rest of the
engine. Income and Savings are structurally special: exactly the categories
tagged with those roles are excluded from spending aggregates.
"""

from decimal import Decimal
from typing import Iterable, Iterator, Optional
from uuid import uuid4

from spendxp.models.finance import Category, CategoryRole


class CategoryNotFound(LookupError):
    """No category with the requested id."""

    def __init__(self, category_id: str):
        self.category_id = category_id
        super().__init__(f"Unknown category: {category_id}")


DEFAULT_CATEGORIES: tuple[Category, ...] = (
    Category(id="cat-income", name="Income", emoji="💰", color="bg-brand-green"),
    Category(id="cat-food", name="Food", emoji="🍔", color="bg-brand-yellow"),
    Category(id="cat-gaming", name="Gaming", emoji="🎮", color="bg-brand-purple"),
    Category(id="cat-shopping", name="Shopping", emoji="🛍️", color="bg-brand-pink"),
    Category(id="cat-transport", name="Transport", emoji="🚌", color="bg-gray-500"),
    Category(id="cat-entertainment", name="Entertainment", emoji="🎬", color="bg-brand-teal"),
    Category(id="cat-savings", name="Savings", emoji="🏦", color="bg-blue-500"),
    Category(id="cat-other", name="Other", emoji="💸", color="bg-gray-500"),
)


class CategoryStore:
    """
    Ordered collection of categories.

    Mutations return the changed category; callers persist the whole
    collection afterwards.
    """

    def __init__(self, categories: Iterable[Category] = ()):
        self._categories: list[Category] = list(categories)

    @classmethod
    def with_defaults(cls) -> "CategoryStore":
        return cls(DEFAULT_CATEGORIES)

    def __iter__(self) -> Iterator[Category]:
        return iter(self._categories)

    def __len__(self) -> int:
        return len(self._categories)

    def all(self) -> list[Category]:
        return list(self._categories)

    def get(self, category_id: str) -> Optional[Category]:
        return next((c for c in self._categories if c.id == category_id), None)

    def require(self, category_id: str) -> Category:
        category = self.get(category_id)
        if category is None:
            raise CategoryNotFound(category_id)
        return category

    def find_by_role(self, role: CategoryRole) -> Optional[Category]:
        return next((c for c in self._categories if c.role is role), None)

    @property
    def savings(self) -> Optional[Category]:
        return self.find_by_role(CategoryRole.SAVINGS)

    # Predicates over category ids. Unknown ids (a category that was removed)
    # behave like standard spending, except where noted.

    def is_income(self, category_id: str) -> bool:
        category = self.get(category_id)
        return category is not None and category.is_income

    def is_not_income(self, category_id: str) -> bool:
        return not self.is_income(category_id)

    def is_spending(self, category_id: str) -> bool:
        """Neither income nor savings."""
        category = self.get(category_id)
        return category is None or category.is_spending

    def is_savings(self, category_id: str) -> bool:
        category = self.get(category_id)
        return category is not None and category.is_savings

    def spending_categories(self) -> list[Category]:
        """Every category except income, in display order."""
        return [c for c in self._categories if not c.is_income]

    def add(self, name: str, emoji: str, color: str) -> Category:
        category = Category(
            id=f"custom-{uuid4().hex[:12]}",
            name=name,
            emoji=emoji,
            color=color,
        )
        self._categories.append(category)
        return category

    def replace(self, category: Category) -> Category:
        for idx, existing in enumerate(self._categories):
            if existing.id == category.id:
                # The role is fixed at creation
                category = category.model_copy(update={"role": existing.role})
                self._categories[idx] = category
                return category
        raise CategoryNotFound(category.id)

    def set_budget(self, category_id: str, budget: Optional[Decimal]) -> tuple[Category, Category]:
        """
        Set or clear a monthly budget.

        Returns (before, after).
        """
        before = self.require(category_id)
        after = before.model_copy(update={"budget": budget})
        self.replace(after)
        return before, after
