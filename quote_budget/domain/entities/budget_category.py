"""
Budget Category Entity - Top level of the budget tree.
"""
from dataclasses import dataclass, field
from typing import List
from uuid import uuid4

from .budget_line import BudgetLine


# Placeholder bucket for social charges; it can be emptied but never removed
SOCIAL_CHARGES_CATEGORY_ID = "social-charges"


@dataclass
class BudgetCategory:
    """
    Ordered group of budget lines.

    A budget is an ordered list of categories.
    """

    id: str = field(default_factory=lambda: str(uuid4()))
    name: str = ""
    is_expanded: bool = True
    items: List[BudgetLine] = field(default_factory=list)

    @property
    def is_social_charges(self) -> bool:
        """True for the reserved social charges bucket."""
        return self.id == SOCIAL_CHARGES_CATEGORY_ID

    def to_dict(self) -> dict:
        """Convert to the persisted camelCase shape."""
        return {
            'id': self.id,
            'name': self.name,
            'isExpanded': self.is_expanded,
            'items': [item.to_dict() for item in self.items],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "BudgetCategory":
        """Build a category from its persisted shape."""
        if not isinstance(data, dict):
            data = {}
        raw_items = data.get('items')
        items = raw_items if isinstance(raw_items, list) else []
        return cls(
            id=str(data.get('id') or uuid4()),
            name=data.get('name') or "",
            is_expanded=bool(data.get('isExpanded', True)),
            items=[BudgetLine.from_dict(item) for item in items if isinstance(item, dict)],
        )


def budget_to_dicts(categories: List[BudgetCategory]) -> List[dict]:
    """Serialize a whole budget for storage."""
    return [category.to_dict() for category in categories]


def budget_from_dicts(data) -> List[BudgetCategory]:
    """Deserialize a stored budget; anything but a list yields an empty budget."""
    if not isinstance(data, list):
        return []
    return [BudgetCategory.from_dict(entry) for entry in data if isinstance(entry, dict)]
