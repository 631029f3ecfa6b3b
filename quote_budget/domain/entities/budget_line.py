"""
Budget Line Entity - A node of the budget tree.

Lines nest to form the sub-category → post → sub-post hierarchy under a
category. A line with sub-items is a pure container: aggregation ignores
its own quantity, number and rate and sums its children instead.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from quote_budget.domain.numbers import num_or_zero, optional_number


class BudgetItemType(str, Enum):
    """Level of a node in the budget hierarchy."""
    CATEGORY = "category"
    SUB_CATEGORY = "subCategory"
    POST = "post"
    SUB_POST = "subPost"

    @classmethod
    def coerce(cls, value: Any) -> "BudgetItemType":
        """Parse a stored type, falling back to POST for unknown values."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return cls.POST


PERCENT_UNIT = "%"

# Python attribute -> persisted camelCase key
FIELD_ALIASES: Dict[str, str] = {
    'id': 'id',
    'type': 'type',
    'name': 'name',
    'parent_id': 'parentId',
    'quantity': 'quantity',
    'number': 'number',
    'unit': 'unit',
    'rate': 'rate',
    'cost': 'cost',
    'overtime': 'overtime',
    'social_charges': 'socialCharges',
    'agency_percent': 'agencyPercent',
    'margin_percent': 'marginPercent',
    'sub_items': 'subItems',
    'is_expanded': 'isExpanded',
    'comments': 'comments',
    'comment': 'comment',
    'is_new_post': 'isNewPost',
}

# persisted camelCase key -> Python attribute
ALIAS_FIELDS: Dict[str, str] = {alias: name for name, alias in FIELD_ALIASES.items()}


def _new_id() -> str:
    return str(uuid4())


@dataclass
class BudgetLine:
    """
    Budget line item (sub-category, post or sub-post).

    Attributes:
        id: Unique identifier (unique across the whole tree)
        type: Hierarchy level
        name: Display name
        parent_id: Id of the parent node, None at category top level
        quantity: Quantity (e.g. number of days)
        number: Multiplier (e.g. headcount)
        unit: Unit label ("Jour", "Forfait", "%", ...)
        rate: Unit price quoted to the client
        cost: Actual unit cost, only meaningful in the work budget
        overtime: Flat amount added before social charges
        social_charges: Id of the social charge rate applied, if any
        agency_percent: Agency surcharge (0-100)
        margin_percent: Margin surcharge (0-100)
        sub_items: Ordered children
        is_expanded: UI expansion state, persisted with the tree
        comments: Free-text note kept with the work budget
        comment: Budget-local annotation ({'text', 'checked'})
        is_new_post: Marks posts created directly in the work budget
    """

    id: str = field(default_factory=_new_id)
    type: BudgetItemType = BudgetItemType.POST
    name: str = ""
    parent_id: Optional[str] = None

    quantity: float = 0.0
    number: float = 0.0
    unit: str = "-"
    rate: float = 0.0
    cost: Optional[float] = None
    overtime: Optional[float] = None

    social_charges: Optional[str] = None
    agency_percent: float = 0.0
    margin_percent: float = 0.0

    sub_items: List["BudgetLine"] = field(default_factory=list)
    is_expanded: bool = True

    comments: Optional[str] = None
    comment: Optional[Dict[str, Any]] = None
    is_new_post: bool = False

    @property
    def is_leaf(self) -> bool:
        """True when the line has no sub-items and contributes its own fields."""
        return not self.sub_items

    @property
    def is_percentage(self) -> bool:
        """True for lines priced as a percentage of another amount."""
        return self.unit == PERCENT_UNIT

    def unit_price(self, use_work_cost: bool = False) -> float:
        """Price per unit: the actual cost in the work budget when set, else the rate."""
        if use_work_cost and self.cost is not None:
            return num_or_zero(self.cost)
        return num_or_zero(self.rate)

    def to_dict(self) -> dict:
        """Convert to the persisted camelCase shape."""
        data = {
            'id': self.id,
            'type': BudgetItemType.coerce(self.type).value,
            'name': self.name,
            'parentId': self.parent_id,
            'quantity': self.quantity,
            'number': self.number,
            'unit': self.unit,
            'rate': self.rate,
            'socialCharges': self.social_charges,
            'agencyPercent': self.agency_percent,
            'marginPercent': self.margin_percent,
            'subItems': [child.to_dict() for child in self.sub_items],
            'isExpanded': self.is_expanded,
        }
        # Optional fields are omitted rather than written as null
        if self.cost is not None:
            data['cost'] = self.cost
        if self.overtime is not None:
            data['overtime'] = self.overtime
        if self.comments is not None:
            data['comments'] = self.comments
        if self.comment is not None:
            data['comment'] = dict(self.comment)
        if self.is_new_post:
            data['isNewPost'] = True
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "BudgetLine":
        """Build a line from its persisted shape, tolerating missing fields."""
        if not isinstance(data, dict):
            data = {}
        raw_children = data.get('subItems')
        children = raw_children if isinstance(raw_children, list) else []
        social_charges = data.get('socialCharges')
        comment = data.get('comment')

        return cls(
            id=str(data.get('id') or _new_id()),
            type=BudgetItemType.coerce(data.get('type')),
            name=data.get('name') or "",
            parent_id=data.get('parentId'),
            quantity=num_or_zero(data.get('quantity')),
            number=num_or_zero(data.get('number')),
            unit=data.get('unit') or "-",
            rate=num_or_zero(data.get('rate')),
            cost=optional_number(data.get('cost')),
            overtime=optional_number(data.get('overtime')),
            social_charges=str(social_charges) if social_charges else None,
            agency_percent=num_or_zero(data.get('agencyPercent')),
            margin_percent=num_or_zero(data.get('marginPercent')),
            sub_items=[cls.from_dict(child) for child in children if isinstance(child, dict)],
            is_expanded=bool(data.get('isExpanded', True)),
            comments=data.get('comments'),
            comment=dict(comment) if isinstance(comment, dict) else None,
            is_new_post=bool(data.get('isNewPost', False)),
        )
