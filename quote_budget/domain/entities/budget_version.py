"""
Budget Version Entity - Immutable snapshot of a saved budget.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional
from uuid import uuid4

from .budget_category import BudgetCategory, budget_from_dicts, budget_to_dicts


@dataclass
class BudgetVersion:
    """
    Saved state of a quote budget.

    Attributes:
        id: Unique identifier
        project_id: Owning project
        quote_id: Quote the snapshot belongs to
        created_at: Snapshot time (UTC)
        author: Who saved the version
        description: Free-text description
        budget: Deep copy of the budget at save time
        total_amount: Grand total at save time
    """

    id: str = field(default_factory=lambda: str(uuid4()))
    project_id: str = ""
    quote_id: str = ""
    created_at: datetime = field(default_factory=datetime.utcnow)
    author: Optional[str] = None
    description: str = ""
    budget: List[BudgetCategory] = field(default_factory=list)
    total_amount: float = 0.0

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            'id': self.id,
            'projectId': self.project_id,
            'quoteId': self.quote_id,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'author': self.author,
            'description': self.description,
            'budget': budget_to_dicts(self.budget),
            'totalAmount': self.total_amount,
        }

    @classmethod
    def from_record(cls, record) -> "BudgetVersion":
        """Build from a BudgetVersionRecord row."""
        return cls(
            id=record.uuid,
            project_id=record.project_id,
            quote_id=record.quote_id,
            created_at=record.created_at,
            author=record.author,
            description=record.description or "",
            budget=budget_from_dicts(record.budget_data),
            total_amount=record.total_amount or 0.0,
        )
