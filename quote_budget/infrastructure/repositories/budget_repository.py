"""
Budget Repository - Data access layer for quote budget trees.

Both trees of a quote are stored as JSON blobs with upsert semantics
keyed by quote id, so saving the same tree repeatedly is safe.
"""
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from quote_budget.models import QuoteBudgetRecord, QuoteWorkBudgetRecord
from .base_repository import BaseRepository


class BudgetRepository(BaseRepository[QuoteBudgetRecord]):
    """Repository for committed quote budgets."""

    def __init__(self, session: Session):
        super().__init__(session, QuoteBudgetRecord)

    def exists(self, **criteria) -> bool:
        """Check if a budget matching the criteria exists."""
        return bool(self._filter_by(**criteria))

    def get_tree_data(self, quote_id: str) -> Optional[List[dict]]:
        """
        Get the stored budget blob.

        Args:
            quote_id: Quote identifier

        Returns:
            List of category dicts, or None if nothing is stored
        """
        record = self.get_by_quote_id(quote_id)
        return record.budget_data if record is not None else None

    def upsert(self, quote_id: str, budget_data: List[dict]) -> QuoteBudgetRecord:
        """
        Insert or replace the budget blob of a quote.

        Args:
            quote_id: Quote identifier
            budget_data: Serialized categories

        Returns:
            The stored row (not committed)
        """
        record = self.get_by_quote_id(quote_id)
        if record is None:
            record = QuoteBudgetRecord(quote_id=quote_id, budget_data=budget_data)
            self.add(record)
        else:
            record.budget_data = budget_data
            record.updated_at = datetime.utcnow()
        self.flush()
        return record


class WorkBudgetRepository(BaseRepository[QuoteWorkBudgetRecord]):
    """Repository for work budgets and their comments."""

    def __init__(self, session: Session):
        super().__init__(session, QuoteWorkBudgetRecord)

    def exists(self, **criteria) -> bool:
        """Check if a work budget matching the criteria exists."""
        return bool(self._filter_by(**criteria))

    def get_tree_data(self, quote_id: str) -> Optional[Tuple[List[dict], Dict[str, str]]]:
        """
        Get the stored work budget blob and its comments.

        Returns:
            Tuple of (category dicts, comments by line id), or None
        """
        record = self.get_by_quote_id(quote_id)
        if record is None:
            return None
        return record.budget_data, dict(record.comments or {})

    def upsert(
        self,
        quote_id: str,
        budget_data: List[dict],
        comments: Dict[str, str],
    ) -> QuoteWorkBudgetRecord:
        """Insert or replace the work budget blob and comments of a quote."""
        record = self.get_by_quote_id(quote_id)
        if record is None:
            record = QuoteWorkBudgetRecord(
                quote_id=quote_id, budget_data=budget_data, comments=comments
            )
            self.add(record)
        else:
            record.budget_data = budget_data
            record.comments = comments
            record.updated_at = datetime.utcnow()
        self.flush()
        return record

    def delete_by_quote_id(self, quote_id: str) -> bool:
        """
        Delete the work budget of a quote.

        Returns:
            True if a row was deleted, False if none was stored
        """
        record = self.get_by_quote_id(quote_id)
        if record is None:
            return False
        self.delete(record)
        self.flush()
        return True
