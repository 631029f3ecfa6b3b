"""
Version Repository - Data access layer for budget version snapshots.
"""
from typing import List, Optional

from sqlalchemy.orm import Session

from quote_budget.models import BudgetVersionRecord
from .base_repository import BaseRepository


class VersionRepository(BaseRepository[BudgetVersionRecord]):
    """Repository for budget versions. Rows are written once and never updated."""

    def __init__(self, session: Session):
        super().__init__(session, BudgetVersionRecord)

    def exists(self, **criteria) -> bool:
        """Check if a version matching the criteria exists."""
        return bool(self._filter_by(**criteria))

    def get_by_quote(self, project_id: str, quote_id: str) -> List[BudgetVersionRecord]:
        """
        Get all versions of a quote, newest first.

        Args:
            project_id: Project identifier
            quote_id: Quote identifier

        Returns:
            List of version rows
        """
        return self.session.query(BudgetVersionRecord).filter(
            BudgetVersionRecord.project_id == project_id,
            BudgetVersionRecord.quote_id == quote_id,
        ).order_by(
            BudgetVersionRecord.created_at.desc(),
            BudgetVersionRecord.id.desc(),
        ).all()

    def get_latest(self, project_id: str, quote_id: str) -> Optional[BudgetVersionRecord]:
        """Get the most recent version of a quote."""
        return self.session.query(BudgetVersionRecord).filter(
            BudgetVersionRecord.project_id == project_id,
            BudgetVersionRecord.quote_id == quote_id,
        ).order_by(
            BudgetVersionRecord.created_at.desc(),
            BudgetVersionRecord.id.desc(),
        ).first()
