"""
History Service - Immutable version snapshots of quote budgets.

A version stores a deep copy of the budget and its grand total at save
time. Saving the same budget again within the duplicate window does not
create a new version.
"""
import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from quote_budget.config import get_config
from quote_budget.domain.entities.budget_category import BudgetCategory, budget_to_dicts
from quote_budget.domain.entities.budget_version import BudgetVersion
from quote_budget.domain.entities.quote_settings import QuoteSettings, get_default_settings
from quote_budget.domain.exceptions import PersistenceError, VersionNotFoundError
from quote_budget.domain.services.aggregation_service import compute_totals
from quote_budget.domain.services.budget_tree import clone_tree, coerce_tree
from quote_budget.infrastructure.repositories import VersionRepository
from quote_budget.models import BudgetVersionRecord

logger = logging.getLogger(__name__)


class HistoryService:
    """
    Service for budget version history.

    Args:
        session: SQLAlchemy session
        now: Clock returning naive UTC datetimes
    """

    def __init__(self, session: Session, now: Callable[[], datetime] = datetime.utcnow):
        self.session = session
        self.version_repo = VersionRepository(session)
        self.now = now

    def create_version(
        self,
        project_id: str,
        quote_id: str,
        budget,
        author: Optional[str] = None,
        description: str = "",
        settings: Optional[QuoteSettings] = None,
    ) -> BudgetVersion:
        """
        Snapshot a budget.

        Args:
            project_id: Project identifier
            quote_id: Quote identifier
            budget: Budget tree to snapshot
            author: Who saved the version
            description: Free-text description
            settings: Settings used for the grand total, defaults from config

        Returns:
            The new version, or the latest one when the budget is a duplicate
            saved within the duplicate window
        """
        categories = clone_tree(coerce_tree(budget))
        data = budget_to_dicts(categories)
        created_at = self.now()

        latest = self.version_repo.get_latest(project_id, quote_id)
        if latest is not None and latest.budget_data == data:
            window = timedelta(seconds=get_config().duplicate_window_seconds)
            if created_at - latest.created_at < window:
                logger.info(f"Skipping duplicate version of quote {quote_id}")
                return BudgetVersion.from_record(latest)

        totals = compute_totals(categories, settings or get_default_settings())
        record = BudgetVersionRecord(
            uuid=str(uuid4()),
            project_id=project_id,
            quote_id=quote_id,
            created_at=created_at,
            author=author,
            description=description,
            budget_data=data,
            total_amount=totals.grand_total,
        )

        try:
            self.version_repo.add(record)
            self.version_repo.commit()
        except SQLAlchemyError as e:
            self.version_repo.rollback()
            logger.error(f"Failed to save version of quote {quote_id}: {e}")
            raise PersistenceError("create version", quote_id, str(e))

        logger.info(f"Created version {record.uuid} of quote {quote_id} ({totals.grand_total:.2f})")
        return BudgetVersion.from_record(record)

    def list_versions(self, project_id: str, quote_id: str) -> List[BudgetVersion]:
        """Versions of a quote, newest first."""
        return [
            BudgetVersion.from_record(record)
            for record in self.version_repo.get_by_quote(project_id, quote_id)
        ]

    def get_version(self, version_id: str) -> BudgetVersion:
        """
        Get a version by id.

        Raises:
            VersionNotFoundError: If no version has that id
        """
        record = self.version_repo.get_by_uuid(version_id)
        if record is None:
            raise VersionNotFoundError(version_id)
        return BudgetVersion.from_record(record)

    def restore_version(self, version_id: str) -> Optional[List[BudgetCategory]]:
        """
        Budget stored in a version.

        Returns:
            A fresh copy of the budget, or None if the version does not exist
        """
        record = self.version_repo.get_by_uuid(version_id)
        if record is None:
            logger.warning(f"Version {version_id} not found")
            return None
        return BudgetVersion.from_record(record).budget
