"""
Persistence Gateway - Load and save budget trees of a quote.

Online, saves go straight to the database (upsert keyed by quote id).
Offline, they are appended to the OfflineSyncQueue and replayed in order
when set_online(True) is called. Loads read the latest queued payload of
a tree before the database, so consecutive offline edits build on each
other.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from quote_budget.domain.entities.budget_category import (
    BudgetCategory,
    budget_from_dicts,
    budget_to_dicts,
)
from quote_budget.domain.exceptions import PersistenceError
from quote_budget.domain.services.budget_tree import clone_tree, coerce_tree, extract_comments, iter_nodes
from quote_budget.infrastructure.repositories import BudgetRepository, WorkBudgetRepository
from quote_budget.infrastructure.sync_queue import OfflineSyncQueue, PendingSync, SyncStatus

logger = logging.getLogger(__name__)

BUDGET_SYNC_TYPE = "budget"
WORK_BUDGET_SYNC_TYPE = "work_budget"


class SaveOutcome(str, Enum):
    """Result of a save issued through the gateway."""
    SAVED = "saved"
    QUEUED = "queued"


@dataclass
class WorkBudgetSnapshot:
    """Stored work budget with its comments kept apart from the tree."""

    tree: List[BudgetCategory] = field(default_factory=list)
    comments: Dict[str, str] = field(default_factory=dict)


def _tree_without_comments(tree: List[BudgetCategory]) -> List[BudgetCategory]:
    stripped = clone_tree(tree)
    for node in iter_nodes(stripped):
        node.comments = None
    return stripped


class PersistenceGateway:
    """
    Storage boundary used by the dual budget coordinator.

    Args:
        session: SQLAlchemy session
        sync_queue: Queue for offline saves; an in-memory queue by default
        online: Initial connectivity
    """

    def __init__(
        self,
        session: Session,
        sync_queue: Optional[OfflineSyncQueue] = None,
        online: bool = True,
    ):
        self.session = session
        self.budget_repo = BudgetRepository(session)
        self.work_budget_repo = WorkBudgetRepository(session)
        self.sync_queue = sync_queue if sync_queue is not None else OfflineSyncQueue()
        self.sync_queue.set_online(online)

    @property
    def online(self) -> bool:
        return self.sync_queue.is_online

    # =========================================================================
    # Budget
    # =========================================================================

    def load_budget(self, quote_id: str) -> List[BudgetCategory]:
        """
        Load the committed budget of a quote.

        A save still waiting in the sync queue is newer than the stored row,
        so the latest queued payload wins over the database.

        Returns:
            Stored categories, empty when nothing is stored

        Raises:
            PersistenceError: If the database read fails
        """
        queued = self._latest_pending(BUDGET_SYNC_TYPE, quote_id)
        if queued is not None:
            return budget_from_dicts(queued.data.get('budget'))

        try:
            data = self.budget_repo.get_tree_data(quote_id)
        except SQLAlchemyError as e:
            logger.error(f"Failed to load budget for quote {quote_id}: {e}")
            raise PersistenceError("load budget", quote_id, str(e))
        return budget_from_dicts(data)

    def save_budget(self, quote_id: str, tree) -> SaveOutcome:
        """
        Save the committed budget of a quote.

        Safe to repeat with the same tree.

        Raises:
            PersistenceError: If the database write fails while online
        """
        data = budget_to_dicts(coerce_tree(tree))
        if not self.online:
            self.sync_queue.add(BUDGET_SYNC_TYPE, "update", {'quoteId': quote_id, 'budget': data})
            return SaveOutcome.QUEUED

        self._write("save budget", quote_id, lambda: self.budget_repo.upsert(quote_id, data))
        return SaveOutcome.SAVED

    # =========================================================================
    # Work budget
    # =========================================================================

    def load_work_budget(self, quote_id: str) -> Optional[WorkBudgetSnapshot]:
        """
        Load the work budget of a quote.

        Queued saves and deletes take precedence over the stored row.

        Returns:
            WorkBudgetSnapshot, or None when the quote has no work budget

        Raises:
            PersistenceError: If the database read fails
        """
        queued = self._latest_pending(WORK_BUDGET_SYNC_TYPE, quote_id)
        if queued is not None:
            if queued.operation == "delete":
                return None
            return WorkBudgetSnapshot(
                tree=budget_from_dicts(queued.data.get('budget')),
                comments=dict(queued.data.get('comments') or {}),
            )

        try:
            stored = self.work_budget_repo.get_tree_data(quote_id)
        except SQLAlchemyError as e:
            logger.error(f"Failed to load work budget for quote {quote_id}: {e}")
            raise PersistenceError("load work budget", quote_id, str(e))

        if stored is None:
            return None
        data, comments = stored
        return WorkBudgetSnapshot(tree=budget_from_dicts(data), comments=comments)

    def save_work_budget(
        self,
        quote_id: str,
        tree,
        comments: Optional[Dict[str, str]] = None,
    ) -> SaveOutcome:
        """
        Save the work budget of a quote.

        Comments are stored apart from the tree blob. When not given they
        are extracted from the tree.

        Raises:
            PersistenceError: If the database write fails while online
        """
        categories = coerce_tree(tree)
        if comments is None:
            comments = extract_comments(categories)
        data = budget_to_dicts(_tree_without_comments(categories))
        comments = dict(comments)

        if not self.online:
            self.sync_queue.add(
                WORK_BUDGET_SYNC_TYPE, "update",
                {'quoteId': quote_id, 'budget': data, 'comments': comments},
            )
            return SaveOutcome.QUEUED

        self._write(
            "save work budget", quote_id,
            lambda: self.work_budget_repo.upsert(quote_id, data, comments),
        )
        return SaveOutcome.SAVED

    def delete_work_budget(self, quote_id: str) -> SaveOutcome:
        """
        Delete the stored work budget of a quote.

        Raises:
            PersistenceError: If the database write fails while online
        """
        if not self.online:
            self.sync_queue.add(WORK_BUDGET_SYNC_TYPE, "delete", {'quoteId': quote_id})
            return SaveOutcome.QUEUED

        self._write(
            "delete work budget", quote_id,
            lambda: self.work_budget_repo.delete_by_quote_id(quote_id),
        )
        return SaveOutcome.SAVED

    def has_work_budget(self, quote_id: str) -> bool:
        """True if a work budget is stored or queued for the quote."""
        return self.load_work_budget(quote_id) is not None

    def _latest_pending(self, sync_type: str, quote_id: str) -> Optional[PendingSync]:
        """Most recent queued operation on one tree of a quote."""
        for sync in reversed(self.sync_queue.pending()):
            if sync.type == sync_type and sync.data.get('quoteId') == quote_id:
                return sync
        return None

    # =========================================================================
    # Connectivity
    # =========================================================================

    def set_online(self, online: bool) -> int:
        """
        Change connectivity; going online replays the queue.

        Returns:
            Number of queued operations replayed
        """
        self.sync_queue.set_online(online)
        if not online:
            logger.info("Persistence gateway offline, saves will be queued")
            return 0
        return self.flush()

    def flush(self) -> int:
        """Replay queued operations against the database."""
        return self.sync_queue.flush(self._replay)

    def sync_status(self) -> SyncStatus:
        return self.sync_queue.status()

    def _replay(self, sync: PendingSync) -> None:
        quote_id = sync.data.get('quoteId')
        if not quote_id:
            raise ValueError(f"Queued {sync.type} operation {sync.id} has no quote id")

        if sync.type == BUDGET_SYNC_TYPE and sync.operation in ("insert", "update"):
            self._write("replay budget", quote_id,
                        lambda: self.budget_repo.upsert(quote_id, sync.data.get('budget') or []))
        elif sync.type == WORK_BUDGET_SYNC_TYPE and sync.operation in ("insert", "update"):
            self._write("replay work budget", quote_id,
                        lambda: self.work_budget_repo.upsert(
                            quote_id, sync.data.get('budget') or [], sync.data.get('comments') or {}
                        ))
        elif sync.type == WORK_BUDGET_SYNC_TYPE and sync.operation == "delete":
            self._write("replay work budget delete", quote_id,
                        lambda: self.work_budget_repo.delete_by_quote_id(quote_id))
        else:
            raise ValueError(f"Unsupported queued operation {sync.type}/{sync.operation}")

    def _write(self, operation: str, quote_id: str, action) -> None:
        try:
            action()
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Failed to {operation} for quote {quote_id}: {e}")
            raise PersistenceError(operation, quote_id, str(e))
