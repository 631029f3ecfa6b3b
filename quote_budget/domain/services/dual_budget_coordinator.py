"""
Dual Budget Coordinator - The quote budget and the work budget of one quote.

The quote budget is the priced plan; the work budget is an independent
copy edited to track actual costs. The two trees are never synchronized.

State machine:
- Inactive: work budget empty, is_work_budget_active False
- Active: work budget non-empty, initialized from the quote budget (or loaded)

Every mutation is applied in memory first and then persisted. A failed
save raises PersistenceError but leaves the in-memory change in place.
"""
import logging
import threading
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, List, Mapping, Optional

from quote_budget.config import get_config
from quote_budget.domain.entities.aggregation import AggregationResult, BudgetComparison
from quote_budget.domain.entities.budget_category import BudgetCategory
from quote_budget.domain.entities.budget_line import BudgetItemType
from quote_budget.domain.entities.quote_settings import QuoteSettings, get_default_settings
from quote_budget.domain.exceptions import PersistenceError
from quote_budget.domain.services.aggregation_service import compare_budgets, compute_totals
from quote_budget.domain.services.budget_tree import (
    apply_comments,
    clone_tree,
    coerce_tree,
    strip_comment,
)
from quote_budget.domain.services.tree_mutator import TreeMutator

if TYPE_CHECKING:
    from quote_budget.infrastructure.persistence_gateway import PersistenceGateway

logger = logging.getLogger(__name__)

_POST_TYPES = (BudgetItemType.POST, BudgetItemType.SUB_POST)


class DualBudgetCoordinator:
    """
    Service object owning both budget trees of a quote.

    Args:
        quote_id: Quote identifier
        gateway: PersistenceGateway used for loads and saves
        settings_provider: Callable returning the current QuoteSettings
        mutator: TreeMutator to apply edits with (tolerant by default)
    """

    def __init__(
        self,
        quote_id: str,
        gateway: "PersistenceGateway",
        settings_provider: Callable[[], QuoteSettings] = get_default_settings,
        mutator: Optional[TreeMutator] = None,
    ):
        self.quote_id = quote_id
        self.gateway = gateway
        self.settings_provider = settings_provider
        self.mutator = mutator or TreeMutator()

        self._budget: List[BudgetCategory] = []
        self._work_budget: List[BudgetCategory] = []
        self.is_work_budget_active = False
        self.last_saved: Optional[datetime] = None
        self.lock = threading.RLock()

    # =========================================================================
    # State access
    # =========================================================================

    @property
    def budget(self) -> List[BudgetCategory]:
        """Copy of the quote budget."""
        with self.lock:
            return clone_tree(self._budget)

    @property
    def work_budget(self) -> List[BudgetCategory]:
        """Copy of the work budget."""
        with self.lock:
            return clone_tree(self._work_budget)

    def get_tree(self, work_budget: bool = False) -> List[BudgetCategory]:
        """Copy of the selected tree."""
        return self.work_budget if work_budget else self.budget

    def _current(self, work_budget: bool) -> List[BudgetCategory]:
        return self._work_budget if work_budget else self._budget

    # =========================================================================
    # Loading
    # =========================================================================

    def load(self) -> bool:
        """
        Load both trees from storage.

        The work budget is active when a non-empty one is stored. On failure the
        in-memory state is kept.

        Returns:
            True if both trees were loaded
        """
        with self.lock:
            try:
                budget = self.gateway.load_budget(self.quote_id)
                snapshot = self.gateway.load_work_budget(self.quote_id)
            except PersistenceError as e:
                logger.error(f"Could not load budgets of quote {self.quote_id}: {e.message}")
                return False

            self._budget = budget
            if snapshot is not None:
                self._work_budget = apply_comments(snapshot.tree, snapshot.comments)
                self.is_work_budget_active = bool(self._work_budget)
            else:
                self._work_budget = []
                self.is_work_budget_active = False
            return True

    def load_work_budget(self) -> bool:
        """
        Reload the work budget and re-join its separately stored comments.

        Returns:
            True if a stored work budget was loaded
        """
        with self.lock:
            try:
                snapshot = self.gateway.load_work_budget(self.quote_id)
            except PersistenceError as e:
                logger.error(f"Could not load work budget of quote {self.quote_id}: {e.message}")
                return False

            if snapshot is None:
                return False
            self._work_budget = apply_comments(snapshot.tree, snapshot.comments)
            self.is_work_budget_active = bool(self._work_budget)
            return True

    # =========================================================================
    # Persistence
    # =========================================================================

    def _commit(self, tree: List[BudgetCategory], work_budget: bool) -> None:
        """Install a tree in memory, then persist it."""
        if work_budget:
            if not tree and not self._work_budget:
                logger.debug(f"Work budget of quote {self.quote_id} still empty, nothing to save")
                return
            self._work_budget = tree
            self.is_work_budget_active = bool(tree)
            self.gateway.save_work_budget(self.quote_id, tree)
        else:
            self._budget = tree
            self.gateway.save_budget(self.quote_id, tree)
        self.last_saved = datetime.utcnow()

    # =========================================================================
    # Mutations
    # =========================================================================

    def add_item(
        self,
        category_id: Optional[str],
        parent_id: Optional[str],
        item_type: Any,
        settings: Optional[QuoteSettings] = None,
        work_budget: bool = False,
    ) -> Optional[str]:
        """
        Add a category or line to one of the trees.

        A post added to an empty work budget lands in a dedicated
        "added posts" category created on the fly.

        Returns:
            Id of the new node, None when nothing was added
        """
        item_type = BudgetItemType.coerce(item_type)
        with self.lock:
            tree = self._current(work_budget)
            if work_budget and item_type in _POST_TYPES and not tree:
                added = get_config().added_posts_category
                tree = [BudgetCategory(id=added["id"], name=added["name"], is_expanded=True)]
                category_id = added["id"]
                parent_id = None

            updated, new_id = self.mutator.add_item_with_id(
                tree, category_id, parent_id, item_type,
                settings or self.settings_provider(), is_work_budget=work_budget,
            )
            if new_id is None:
                return None
            self._commit(updated, work_budget)
            return new_id

    def update_item(
        self,
        category_id: str,
        item_id: str,
        updates: Mapping[str, Any],
        work_budget: bool = False,
    ) -> None:
        """Shallow-merge updates onto a line of the selected tree."""
        with self.lock:
            tree = self.mutator.update_item(self._current(work_budget), category_id, item_id, updates)
            self._commit(tree, work_budget)

    def delete_item(self, category_id: str, item_id: str, work_budget: bool = False) -> None:
        """Delete a category or line of the selected tree."""
        with self.lock:
            tree = self.mutator.delete_item(self._current(work_budget), category_id, item_id)
            self._commit(tree, work_budget)

    def update_category(
        self,
        category_id: str,
        updates: Mapping[str, Any],
        work_budget: bool = False,
    ) -> None:
        """Shallow-merge updates onto a category of the selected tree."""
        with self.lock:
            tree = self.mutator.update_category(self._current(work_budget), category_id, updates)
            self._commit(tree, work_budget)

    def reorder_categories(self, from_index: int, to_index: int, work_budget: bool = False) -> None:
        """Move a category of the selected tree."""
        with self.lock:
            tree = self.mutator.reorder_categories(self._current(work_budget), from_index, to_index)
            self._commit(tree, work_budget)

    def apply_rate_margins(
        self,
        rate_id: str,
        agency_percent: Optional[float] = None,
        margin_percent: Optional[float] = None,
        work_budget: bool = False,
    ) -> None:
        """Propagate a rate's agency/margin to the lines of the selected tree."""
        with self.lock:
            tree = self.mutator.apply_rate_margins(
                self._current(work_budget), rate_id, agency_percent, margin_percent
            )
            self._commit(tree, work_budget)

    def update_budget(self, tree: Any, work_budget: bool = False) -> None:
        """Replace the selected tree wholesale."""
        with self.lock:
            self._commit(clone_tree(coerce_tree(tree)), work_budget)

    # =========================================================================
    # Work budget lifecycle
    # =========================================================================

    def initialize_work_budget(self) -> bool:
        """
        Seed the work budget from the quote budget.

        Budget-local `comment` annotations are not carried over. Does
        nothing when the work budget already has content or when the quote
        budget is empty.

        Returns:
            True if the work budget was initialized
        """
        with self.lock:
            if self._work_budget:
                logger.debug(f"Work budget of quote {self.quote_id} already initialized")
                return False
            if not self._budget:
                logger.warning(f"Quote {self.quote_id} has an empty budget, work budget not initialized")
                return False

            logger.info(f"Initializing work budget of quote {self.quote_id}")
            self._commit(strip_comment(self._budget), work_budget=True)
            return True

    def reset_work_budget(self) -> None:
        """Discard the work budget, in memory and in storage."""
        with self.lock:
            self._work_budget = []
            self.is_work_budget_active = False
            logger.info(f"Resetting work budget of quote {self.quote_id}")
            self.gateway.delete_work_budget(self.quote_id)
            self.last_saved = datetime.utcnow()

    # =========================================================================
    # Computation
    # =========================================================================

    def compute_totals(
        self,
        settings: Optional[QuoteSettings] = None,
        work_budget: bool = False,
    ) -> AggregationResult:
        """Totals of the selected tree; the work budget is priced on actual costs."""
        with self.lock:
            return compute_totals(
                self._current(work_budget),
                settings or self.settings_provider(),
                use_work_cost=work_budget,
            )

    def compare(self, settings: Optional[QuoteSettings] = None) -> BudgetComparison:
        """Quote budget versus work budget."""
        with self.lock:
            return compare_budgets(self._budget, self._work_budget, settings or self.settings_provider())
