"""
Tests for the dual budget coordinator.

Uses an in-memory SQLite database behind a real persistence gateway.
"""
import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from quote_budget.domain.entities import BudgetCategory, BudgetLine, QuoteSettings, SocialChargeRate
from quote_budget.domain.exceptions import PersistenceError
from quote_budget.domain.services.budget_tree import find_node
from quote_budget.domain.services.dual_budget_coordinator import DualBudgetCoordinator
from quote_budget.infrastructure.persistence_gateway import PersistenceGateway
from quote_budget.models import Base


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def session():
    """Fresh in-memory database per test."""
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    db = sessionmaker(bind=engine)()
    yield db
    db.close()
    engine.dispose()


@pytest.fixture
def settings():
    return QuoteSettings(
        social_charge_rates=[SocialChargeRate(id="65", label="Techniciens", rate=0.65)],
        default_agency_percent=10,
        default_margin_percent=15,
    )


@pytest.fixture
def gateway(session):
    return PersistenceGateway(session)


@pytest.fixture
def coordinator(gateway, settings):
    """Coordinator with a one-post quote budget already saved."""
    coordinator = DualBudgetCoordinator("Q-1", gateway, settings_provider=lambda: settings)
    coordinator.update_budget([
        BudgetCategory(id="c1", name="Technique", items=[
            BudgetLine(id="p1", name="Chef op", quantity=1, number=1, rate=100,
                       comment={'text': 'to check', 'checked': False}),
        ]),
    ])
    return coordinator


# =============================================================================
# Lifecycle
# =============================================================================

class TestWorkBudgetLifecycle:
    """Tests for initialization and reset."""

    def test_inactive_by_default(self, coordinator):
        """Test a fresh quote has no work budget."""
        assert coordinator.is_work_budget_active is False
        assert coordinator.work_budget == []

    def test_initialize_copies_without_comment(self, coordinator):
        """Test the work budget is a comment-free copy of the quote."""
        assert coordinator.initialize_work_budget() is True
        assert coordinator.is_work_budget_active
        work_post = find_node(coordinator.work_budget, "p1")
        assert work_post.rate == 100
        assert work_post.comment is None
        assert find_node(coordinator.budget, "p1").comment == {'text': 'to check', 'checked': False}

    def test_initialize_is_idempotent(self, coordinator):
        """Test a second initialization keeps work budget edits."""
        coordinator.initialize_work_budget()
        coordinator.update_item("c1", "p1", {'cost': 80}, work_budget=True)
        assert coordinator.initialize_work_budget() is False
        assert find_node(coordinator.work_budget, "p1").cost == 80

    def test_reset(self, coordinator, gateway):
        """Test reset empties and deactivates the work budget, in storage too."""
        coordinator.initialize_work_budget()
        coordinator.reset_work_budget()
        assert coordinator.work_budget == []
        assert coordinator.is_work_budget_active is False
        assert gateway.load_work_budget("Q-1") is None

    def test_noop_work_edit_stays_inactive(self, coordinator, gateway):
        """Test an edit that leaves the empty work budget empty is not saved."""
        coordinator.update_item("c1", "p1", {'rate': 5}, work_budget=True)
        coordinator.reorder_categories(0, 1, work_budget=True)
        assert coordinator.is_work_budget_active is False
        assert coordinator.work_budget == []
        assert gateway.load_work_budget("Q-1") is None
        assert gateway.has_work_budget("Q-1") is False

    def test_initialize_from_empty_budget(self, gateway, settings):
        """Test nothing is initialized when the quote budget is empty."""
        empty = DualBudgetCoordinator("Q-2", gateway, settings_provider=lambda: settings)
        assert empty.initialize_work_budget() is False
        assert empty.is_work_budget_active is False
        assert gateway.load_work_budget("Q-2") is None

    def test_emptied_work_budget_is_inactive(self, coordinator, gateway, settings):
        """Test deleting the last category deactivates the work budget, also after reload."""
        coordinator.initialize_work_budget()
        coordinator.delete_item("c1", "c1", work_budget=True)
        assert coordinator.is_work_budget_active is False

        fresh = DualBudgetCoordinator("Q-1", gateway, settings_provider=lambda: settings)
        fresh.load()
        assert fresh.is_work_budget_active is False
        assert fresh.work_budget == []

    def test_initialize_after_reset(self, coordinator):
        """Test the work budget can be seeded again after a reset."""
        coordinator.initialize_work_budget()
        coordinator.reset_work_budget()
        assert coordinator.initialize_work_budget() is True


# =============================================================================
# Independence
# =============================================================================

class TestIndependence:
    """Tests that the two trees never alias."""

    def test_work_edits_do_not_touch_quote(self, coordinator):
        """Test edits on the work budget leave the quote budget unchanged."""
        coordinator.initialize_work_budget()
        coordinator.update_item("c1", "p1", {'rate': 999}, work_budget=True)
        assert find_node(coordinator.budget, "p1").rate == 100
        assert find_node(coordinator.work_budget, "p1").rate == 999

    def test_quote_edits_do_not_touch_work(self, coordinator):
        """Test edits on the quote budget leave the work budget unchanged."""
        coordinator.initialize_work_budget()
        coordinator.delete_item("c1", "p1")
        assert find_node(coordinator.budget, "p1") is None
        assert find_node(coordinator.work_budget, "p1") is not None

    def test_returned_trees_are_copies(self, coordinator):
        """Test mutating a returned tree does not change coordinator state."""
        tree = coordinator.budget
        tree[0].items.clear()
        assert len(coordinator.budget[0].items) == 1


# =============================================================================
# Mutations
# =============================================================================

class TestMutations:
    """Tests for edits routed through the coordinator."""

    def test_add_item_returns_id_and_persists(self, coordinator, gateway):
        """Test a new post is stored."""
        new_id = coordinator.add_item("c1", None, "post")
        assert new_id is not None
        stored = gateway.load_budget("Q-1")
        assert find_node(stored, new_id).rate == 100

    def test_add_item_unknown_category(self, coordinator):
        """Test nothing is added to a missing category."""
        assert coordinator.add_item("missing", None, "post") is None

    def test_post_in_empty_work_budget(self, coordinator):
        """Test a post added to an empty work budget gets its own category."""
        new_id = coordinator.add_item(None, None, "post", work_budget=True)
        work = coordinator.work_budget
        assert [category.id for category in work] == ["root-added-posts"]
        assert work[0].name == "Postes ajoutés"
        assert work[0].items[0].id == new_id
        assert work[0].items[0].is_new_post
        assert coordinator.is_work_budget_active

    def test_reorder_and_rename(self, coordinator):
        """Test category edits."""
        coordinator.add_item(None, None, "category")
        coordinator.update_category("c1", {'name': "Image"})
        coordinator.reorder_categories(0, 1)
        assert coordinator.budget[1].name == "Image"

    def test_apply_rate_margins(self, coordinator):
        """Test rate percentages reach charged lines."""
        coordinator.update_item("c1", "p1", {'socialCharges': "65"})
        coordinator.apply_rate_margins("65", agency_percent=5, margin_percent=5)
        post = find_node(coordinator.budget, "p1")
        assert post.agency_percent == 5
        assert post.margin_percent == 5

    def test_last_saved_tracks_saves(self, coordinator, gateway, settings):
        """Test last_saved is set by saves and not by loads."""
        fresh = DualBudgetCoordinator("Q-1", gateway, settings_provider=lambda: settings)
        fresh.load()
        assert fresh.last_saved is None
        fresh.update_item("c1", "p1", {'rate': 120})
        assert fresh.last_saved is not None

    def test_failed_save_keeps_memory_state(self, coordinator, gateway, monkeypatch):
        """Test the in-memory change survives a failed save."""
        def broken_upsert(*args, **kwargs):
            raise OperationalError("UPDATE", {}, Exception("disk full"))

        monkeypatch.setattr(gateway.budget_repo, "upsert", broken_upsert)
        with pytest.raises(PersistenceError):
            coordinator.update_item("c1", "p1", {'rate': 300})
        assert find_node(coordinator.budget, "p1").rate == 300


# =============================================================================
# Loading and totals
# =============================================================================

class TestLoadAndTotals:
    """Tests for reload and computation."""

    def test_reload_restores_both_trees_and_comments(self, coordinator, gateway, settings):
        """Test a second coordinator sees the saved state with comments re-joined."""
        coordinator.initialize_work_budget()
        coordinator.update_item("c1", "p1", {'comments': "overtime on day 2"}, work_budget=True)

        fresh = DualBudgetCoordinator("Q-1", gateway, settings_provider=lambda: settings)
        assert fresh.load() is True
        assert fresh.is_work_budget_active
        assert find_node(fresh.work_budget, "p1").comments == "overtime on day 2"
        assert find_node(fresh.budget, "p1").rate == 100

    def test_load_work_budget(self, coordinator, gateway, settings):
        """Test reloading only the work budget."""
        fresh = DualBudgetCoordinator("Q-1", gateway, settings_provider=lambda: settings)
        assert fresh.load_work_budget() is False
        coordinator.initialize_work_budget()
        assert fresh.load_work_budget() is True

    def test_totals_price_work_on_cost(self, coordinator):
        """Test the work budget is priced on actual costs."""
        coordinator.initialize_work_budget()
        coordinator.update_item("c1", "p1", {'cost': 80}, work_budget=True)
        assert coordinator.compute_totals().base_cost == pytest.approx(100)
        assert coordinator.compute_totals(work_budget=True).base_cost == pytest.approx(80)

    def test_compare(self, coordinator):
        """Test the comparison reports the cost variance."""
        coordinator.initialize_work_budget()
        coordinator.update_item("c1", "p1", {'cost': 120}, work_budget=True)
        comparison = coordinator.compare()
        assert comparison.total_cost.difference == pytest.approx(20)
        assert comparison.categories["c1"].is_overrun
