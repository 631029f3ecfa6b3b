"""
Tests for the persistence gateway and the offline sync queue.
"""
import json

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from quote_budget.domain.entities import BudgetCategory, BudgetLine
from quote_budget.domain.exceptions import PersistenceError
from quote_budget.domain.services.budget_tree import find_node
from quote_budget.infrastructure.persistence_gateway import (
    BUDGET_SYNC_TYPE,
    WORK_BUDGET_SYNC_TYPE,
    PersistenceGateway,
    SaveOutcome,
)
from quote_budget.infrastructure.repositories import BudgetRepository, WorkBudgetRepository
from quote_budget.infrastructure.sync_queue import OfflineSyncQueue, PendingSync
from quote_budget.models import Base


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
def tree():
    return [
        BudgetCategory(id="c1", name="Technique", items=[
            BudgetLine(id="p1", name="Chef op", quantity=5, number=1, rate=400, cost=350,
                       comments="ok for 5 days"),
            BudgetLine(id="p2", name="Cadreur", quantity=5, number=1, rate=300, is_expanded=False),
        ]),
    ]


# =============================================================================
# Repositories
# =============================================================================

class TestBudgetRepositories:
    """Tests for the upsert repositories."""

    def test_upsert_replaces(self, session):
        """Test a second upsert replaces the stored blob."""
        repo = BudgetRepository(session)
        repo.upsert("Q-1", [{'id': 'a'}])
        repo.upsert("Q-1", [{'id': 'b'}])
        session.commit()
        assert repo.count() == 1
        assert repo.get_tree_data("Q-1") == [{'id': 'b'}]

    def test_missing_quote(self, session):
        """Test nothing stored returns None."""
        assert BudgetRepository(session).get_tree_data("nope") is None
        assert WorkBudgetRepository(session).get_tree_data("nope") is None

    def test_work_budget_delete(self, session):
        """Test deleting a work budget."""
        repo = WorkBudgetRepository(session)
        repo.upsert("Q-1", [], {'p1': 'x'})
        session.commit()
        assert repo.delete_by_quote_id("Q-1") is True
        assert repo.delete_by_quote_id("Q-1") is False


# =============================================================================
# Gateway online
# =============================================================================

class TestGatewayOnline:
    """Tests for direct database saves."""

    def test_budget_round_trip(self, session, tree):
        """Test a saved budget loads back equal."""
        gateway = PersistenceGateway(session)
        assert gateway.save_budget("Q-1", tree) == SaveOutcome.SAVED
        assert gateway.load_budget("Q-1") == tree

    def test_save_is_idempotent(self, session, tree):
        """Test saving the same tree twice keeps one row."""
        gateway = PersistenceGateway(session)
        gateway.save_budget("Q-1", tree)
        gateway.save_budget("Q-1", tree)
        assert BudgetRepository(session).count() == 1
        assert gateway.load_budget("Q-1") == tree

    def test_empty_quote_loads_empty(self, session):
        """Test a quote with nothing stored."""
        gateway = PersistenceGateway(session)
        assert gateway.load_budget("Q-1") == []
        assert gateway.load_work_budget("Q-1") is None
        assert gateway.has_work_budget("Q-1") is False

    def test_work_budget_comments_stored_apart(self, session, tree):
        """Test comments are kept out of the tree blob and re-joined on load."""
        gateway = PersistenceGateway(session)
        gateway.save_work_budget("Q-1", tree)

        data, comments = WorkBudgetRepository(session).get_tree_data("Q-1")
        assert 'comments' not in data[0]['items'][0]
        assert comments == {'p1': "ok for 5 days"}

        snapshot = gateway.load_work_budget("Q-1")
        assert find_node(snapshot.tree, "p1").comments is None
        assert snapshot.comments == {'p1': "ok for 5 days"}
        assert find_node(snapshot.tree, "p1").cost == 350
        assert find_node(snapshot.tree, "p2").is_expanded is False

    def test_explicit_comments(self, session, tree):
        """Test comments given by the caller win over the tree's."""
        gateway = PersistenceGateway(session)
        gateway.save_work_budget("Q-1", tree, comments={'p2': "renegotiate"})
        assert gateway.load_work_budget("Q-1").comments == {'p2': "renegotiate"}

    def test_write_failure_rolls_back_and_raises(self, session, tree, monkeypatch):
        """Test a database error becomes PersistenceError."""
        gateway = PersistenceGateway(session)

        def broken_upsert(*args, **kwargs):
            raise OperationalError("INSERT", {}, Exception("database is locked"))

        monkeypatch.setattr(gateway.budget_repo, "upsert", broken_upsert)
        with pytest.raises(PersistenceError) as exc_info:
            gateway.save_budget("Q-1", tree)
        assert exc_info.value.quote_id == "Q-1"
        assert exc_info.value.code == "PERSISTENCE_ERROR"


# =============================================================================
# Gateway offline
# =============================================================================

class TestGatewayOffline:
    """Tests for queued saves and replay."""

    def test_offline_save_is_queued(self, session, tree):
        """Test saves are queued and nothing reaches the database."""
        gateway = PersistenceGateway(session, online=False)
        assert gateway.save_budget("Q-1", tree) == SaveOutcome.QUEUED
        assert gateway.save_work_budget("Q-1", tree) == SaveOutcome.QUEUED

        pending = gateway.sync_queue.pending()
        assert [sync.type for sync in pending] == [BUDGET_SYNC_TYPE, WORK_BUDGET_SYNC_TYPE]
        assert pending[1].data['comments'] == {'p1': "ok for 5 days"}
        assert BudgetRepository(session).get_tree_data("Q-1") is None

    def test_going_online_replays_in_order(self, session, tree):
        """Test the last queued save wins after replay."""
        gateway = PersistenceGateway(session, online=False)
        gateway.save_budget("Q-1", tree)
        gateway.save_budget("Q-1", [])
        gateway.save_work_budget("Q-1", tree)
        gateway.delete_work_budget("Q-1")

        assert gateway.set_online(True) == 4
        assert gateway.load_budget("Q-1") == []
        assert gateway.load_work_budget("Q-1") is None
        assert gateway.sync_status().pending_syncs == 0

    def test_load_reads_queued_budget(self, session, tree):
        """Test a queued save is what the next load returns."""
        gateway = PersistenceGateway(session)
        gateway.save_budget("Q-1", [])
        gateway.set_online(False)
        gateway.save_budget("Q-1", tree)
        assert gateway.load_budget("Q-1") == tree
        assert gateway.load_budget("Q-2") == []

    def test_latest_queued_save_wins(self, session, tree):
        """Test only the most recent queued save of a quote is read."""
        gateway = PersistenceGateway(session, online=False)
        gateway.save_budget("Q-1", tree)
        gateway.save_budget("Q-2", [])
        gateway.save_budget("Q-1", tree[:1])
        assert [category.id for category in gateway.load_budget("Q-1")] == ["c1"]

    def test_queued_work_budget_and_delete(self, session, tree):
        """Test queued work budget saves and deletes shadow the stored one."""
        gateway = PersistenceGateway(session)
        gateway.save_work_budget("Q-1", tree)
        gateway.set_online(False)

        gateway.save_work_budget("Q-1", tree, comments={'p2': "renegotiate"})
        assert gateway.load_work_budget("Q-1").comments == {'p2': "renegotiate"}

        gateway.delete_work_budget("Q-1")
        assert gateway.load_work_budget("Q-1") is None
        assert gateway.has_work_budget("Q-1") is False
        assert WorkBudgetRepository(session).get_tree_data("Q-1") is not None

    def test_failed_replay_stays_queued(self, session, tree):
        """Test entries that cannot be replayed are kept."""
        queue = OfflineSyncQueue(is_online=False)
        queue.add(BUDGET_SYNC_TYPE, "update", {'budget': []})
        queue.add("unknown", "update", {'quoteId': "Q-1"})
        queue.add(BUDGET_SYNC_TYPE, "update", {'quoteId': "Q-1", 'budget': []})
        gateway = PersistenceGateway(session, queue, online=False)

        assert gateway.set_online(True) == 1
        assert len(gateway.sync_queue) == 2

    def test_going_offline(self, session):
        """Test going offline replays nothing."""
        gateway = PersistenceGateway(session)
        assert gateway.set_online(False) == 0
        assert gateway.online is False


# =============================================================================
# Sync queue
# =============================================================================

class TestOfflineSyncQueue:
    """Tests for the queue on its own."""

    def test_unknown_operation_rejected(self):
        """Test only insert, update and delete are accepted."""
        with pytest.raises(ValueError):
            OfflineSyncQueue().add("budget", "upsert", {})

    def test_persisted_to_json_file(self, tmp_path):
        """Test pending entries survive a new queue on the same file."""
        path = tmp_path / "queue" / "pending.json"
        queue = OfflineSyncQueue(path, is_online=False)
        queued = queue.add("budget", "update", {'quoteId': "Q-1"})

        stored = json.loads(path.read_text(encoding='utf-8'))
        assert stored[0]['id'] == queued.id

        reopened = OfflineSyncQueue(path)
        assert [sync.id for sync in reopened.pending()] == [queued.id]

    def test_corrupt_file_starts_empty(self, tmp_path):
        """Test an unreadable queue file is ignored."""
        path = tmp_path / "pending.json"
        path.write_text("{not json", encoding='utf-8')
        assert len(OfflineSyncQueue(path)) == 0

    def test_flush_offline_does_nothing(self):
        """Test no replay happens while offline."""
        queue = OfflineSyncQueue(is_online=False)
        queue.add("budget", "update", {})
        calls = []
        assert queue.flush(calls.append) == 0
        assert calls == []

    def test_flush_in_order(self):
        """Test entries are replayed first in, first out."""
        queue = OfflineSyncQueue(is_online=False)
        first = queue.add("budget", "update", {'n': 1})
        second = queue.add("budget", "delete", {'n': 2})
        queue.set_online(True)

        replayed = []
        assert queue.flush(replayed.append) == 2
        assert [sync.id for sync in replayed] == [first.id, second.id]
        assert len(queue) == 0

    def test_listeners_notified(self):
        """Test status changes reach subscribers until they unsubscribe."""
        queue = OfflineSyncQueue()
        statuses = []
        unsubscribe = queue.subscribe(statuses.append)
        assert statuses == []

        queue.set_online(False)
        queue.add("budget", "update", {})
        assert statuses[-1].is_online is False
        assert statuses[-1].pending_syncs == 1

        unsubscribe()
        queue.set_online(True)
        assert len(statuses) == 2

    def test_failing_listener_does_not_break_queue(self):
        """Test a listener error is logged, not raised."""
        queue = OfflineSyncQueue()

        def broken(status):
            raise RuntimeError("boom")

        queue.subscribe(broken)
        queue.add("budget", "update", {})
        assert len(queue) == 1

    def test_status_to_dict(self):
        """Test the camelCase status shape."""
        status = OfflineSyncQueue(is_online=False).status().to_dict()
        assert status == {'isOnline': False, 'pendingSyncs': 0, 'isSyncing': False}

    def test_pending_sync_from_dict(self):
        """Test malformed stored entries are tolerated."""
        sync = PendingSync.from_dict({'type': 'budget', 'operation': 'update', 'data': 'junk'})
        assert sync.data == {}
        assert sync.id
