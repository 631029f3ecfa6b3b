"""
Tests for the management CLI.
"""
import json

import pytest
from click.testing import CliRunner
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from quote_budget.cli import commands
from quote_budget.domain.entities import BudgetCategory, BudgetLine
from quote_budget.infrastructure import OfflineSyncQueue, PersistenceGateway
from quote_budget.models import Base


@pytest.fixture
def session_factory(monkeypatch):
    """Point the CLI at an in-memory database."""
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine)

    def fake_get_db():
        db = factory()
        try:
            yield db
        finally:
            db.close()

    monkeypatch.setattr(commands, "get_db", fake_get_db)
    yield factory
    engine.dispose()


@pytest.fixture
def queue(monkeypatch, tmp_path):
    """Point the CLI at a queue file under tmp_path."""
    path = tmp_path / "pending.json"
    monkeypatch.setattr(commands, "_sync_queue", lambda: OfflineSyncQueue(path))
    return path


class TestTotalsCommand:
    """Tests for the totals command."""

    def test_json_totals(self, session_factory, queue):
        """Test totals of a stored budget as JSON."""
        db = session_factory()
        PersistenceGateway(db).save_budget("Q-1", [BudgetCategory(id="c1", items=[
            BudgetLine(id="p1", quantity=2, number=1, rate=100),
        ])])
        db.close()

        result = CliRunner().invoke(commands.cli, ["totals", "Q-1", "--json"])
        assert result.exit_code == 0
        assert json.loads(result.stdout)['baseCost'] == 200

    def test_missing_work_budget_warning(self, session_factory, queue):
        """Test a warning when the quote has no work budget."""
        result = CliRunner().invoke(commands.cli, ["totals", "Q-1", "--work"])
        assert result.exit_code == 0
        assert "has no work budget" in result.output
        assert "Grand total" in result.output


class TestSyncCommands:
    """Tests for the offline queue commands."""

    def test_status_and_flush(self, session_factory, queue):
        """Test queued saves are listed and then replayed."""
        OfflineSyncQueue(queue, is_online=False).add(
            "budget", "update", {'quoteId': "Q-1", 'budget': []}
        )

        runner = CliRunner()
        status = runner.invoke(commands.cli, ["sync-status"])
        assert "Pending syncs: 1" in status.output
        assert "quote=Q-1" in status.output

        flushed = runner.invoke(commands.cli, ["flush-sync"])
        assert flushed.exit_code == 0
        assert "Replayed 1 of 1" in flushed.output
        assert json.loads(queue.read_text(encoding='utf-8')) == []
