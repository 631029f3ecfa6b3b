"""
Tests for the configuration loader.
"""
import pytest
import tempfile
from pathlib import Path

from quote_budget.config import (
    DATABASE_URL_ENV,
    ConfigurationError,
    QuoteBudgetConfig,
    get_config,
)


class TestQuoteBudgetConfig:
    """Tests for QuoteBudgetConfig class."""

    def test_load_default_config(self):
        """Test loading the default configuration file."""
        config = get_config()
        assert config.version == "1.0.0"
        assert len(config.social_charge_rates) == 3

    def test_default_percentages(self):
        """Test agency and margin defaults."""
        config = get_config()
        assert config.default_agency_percent == 10
        assert config.default_margin_percent == 15

    def test_available_units(self):
        """Test the unit list includes the percentage unit."""
        config = get_config()
        assert "Jour" in config.available_units
        assert "%" in config.available_units
        assert "-" in config.available_units

    def test_get_social_charge_rate(self):
        """Test getting a charge rate by id."""
        config = get_config()
        assert config.get_social_charge_rate("65")["rate"] == 0.65
        assert config.get_social_charge_rate("55")["label"] == "Artistes"
        assert config.get_social_charge_rate("999") is None

    def test_default_names(self):
        """Test default names of new nodes."""
        config = get_config()
        assert config.get_default_name("post") == "Nouveau poste"
        assert config.get_default_name("subCategory") == "Nouvelle sous-catégorie"
        assert config.get_default_name("unknown") == ""

    def test_added_posts_category(self):
        """Test the category used for posts added to an empty work budget."""
        config = get_config()
        assert config.added_posts_category["id"] == "root-added-posts"
        assert config.added_posts_category["name"] == "Postes ajoutés"


class TestHistoryAndSyncConfig:
    """Tests for history, sync and database sections."""

    def test_duplicate_window(self):
        """Test duplicate version window."""
        assert get_config().duplicate_window_seconds == 30

    def test_overtime_base_hours(self):
        """Test hours in a standard day."""
        assert get_config().overtime_base_hours == 8

    def test_sync_queue_path_is_resolved(self):
        """Test relative queue path resolves next to the config file."""
        path = get_config().sync_queue_path
        assert path.is_absolute()
        assert path.name == "pending_syncs.json"

    def test_database_url_env_override(self, monkeypatch):
        """Test the environment variable wins over the file."""
        monkeypatch.setenv(DATABASE_URL_ENV, "sqlite:///:memory:")
        assert get_config().database_url == "sqlite:///:memory:"

    def test_database_url_from_file(self, monkeypatch):
        """Test the file value is used without override."""
        monkeypatch.delenv(DATABASE_URL_ENV, raising=False)
        assert get_config().database_url == "sqlite:///./quote_budget.db"


class TestRawAccess:
    """Tests for raw configuration access."""

    def test_get_method(self):
        """Test get method with default."""
        config = get_config()
        assert config.get("version") == "1.0.0"
        assert config.get("nonexistent", "default") == "default"

    def test_getitem(self):
        """Test dictionary-style access."""
        config = get_config()
        assert config["version"] == "1.0.0"

    def test_contains(self):
        """Test key existence check."""
        config = get_config()
        assert "quote_defaults" in config
        assert "nonexistent" not in config


class TestConfigurationError:
    """Tests for configuration error handling."""

    def test_missing_file(self):
        """Test error on missing config file."""
        with pytest.raises(ConfigurationError) as exc_info:
            QuoteBudgetConfig(Path("/nonexistent/path.yaml"))
        assert "not found" in str(exc_info.value)

    def test_invalid_yaml(self):
        """Test error on invalid YAML."""
        with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False) as f:
            f.write("invalid: yaml: content: [")
            temp_path = Path(f.name)

        try:
            with pytest.raises(ConfigurationError) as exc_info:
                QuoteBudgetConfig(temp_path)
            assert "Invalid YAML" in str(exc_info.value)
        finally:
            temp_path.unlink()

    def test_non_mapping(self):
        """Test error when the file is not a mapping."""
        with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False) as f:
            f.write("- just\n- a list\n")
            temp_path = Path(f.name)

        try:
            with pytest.raises(ConfigurationError) as exc_info:
                QuoteBudgetConfig(temp_path)
            assert "mapping" in str(exc_info.value)
        finally:
            temp_path.unlink()
