"""
Configuration loader for the Quote Budget Engine.

Loads settings from quote_budget_config.yaml and provides typed access
to all configuration sections.
"""
import os
from pathlib import Path
from typing import Any, Optional
from functools import lru_cache

import yaml


# Default config path relative to project root
DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "quote_budget_config.yaml"

DATABASE_URL_ENV = "QUOTE_BUDGET_DATABASE_URL"


class ConfigurationError(Exception):
    """Raised when configuration loading or validation fails."""
    pass


class QuoteBudgetConfig:
    """
    Configuration manager for the Quote Budget Engine.

    Loads YAML configuration and provides typed access to all sections.
    Use get_config() to obtain the singleton instance.
    """

    def __init__(self, config_path: Optional[Path] = None):
        self._config_path = config_path or DEFAULT_CONFIG_PATH
        self._config: dict = {}
        self._load()

    def _load(self) -> None:
        """Load configuration from YAML file."""
        if not self._config_path.exists():
            raise ConfigurationError(f"Config file not found: {self._config_path}")

        try:
            with open(self._config_path, 'r', encoding='utf-8') as f:
                self._config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config file: {e}")

        if not isinstance(self._config, dict):
            raise ConfigurationError("Config file must contain a YAML mapping")

    def reload(self) -> None:
        """Reload configuration from disk."""
        self._load()
        get_config.cache_clear()

    @property
    def version(self) -> str:
        """Configuration file version."""
        return self._config.get("version", "unknown")

    # =========================================================================
    # Quote Defaults
    # =========================================================================

    @property
    def quote_defaults(self) -> dict:
        """Default quote settings applied to new quotes."""
        return self._config.get("quote_defaults", {})

    @property
    def default_agency_percent(self) -> float:
        """Default agency (overhead) percentage."""
        return self.quote_defaults.get("default_agency_percent", 10)

    @property
    def default_margin_percent(self) -> float:
        """Default margin percentage."""
        return self.quote_defaults.get("default_margin_percent", 15)

    @property
    def available_units(self) -> list[str]:
        """Units offered for budget lines."""
        return self.quote_defaults.get(
            "available_units",
            ["Jour", "Forfait", "Semaine", "Heure", "Unités", "%", "-"]
        )

    @property
    def social_charge_rates(self) -> list[dict]:
        """Social charge rate table (id, label, rate as a fraction)."""
        return self.quote_defaults.get("social_charge_rates", [])

    def get_social_charge_rate(self, rate_id: str) -> Optional[dict]:
        """Get a social charge rate entry by id."""
        for rate in self.social_charge_rates:
            if str(rate.get("id")) == str(rate_id):
                return rate
        return None

    # =========================================================================
    # Budget Structure
    # =========================================================================

    @property
    def budget(self) -> dict:
        """Budget tree configuration."""
        return self._config.get("budget", {})

    @property
    def added_posts_category(self) -> dict:
        """Category created when a post is added to an empty work budget."""
        return self.budget.get("added_posts_category", {
            "id": "root-added-posts",
            "name": "Postes ajoutés",
        })

    def get_default_name(self, item_type: str) -> str:
        """Default display name for a new node of the given type."""
        names = self.budget.get("default_names", {})
        return names.get(item_type, "")

    # =========================================================================
    # Overtime
    # =========================================================================

    @property
    def overtime_base_hours(self) -> float:
        """Number of hours in a standard working day."""
        return self._config.get("overtime", {}).get("base_hours", 8)

    # =========================================================================
    # History
    # =========================================================================

    @property
    def history(self) -> dict:
        """Version history configuration."""
        return self._config.get("history", {})

    @property
    def duplicate_window_seconds(self) -> int:
        """Window in which an identical budget is not versioned twice."""
        return self.history.get("duplicate_window_seconds", 30)

    # =========================================================================
    # Sync & Database
    # =========================================================================

    @property
    def sync_queue_path(self) -> Path:
        """Local file holding operations queued while offline."""
        raw = self._config.get("sync", {}).get("queue_path", "data/pending_syncs.json")
        path = Path(raw)
        if not path.is_absolute():
            path = self._config_path.parent / path
        return path

    @property
    def database_url(self) -> str:
        """Database URL; the environment variable wins over the file."""
        env_url = os.environ.get(DATABASE_URL_ENV)
        if env_url:
            return env_url
        return self._config.get("database", {}).get("url", "sqlite:///./quote_budget.db")

    # =========================================================================
    # Raw Access
    # =========================================================================

    def get(self, key: str, default: Any = None) -> Any:
        """Get a top-level config value by key."""
        return self._config.get(key, default)

    def __getitem__(self, key: str) -> Any:
        """Dictionary-style access to config."""
        return self._config[key]

    def __contains__(self, key: str) -> bool:
        """Check if key exists in config."""
        return key in self._config


@lru_cache(maxsize=1)
def get_config(config_path: Optional[str] = None) -> QuoteBudgetConfig:
    """
    Get the singleton configuration instance.

    Args:
        config_path: Optional path to config file. Only used on first call.

    Returns:
        QuoteBudgetConfig singleton instance
    """
    path = Path(config_path) if config_path else None
    return QuoteBudgetConfig(path)


def reload_config() -> QuoteBudgetConfig:
    """Reload configuration from disk and return new instance."""
    get_config.cache_clear()
    return get_config()
