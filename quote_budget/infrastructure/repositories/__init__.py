"""
Repository implementations for data access layer.
"""
from .base_repository import BaseRepository
from .budget_repository import BudgetRepository, WorkBudgetRepository
from .version_repository import VersionRepository

__all__ = [
    'BaseRepository',
    'BudgetRepository',
    'WorkBudgetRepository',
    'VersionRepository',
]
