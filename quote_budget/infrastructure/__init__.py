"""
Infrastructure Layer - Storage of budget trees and the offline sync queue.

This module provides:
- Repository pattern for data access
- Persistence gateway with offline queueing
"""

from .repositories import (
    BaseRepository,
    BudgetRepository,
    WorkBudgetRepository,
    VersionRepository,
)
from .sync_queue import OfflineSyncQueue, PendingSync, SyncStatus
from .persistence_gateway import PersistenceGateway, SaveOutcome, WorkBudgetSnapshot

__all__ = [
    'BaseRepository',
    'BudgetRepository',
    'WorkBudgetRepository',
    'VersionRepository',
    'OfflineSyncQueue',
    'PendingSync',
    'SyncStatus',
    'PersistenceGateway',
    'SaveOutcome',
    'WorkBudgetSnapshot',
]
