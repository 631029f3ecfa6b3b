"""
Shared FastAPI dependencies for the v1 API.
"""
from functools import lru_cache

from fastapi import Depends
from sqlalchemy.orm import Session

from quote_budget.config import get_config
from quote_budget.domain.entities.quote_settings import QuoteSettings, get_default_settings
from quote_budget.infrastructure.persistence_gateway import PersistenceGateway
from quote_budget.infrastructure.sync_queue import OfflineSyncQueue
from quote_budget.models import get_db


@lru_cache(maxsize=1)
def get_sync_queue() -> OfflineSyncQueue:
    """Process-wide offline queue backed by the configured JSON file."""
    return OfflineSyncQueue(get_config().sync_queue_path)


def get_gateway(
    db: Session = Depends(get_db),
    sync_queue: OfflineSyncQueue = Depends(get_sync_queue),
) -> PersistenceGateway:
    """Persistence gateway bound to the request session."""
    return PersistenceGateway(db, sync_queue, online=sync_queue.is_online)


def get_settings() -> QuoteSettings:
    """Settings provider for request handlers."""
    return get_default_settings()
