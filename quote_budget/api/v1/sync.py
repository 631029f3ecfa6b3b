"""
Sync API Endpoints - Offline queue status and connectivity.

Implements:
- GET  /api/v1/sync/status - Current sync status
- POST /api/v1/sync/online - Switch connectivity; going online replays the queue
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from quote_budget.api.v1.dependencies import get_gateway, get_sync_queue
from quote_budget.domain.exceptions import PersistenceError
from quote_budget.infrastructure.persistence_gateway import PersistenceGateway
from quote_budget.infrastructure.sync_queue import OfflineSyncQueue

logger = logging.getLogger(__name__)

router = APIRouter()


class ConnectivityUpdate(BaseModel):
    """Request model for switching connectivity."""
    online: bool


@router.get("/status", summary="Offline queue status")
def get_sync_status(sync_queue: OfflineSyncQueue = Depends(get_sync_queue)):
    return sync_queue.status().to_dict()


@router.post("/online", summary="Switch connectivity")
def set_online(
    payload: ConnectivityUpdate,
    gateway: PersistenceGateway = Depends(get_gateway),
):
    """Going online replays every queued save; failed entries stay queued."""
    try:
        replayed = gateway.set_online(payload.online)
    except PersistenceError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=e.message)
    return {'replayed': replayed, **gateway.sync_status().to_dict()}
