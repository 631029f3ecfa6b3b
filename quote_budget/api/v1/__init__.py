"""
API v1 - REST endpoints for quote budgets.

- Quote endpoints (budget trees, totals, work budget, versions)
- Sync endpoints (offline queue status, connectivity)
"""
from fastapi import APIRouter

from .quotes import router as quotes_router
from .sync import router as sync_router

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(quotes_router, prefix="/quotes", tags=["Quotes"])
api_router.include_router(sync_router, prefix="/sync", tags=["Sync"])
