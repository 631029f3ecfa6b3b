"""
Main FastAPI Application for the Quote Budget Engine.
"""
import logging

from fastapi import FastAPI

from quote_budget.api.v1 import api_router as v1_router
from quote_budget.models import init_db

logger = logging.getLogger(__name__)


# Initialize FastAPI app
app = FastAPI(
    title="Quote Budget Engine",
    description="Budget totals, work budget tracking and version history for production quotes",
    version="1.0.0"
)

app.include_router(v1_router)


# Initialize database on startup
@app.on_event("startup")
async def startup_event():
    init_db()
    logger.info("Quote budget database initialized")


@app.get("/health")
def health():
    return {"status": "ok"}
