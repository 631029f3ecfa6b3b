"""
Database models and SQLAlchemy setup for the Quote Budget Engine.

Budget trees are stored as JSON blobs keyed by quote id. Work-budget
comments live in their own column and are re-joined on load.
"""
from datetime import datetime

from sqlalchemy import (
    create_engine, Column, Integer, String, Float, DateTime, Text, JSON, Index
)
from sqlalchemy.orm import declarative_base, sessionmaker

from quote_budget.config import get_config


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {}


DATABASE_URL = get_config().database_url
engine = create_engine(DATABASE_URL, **_engine_kwargs(DATABASE_URL))
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


class QuoteBudgetRecord(Base):
    """Committed budget tree of a quote."""
    __tablename__ = "quote_budgets"

    id = Column(Integer, primary_key=True, index=True)
    quote_id = Column(String(100), unique=True, nullable=False, index=True)
    budget_data = Column(JSON, nullable=False, default=list)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class QuoteWorkBudgetRecord(Base):
    """Work budget tree of a quote, with its comments stored beside the blob."""
    __tablename__ = "quote_work_budgets"

    id = Column(Integer, primary_key=True, index=True)
    quote_id = Column(String(100), unique=True, nullable=False, index=True)
    budget_data = Column(JSON, nullable=False, default=list)
    comments = Column(JSON, nullable=False, default=dict)  # {line_id: text}
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class BudgetVersionRecord(Base):
    """Immutable snapshot of a saved quote budget."""
    __tablename__ = "budget_versions"

    id = Column(Integer, primary_key=True, index=True)
    uuid = Column(String(36), unique=True, nullable=False, index=True)
    project_id = Column(String(100), nullable=False)
    quote_id = Column(String(100), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    author = Column(String(200), nullable=True)
    description = Column(Text, nullable=True)
    budget_data = Column(JSON, nullable=False, default=list)
    total_amount = Column(Float, default=0.0)

    __table_args__ = (
        Index('ix_budget_versions_project_quote', 'project_id', 'quote_id'),
    )


def init_db(bind=None):
    """Initialize the database and create all tables."""
    Base.metadata.create_all(bind=bind or engine)


def get_db():
    """Database session dependency for FastAPI."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
