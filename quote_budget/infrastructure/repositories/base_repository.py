"""
Base Repository - Abstract repository pattern implementation.

Provides the session plumbing and lookups shared by the budget and
version repositories.
"""
from abc import ABC, abstractmethod
from typing import Generic, TypeVar, List, Optional, Type
from sqlalchemy.orm import Session

from quote_budget.models import Base

T = TypeVar('T', bound=Base)


class BaseRepository(ABC, Generic[T]):
    """
    Abstract base repository providing common data access operations.

    Type Parameters:
        T: The SQLAlchemy model type this repository manages
    """

    def __init__(self, session: Session, model_class: Type[T]):
        """
        Initialize the repository.

        Args:
            session: SQLAlchemy database session
            model_class: The model class this repository manages
        """
        self.session = session
        self.model_class = model_class

    def get_by_quote_id(self, quote_id: str) -> Optional[T]:
        """
        Retrieve the row stored for a quote.

        Args:
            quote_id: Quote identifier

        Returns:
            The row if found, None otherwise
        """
        if not hasattr(self.model_class, 'quote_id'):
            raise AttributeError(f"{self.model_class.__name__} does not have a quote_id field")
        return self.session.query(self.model_class).filter(
            self.model_class.quote_id == quote_id
        ).first()

    def get_by_uuid(self, uuid: str) -> Optional[T]:
        """
        Retrieve a row by its UUID.

        Args:
            uuid: UUID string

        Returns:
            The row if found, None otherwise
        """
        if not hasattr(self.model_class, 'uuid'):
            raise AttributeError(f"{self.model_class.__name__} does not have a uuid field")
        return self.session.query(self.model_class).filter(
            self.model_class.uuid == uuid
        ).first()

    def count(self) -> int:
        """Count stored rows."""
        return self.session.query(self.model_class).count()

    def add(self, entity: T) -> T:
        """Add a new row to the session."""
        self.session.add(entity)
        return entity

    def delete(self, entity: T) -> None:
        """Delete a row."""
        self.session.delete(entity)

    def commit(self) -> None:
        """Commit the current transaction."""
        self.session.commit()

    def rollback(self) -> None:
        """Rollback the current transaction."""
        self.session.rollback()

    def flush(self) -> None:
        """Flush pending changes to the database."""
        self.session.flush()

    @abstractmethod
    def exists(self, **criteria) -> bool:
        """
        Check if a row matching the criteria exists.

        Args:
            **criteria: Field-value pairs to match

        Returns:
            True if a row exists, False otherwise
        """
        pass

    def _filter_by(self, **criteria) -> List[T]:
        query = self.session.query(self.model_class)
        for field, value in criteria.items():
            query = query.filter(getattr(self.model_class, field) == value)
        return query.all()
