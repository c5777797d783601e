"""
Base Repository - Shared session handling for the tracking repositories
Repositories flush; transaction boundaries belong to the caller via atomic()
"""

from abc import ABC
from contextlib import contextmanager
from typing import TypeVar, Generic, Optional, Any, Type, Iterator
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
import logging

logger = logging.getLogger(__name__)

# Type variable for model classes
T = TypeVar('T')


class BaseRepository(ABC, Generic[T]):
    """
    Base repository bound to one session and one model.

    Storage errors are logged and re-raised. The service layer decides
    whether a failure is fatal (write paths) or degradable (ranking reads).
    """

    def __init__(self, session: Session, model_class: Type[T]):
        """
        Args:
            session: SQLAlchemy session, usually the request-scoped ``db.session``
            model_class: The model class this repository manages
        """
        self.session = session
        self.model_class = model_class

    def get_by_id(self, entity_id: Any) -> Optional[T]:
        """Get entity by primary key, or None."""
        if entity_id is None:
            return None
        try:
            return self.session.get(self.model_class, entity_id)
        except SQLAlchemyError as e:
            logger.error(f"Error loading {self.model_class.__name__} {entity_id}: {e}")
            raise

    # Transaction Management

    def commit(self) -> None:
        """Commit the current transaction, rolling back if the commit fails."""
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Error committing {self.model_class.__name__} changes: {e}")
            self.session.rollback()
            raise

    def rollback(self) -> None:
        self.session.rollback()

    def flush(self) -> None:
        self.session.flush()

    @contextmanager
    def atomic(self) -> Iterator[Session]:
        """
        Run a block as one transaction: commit on success, roll back on any error.

        Usage:
            with click_repository.atomic():
                click_repository.mark_converted_if_unconverted(...)
                epc_service.update_epc(offer_id, commit=False)
        """
        try:
            yield self.session
            self.commit()
        except Exception:
            self.session.rollback()
            raise
