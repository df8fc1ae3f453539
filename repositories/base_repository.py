"""
Base Repository - data access shared by the growth repositories.

Repositories flush but never commit on their own; the calling service
decides the transaction boundary through commit()/rollback(). Database
errors are logged and re-raised for the service to translate.
"""

from typing import TypeVar, Generic, List, Optional, Dict, Any, Type
from sqlalchemy import update
from sqlalchemy.orm import Session, Query
from sqlalchemy.exc import SQLAlchemyError
import logging

logger = logging.getLogger(__name__)

T = TypeVar('T')


class BaseRepository(Generic[T]):
    """Row access for one model class"""

    def __init__(self, session: Session, model_class: Type[T]):
        self.session = session
        self.model_class = model_class

    @property
    def _name(self) -> str:
        return self.model_class.__name__

    def create(self, **fields) -> T:
        """
        Add a row and flush so its generated id is available.

        Raises:
            SQLAlchemyError: The insert failed; the session is rolled back
        """
        try:
            entity = self.model_class(**fields)
            self.session.add(entity)
            self.session.flush()
            logger.debug(f"Created {self._name} {entity.id}")
            return entity
        except SQLAlchemyError as e:
            logger.error(f"Error creating {self._name}: {e}")
            self.session.rollback()
            raise

    def get_by_id(self, entity_id: Any) -> Optional[T]:
        try:
            return self.session.get(self.model_class, entity_id)
        except SQLAlchemyError as e:
            logger.error(f"Error loading {self._name} {entity_id}: {e}")
            raise

    def find_by(self, order_by: Optional[str] = None, descending: bool = False, **filters) -> List[T]:
        """Rows whose columns equal the given values, optionally ordered by one column"""
        try:
            query = self._filtered(filters)
            column = getattr(self.model_class, order_by, None) if order_by else None
            if column is not None:
                query = query.order_by(column.desc() if descending else column.asc())
            return query.all()
        except SQLAlchemyError as e:
            logger.error(f"Error querying {self._name} by {sorted(filters)}: {e}")
            raise

    def find_one_by(self, **filters) -> Optional[T]:
        try:
            return self._filtered(filters).first()
        except SQLAlchemyError as e:
            logger.error(f"Error querying {self._name} by {sorted(filters)}: {e}")
            raise

    def count(self, **filters) -> int:
        try:
            return self._filtered(filters).count()
        except SQLAlchemyError as e:
            logger.error(f"Error counting {self._name}: {e}")
            raise

    def update(self, entity: T, **changes) -> T:
        """
        Set attributes on a loaded row and flush. Unknown attribute names are
        ignored.
        """
        try:
            for field, value in changes.items():
                if hasattr(entity, field):
                    setattr(entity, field, value)
            self.session.flush()
            return entity
        except SQLAlchemyError as e:
            logger.error(f"Error updating {self._name} {getattr(entity, 'id', None)}: {e}")
            self.session.rollback()
            raise

    def commit(self) -> None:
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Error committing {self._name} changes: {e}")
            self.session.rollback()
            raise

    def rollback(self) -> None:
        self.session.rollback()

    def refresh(self, entity: T) -> T:
        """Reload a row after column-level updates"""
        self.session.refresh(entity)
        return entity

    def _update_where(self, criteria: list, values: Dict[Any, Any], action: str, model=None) -> int:
        """
        Single UPDATE statement on this repository's model (or `model`), so
        `column + n` expressions apply atomically in the database. Returns the
        number of rows matched.
        """
        try:
            result = self.session.execute(
                update(model or self.model_class)
                .where(*criteria)
                .values(values)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount
        except SQLAlchemyError as e:
            logger.error(f"Error {action}: {e}")
            self.session.rollback()
            raise

    def _filtered(self, filters: Dict[str, Any]) -> Query:
        query = self.session.query(self.model_class)
        for field, value in filters.items():
            column = getattr(self.model_class, field)
            if value is None:
                query = query.filter(column.is_(None))
            else:
                query = query.filter(column == value)
        return query
