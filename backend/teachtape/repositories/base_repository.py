# backend/teachtape/repositories/base_repository.py
"""
Base Repository Pattern for TeachTape

Generic data access shared by every repository. Repositories flush but never
commit; the calling service owns the transaction.

Lifecycle changes go through ``_execute_update`` with a WHERE clause that
pins the expected current state, so the returned row count tells the caller
whether it won the transition.
"""

import logging
from typing import Any, Generic, List, Optional, Type, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Query, Session

from ..core.exceptions import RepositoryException
from ..database.session_utils import get_dialect_name

T = TypeVar("T")

logger = logging.getLogger(__name__)


class BaseRepository(Generic[T]):
    def __init__(self, db: Session, model: Type[T]):
        self.db = db
        self.model = model
        self.logger = logging.getLogger(f"{__name__}.{model.__name__}")

    @property
    def dialect_name(self) -> str:
        return get_dialect_name(self.db)

    def get_by_id(self, id: str, load_relationships: bool = True) -> Optional[T]:
        try:
            query = self._build_query().filter(self.model.id == id)
            if load_relationships:
                query = self._apply_eager_loading(query)
            return query.first()
        except SQLAlchemyError as e:
            self.logger.error("Error loading %s %s: %s", self.model.__name__, id, e)
            raise RepositoryException(f"Failed to retrieve {self.model.__name__}: {str(e)}")

    def create(self, **kwargs: Any) -> T:
        """Add and flush a new row so its id is available; does not commit."""
        try:
            entity = self.model(**kwargs)
            self.db.add(entity)
            self.db.flush()
            return entity
        except IntegrityError as exc:
            self.logger.warning("Integrity error creating %s: %s", self.model.__name__, exc)
            self.db.rollback()
            raise RepositoryException(f"Integrity constraint violated: {exc}") from exc
        except SQLAlchemyError as e:
            self.logger.error("Error creating %s: %s", self.model.__name__, e)
            self.db.rollback()
            raise RepositoryException(f"Failed to create {self.model.__name__}: {str(e)}")

    def flush(self) -> None:
        self.db.flush()

    def find_one_by(self, **kwargs: Any) -> Optional[T]:
        try:
            return self._build_query().filter_by(**kwargs).first()
        except SQLAlchemyError as e:
            self.logger.error("Lookup on %s failed: %s", self.model.__name__, e)
            raise RepositoryException(f"Failed to find record: {str(e)}")

    def find_by(self, **kwargs: Any) -> List[T]:
        return self._execute_query(self._build_query().filter_by(**kwargs))

    def _apply_eager_loading(self, query: Query) -> Query:
        """Subclasses override to attach relationship loaders."""
        return query

    def _build_query(self) -> Query:
        return self.db.query(self.model)

    def _execute_query(self, query: Query) -> List[T]:
        try:
            return query.all()
        except SQLAlchemyError as e:
            self.logger.error("Query on %s failed: %s", self.model.__name__, e)
            raise RepositoryException(f"Query failed: {str(e)}")

    def _execute_update(self, stmt: Any) -> int:
        """Run a conditional UPDATE and return the number of rows it changed."""
        try:
            self.db.flush()
            result = self.db.execute(stmt.execution_options(synchronize_session=False))
            return int(result.rowcount or 0)
        except SQLAlchemyError as e:
            self.logger.error("Conditional update on %s failed: %s", self.model.__name__, e)
            raise RepositoryException(f"Update failed: {str(e)}")

    def _expire_cached(self, entity_id: str) -> None:
        """Drop any stale in-session copy after a bulk UPDATE touched the row."""
        for obj in list(self.db.identity_map.values()):
            if isinstance(obj, self.model) and getattr(obj, "id", None) == entity_id:
                self.db.expire(obj)
                return
