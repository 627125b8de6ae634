import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import TransactionFailureError


class BaseService:
    """
    Common plumbing for services that work against the transactional store.

    The session is injected by the caller (request dependency, script or test);
    services never reach for a global connection.
    """

    def __init__(self, db: Session):
        self.db = db
        self._logger = logging.getLogger(self.__class__.__module__)

    @contextmanager
    def transaction(self, operation: str) -> Iterator[Session]:
        """
        Explicit transaction scope: commit on success, roll back on any error.
        Storage-layer errors surface as TransactionFailureError; business errors
        raised inside the block propagate unchanged after the rollback.
        """
        try:
            yield self.db
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            self._logger.error(f"Transaction '{operation}' failed: {e}", exc_info=True)
            raise TransactionFailureError(operation, str(e.__class__.__name__)) from e
        except Exception:
            self.db.rollback()
            raise

    def insert_stmt(self, model):
        """Dialect-specific INSERT supporting ON CONFLICT clauses."""
        if self.db.get_bind().dialect.name == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        else:
            from sqlalchemy.dialects.sqlite import insert
        return insert(model)
