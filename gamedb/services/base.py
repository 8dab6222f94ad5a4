"""Transaction scope shared by the mutating services."""
import logging
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError

from ..errors import CatalogError, PersistenceError


@contextmanager
def transaction(db, log: logging.Logger, operation: str):
    """Run the body as one unit of work on *db*.

    Commits when the body finishes.  Any catalog error raised inside the body
    rolls back and propagates unchanged; a database error rolls back and is
    re-raised as :class:`PersistenceError`.  Anything else rolls back and
    propagates.
    """
    try:
        yield
        db.commit()
    except CatalogError:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        log.error("%s failed, rolled back: %s", operation, exc)
        raise PersistenceError(f"{operation} failed: {exc}", operation=operation) from exc
    except Exception:
        db.rollback()
        raise
