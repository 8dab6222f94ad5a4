"""Repository for the current rows of versioned entities (games, releases)."""
from datetime import datetime
from typing import Dict, List, Optional

from .base import BaseRepository


class EntityRepository(BaseRepository):
    """Reads and writes the mutable "current" row of an entity.

    ``revision_count`` is only ever written here: set to 1 by :meth:`insert`
    and bumped by one in :meth:`apply`.
    """

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find(self, db, entity_id: int):
        """Return the entity with *entity_id*, or ``None``."""
        return db.query(self.model).filter(self.model.id == entity_id).first()

    def exists(self, db, entity_id: int) -> bool:
        return db.query(self.model.id).filter(self.model.id == entity_id).first() is not None

    def lock(self, db, entity_id: int):
        """Return the entity row locked ``FOR UPDATE``, or ``None``.

        ``populate_existing`` makes sure an instance already sitting in the
        session's identity map is refreshed from the locked row.
        """
        return (
            db.query(self.model)
            .filter(self.model.id == entity_id)
            .with_for_update()
            .populate_existing()
            .first()
        )

    def find_children(self, db, column: str, parent_id: int) -> List:
        """Return rows whose *column* equals *parent_id*.

        Ordered by ``release_date`` when the model has one (unset dates
        last), then by id.
        """
        query = db.query(self.model).filter(getattr(self.model, column) == parent_id)
        release_date = getattr(self.model, 'release_date', None)
        if release_date is not None:
            query = query.order_by(release_date.is_(None), release_date)
        return query.order_by(self.model.id).all()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert(self, db, values: Dict, author_id: Optional[int],
               timestamp: datetime, extra: Optional[Dict] = None):
        """Add a new entity at revision 1 and flush so its id is assigned."""
        entity = self.model(
            revision_count=1,
            created=timestamp,
            created_by=author_id,
            **values,
            **(extra or {}),
        )
        db.add(entity)
        db.flush()
        self._log.debug("Inserted %s %s", self.model.__tablename__, entity.id)
        return entity

    def apply(self, db, entity, values: Dict) -> int:
        """Write *values* onto a locked *entity* and bump its revision.

        Returns:
            The new ``revision_count``.
        """
        for name, value in values.items():
            setattr(entity, name, value)
        entity.revision_count = entity.revision_count + 1
        db.flush()
        return entity.revision_count
