"""Repository for append-only revision logs."""
from datetime import datetime
from typing import Dict, List, Optional

from .base import BaseRepository


class RevisionRepository(BaseRepository):
    """Persists revision rows for one entity kind.

    Rows are only ever inserted.  Uniqueness of ``(entity, nth_revision)`` is
    left to the table's unique constraint; the caller supplies the number.
    """

    def append(self, db, entity_id: int, nth_revision: int, diff: Dict,
               message: str, author_id: Optional[int], timestamp: datetime):
        """Insert one revision row and flush it."""
        revision = self.model(
            nth_revision=nth_revision,
            message=message,
            created=timestamp,
            created_by=author_id,
            **{self.model.ENTITY_COLUMN: entity_id},
            **diff,
        )
        db.add(revision)
        db.flush()
        return revision

    def list_for(self, db, entity_id: int) -> List:
        """Return every revision of *entity_id*, oldest first."""
        return (
            db.query(self.model)
            .filter(self._entity_column() == entity_id)
            .order_by(self.model.nth_revision)
            .all()
        )
