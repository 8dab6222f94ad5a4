"""Repository for the soft-deletable rating ledger."""
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import func, select

from .base import BaseRepository


class RatingRepository(BaseRepository):
    """Persists ratings for one entity kind.

    A rating is never updated in place apart from its ``active`` flag:
    replacing a rating deactivates the old row and inserts a new one.
    """

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def deactivate_active(self, db, entity_id: int, user_id: int) -> int:
        """Deactivate the user's current rating. Returns the rows touched."""
        return (
            db.query(self.model)
            .filter(
                self._entity_column() == entity_id,
                self.model.user_id == user_id,
                self.model.active.is_(True),
            )
            .update({self.model.active: False}, synchronize_session=False)
        )

    def insert(self, db, entity_id: int, user_id: int, value: float,
               timestamp: datetime):
        """Insert a new active rating and flush it."""
        rating = self.model(
            user_id=user_id,
            value=value,
            active=True,
            created=timestamp,
            **{self.model.ENTITY_COLUMN: entity_id},
        )
        db.add(rating)
        db.flush()
        return rating

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find_active(self, db, entity_id: int, user_id: int):
        return (
            db.query(self.model)
            .filter(
                self._entity_column() == entity_id,
                self.model.user_id == user_id,
                self.model.active.is_(True),
            )
            .first()
        )

    def history(self, db, entity_id: int, user_id: int) -> List:
        """Every rating the user gave *entity_id*, oldest first."""
        return (
            db.query(self.model)
            .filter(self._entity_column() == entity_id, self.model.user_id == user_id)
            .order_by(self.model.created, self.model.id)
            .all()
        )

    def aggregate(self, db, entity_id: int) -> Tuple[int, Optional[float]]:
        """Return ``(count, average)`` of the active ratings of *entity_id*."""
        count, average = (
            db.query(func.count(self.model.id), func.avg(self.model.value))
            .filter(self._entity_column() == entity_id, self.model.active.is_(True))
            .one()
        )
        return int(count or 0), (float(average) if average is not None else None)

    def aggregate_subquery(self):
        """Per-entity active rating count and average, for outer joins.

        Columns: ``entity_id``, ``n_ratings``, ``avg_rating``.
        """
        column = self._entity_column()
        return (
            select(
                column.label('entity_id'),
                func.count(self.model.id).label('n_ratings'),
                func.avg(self.model.value).label('avg_rating'),
            )
            .where(self.model.active.is_(True))
            .group_by(column)
            .subquery()
        )
