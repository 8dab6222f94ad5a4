"""Business logic for user ratings."""
import logging
from typing import Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError

import database
from ..errors import NotFoundError, PersistenceError, ValidationError
from ..kinds import EntityKind
from ..repositories import EntityRepository, RatingRepository
from ..scoring import MAX_RATING, MIN_RATING, round_rating
from .base import transaction


class RatingService:
    """Validates and records ratings, delegating persistence to
    :class:`~gamedb.repositories.rating_repository.RatingRepository`.

    Rules
    -----
    * ``value`` is rounded half-up to one decimal and must then lie in the
      range **1.0–10.0** (inclusive).
    * A second rating by the same user supersedes the first: the old row is
      deactivated and a new active row inserted in the same transaction, so
      exactly one active rating per (entity, user) remains.
    """

    def __init__(self, kind: EntityKind,
                 clock: Optional[Callable] = None) -> None:
        self.kind = kind
        self._entities = EntityRepository(kind.model)
        self._ratings = RatingRepository(kind.rating_model)
        self._clock = clock or database.utcnow
        self._log = logging.getLogger(f'gamedb.service.{kind.name}.ratings')

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def rate(self, db, entity_id: int, user_id: int, value):
        """Record *user_id*'s rating of *entity_id*.

        Returns:
            The new active rating row.

        Raises:
            ValidationError: *value* is not a number or out of range.
            NotFoundError:   No entity with *entity_id*.
            PersistenceError: The transaction failed; the previous rating
                is still active.
        """
        rounded = self.validate(value)
        with transaction(db, self._log, f"rate {self.kind.name} {entity_id}"):
            if not self._entities.exists(db, entity_id):
                raise NotFoundError(self.kind.name, entity_id)
            replaced = self._ratings.deactivate_active(db, entity_id, user_id)
            rating = self._ratings.insert(db, entity_id, user_id, rounded, self._clock())

        self._log.info("User %s rated %s %s: %s%s", user_id, self.kind.name,
                       entity_id, rounded, " (replaced)" if replaced else "")
        return rating

    def get_user_rating(self, db, entity_id: int, user_id: int):
        """Return the active rating of *user_id* for *entity_id*, or ``None``."""
        return self._read(lambda: self._ratings.find_active(db, entity_id, user_id))

    def history(self, db, entity_id: int, user_id: int) -> List:
        """Return every rating *user_id* gave *entity_id*, oldest first."""
        return self._read(lambda: self._ratings.history(db, entity_id, user_id))

    @staticmethod
    def validate(value) -> float:
        """Round *value* and check the range. Returns the stored value."""
        try:
            rounded = round_rating(value)
        except (TypeError, ValueError):
            raise ValidationError(
                f"Rating must be a number between {MIN_RATING:g} and {MAX_RATING:g}, got {value!r}",
                field='value',
            )
        if not MIN_RATING <= rounded <= MAX_RATING:
            raise ValidationError(
                f"Rating must be between {MIN_RATING:g} and {MAX_RATING:g}, got {rounded:g}",
                field='value',
            )
        return rounded

    def _read(self, query: Callable):
        try:
            return query()
        except SQLAlchemyError as exc:
            self._log.error("Reading ratings failed: %s", exc)
            raise PersistenceError(f"read ratings failed: {exc}",
                                   operation='read ratings') from exc
