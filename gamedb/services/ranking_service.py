"""Business logic for Bayesian-ranked listings."""
import logging
from collections import namedtuple
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from ..errors import NotFoundError, PersistenceError
from ..kinds import EntityKind
from ..repositories import EntityRepository, RatingRepository
from ..scoring import DEFAULT_GLOBAL_AVERAGE, DEFAULT_MIN_VOTES, bayesian_score

RankedEntry = namedtuple('RankedEntry', ['entity', 'score', 'n_ratings', 'n_releases'])


def sort_name(entity) -> str:
    """Secondary ranking key: the alias when set, else the title."""
    return (entity.alias or entity.title or '').casefold()


def ranking_key(entry: RankedEntry):
    """Total order for ranked listings.

    Rated entries come first by score descending; unrated entries follow.
    Ties fall back to alias/title, then title, then id.
    """
    return (
        entry.n_ratings == 0,
        -entry.score,
        sort_name(entry.entity),
        (entry.entity.title or '').casefold(),
        entry.entity.id,
    )


class RankingService:
    """Computes scores live from the active ratings on every read.

    Nothing is cached: a new rating is visible to the next listing.
    """

    def __init__(self, kind: EntityKind,
                 min_votes: int = DEFAULT_MIN_VOTES,
                 global_average: float = DEFAULT_GLOBAL_AVERAGE) -> None:
        self.kind = kind
        self.min_votes = min_votes
        self.global_average = global_average
        self._entities = EntityRepository(kind.model)
        self._ratings = RatingRepository(kind.rating_model)
        self._log = logging.getLogger(f'gamedb.service.{kind.name}.ranking')

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def score(self, n_ratings: int, average: Optional[float]) -> float:
        return bayesian_score(n_ratings, average, self.min_votes, self.global_average)

    def bayesian_score_for(self, db, entity_id: int) -> float:
        """Return the current Bayesian score of *entity_id*.

        Raises:
            NotFoundError: No entity with *entity_id*.
        """
        try:
            if not self._entities.exists(db, entity_id):
                raise NotFoundError(self.kind.name, entity_id)
            n_ratings, average = self._ratings.aggregate(db, entity_id)
        except SQLAlchemyError as exc:
            raise self._failed(exc) from exc
        return self.score(n_ratings, average)

    def list_ranked(self, db, limit: Optional[int] = None) -> List[RankedEntry]:
        """Return every entity of this kind with its score and counts.

        Args:
            db:    SQLAlchemy session.
            limit: Keep only the first *limit* entries (``None`` = all).

        Returns:
            List of :data:`RankedEntry` ordered by :func:`ranking_key`.
            ``n_releases`` is 0 for kinds without child entities.
        """
        model = self.kind.model
        ratings = self._ratings.aggregate_subquery()
        columns = [model, func.coalesce(ratings.c.n_ratings, 0), ratings.c.avg_rating]

        children = None
        if self.kind.child:
            child_model, column = self.kind.child
            parent_column = getattr(child_model, column)
            children = (
                select(parent_column.label('entity_id'),
                       func.count(child_model.id).label('n_releases'))
                .group_by(parent_column)
                .subquery()
            )
            columns.append(func.coalesce(children.c.n_releases, 0))

        try:
            query = db.query(*columns).outerjoin(ratings, model.id == ratings.c.entity_id)
            if children is not None:
                query = query.outerjoin(children, model.id == children.c.entity_id)
            rows = query.all()
        except SQLAlchemyError as exc:
            raise self._failed(exc) from exc

        entries = []
        for row in rows:
            entity, n_ratings, average = row[0], int(row[1]), row[2]
            n_releases = int(row[3]) if children is not None else 0
            average = float(average) if average is not None else None
            entries.append(RankedEntry(entity, self.score(n_ratings, average),
                                       n_ratings, n_releases))
        entries.sort(key=ranking_key)
        if limit is not None:
            entries = entries[:limit]
        return entries

    def _failed(self, exc: SQLAlchemyError) -> PersistenceError:
        self._log.error("Ranking %s failed: %s", self.kind.name, exc)
        return PersistenceError(f"ranking {self.kind.name} failed: {exc}",
                                operation='list ranked')
