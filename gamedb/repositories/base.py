"""Repository base class used by all concrete repositories."""
import logging


class BaseRepository:
    """Query helpers bound to a single mapped model.

    Repositories hold no session of their own: every method takes the
    caller's SQLAlchemy session as its first argument and never commits, so
    several repository calls can share one transaction.
    """

    def __init__(self, model) -> None:
        self.model = model
        self._log = logging.getLogger(f'gamedb.repository.{type(self).__name__}')

    def _entity_column(self):
        """Column holding the owning entity's id (e.g. ``game_id``)."""
        return getattr(self.model, self.model.ENTITY_COLUMN)
