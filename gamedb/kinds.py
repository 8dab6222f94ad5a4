"""Registry of versioned entity kinds and the tables backing each of them."""
from typing import Dict, Optional, Tuple

import database
from .errors import ValidationError


class EntityKind:
    """Binds a kind name to its entity, revision and rating models.

    ``parent`` is ``(model, column)`` for kinds that hang off another entity
    (a release belongs to a game); ``child`` is the inverse, used for counts
    and listings.
    """

    def __init__(self, name: str, model, revision_model, rating_model,
                 parent: Optional[Tuple] = None,
                 child: Optional[Tuple] = None) -> None:
        self.name = name
        self.model = model
        self.revision_model = revision_model
        self.rating_model = rating_model
        self.parent = parent
        self.child = child

    @property
    def fields(self) -> Tuple[str, ...]:
        return self.model.VERSIONED_FIELDS

    @property
    def required(self) -> Tuple[str, ...]:
        return self.model.REQUIRED_FIELDS

    @property
    def parent_key(self) -> Optional[str]:
        return self.parent[1] if self.parent else None

    def __repr__(self) -> str:
        return f"EntityKind({self.name!r})"


GAME = EntityKind(
    'game', database.Game, database.GameRevision, database.GameRating,
    child=(database.Release, 'game_id'),
)
RELEASE = EntityKind(
    'release', database.Release, database.ReleaseRevision, database.ReleaseRating,
    parent=(database.Game, 'game_id'),
)

KINDS: Dict[str, EntityKind] = {kind.name: kind for kind in (GAME, RELEASE)}


def get_kind(name: str) -> EntityKind:
    """Look up a kind by name.

    Raises:
        ValidationError: If *name* is not a known kind.
    """
    try:
        return KINDS[name]
    except KeyError:
        raise ValidationError(f"Unknown entity kind: {name!r}", field='kind')
