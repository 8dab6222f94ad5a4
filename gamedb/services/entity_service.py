"""Business logic for creating and editing versioned entities."""
import logging
from typing import Callable, Dict, List, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError

import database
from ..errors import NotFoundError, PersistenceError, ValidationError
from ..kinds import EntityKind
from ..repositories import EntityRepository, RevisionRepository
from ..versioning import compute_diff, normalize_fields, normalize_value
from .base import transaction

NEW_ENTRY_MESSAGE = '(System) New entry'


class EntityService:
    """Creates, edits and fetches entities of one kind, logging every change
    to the kind's revision table.

    Rules
    -----
    * Required fields (``title``) must be non-empty on create and update.
    * An edit needs a non-empty ``message``.
    * ``update`` replaces every versioned field: a key missing from *fields*
      clears that field.
    * The entity row is locked ``FOR UPDATE`` for the whole edit, so two
      concurrent edits of the same entity are serialised by the database and
      the second one diffs against the first one's committed result.
    * Each successful mutation adds exactly one revision and bumps
      ``revision_count`` by exactly one, in the same transaction.
    """

    def __init__(self, kind: EntityKind,
                 clock: Optional[Callable] = None) -> None:
        self.kind = kind
        self._entities = EntityRepository(kind.model)
        self._revisions = RevisionRepository(kind.revision_model)
        self._clock = clock or database.utcnow
        self._log = logging.getLogger(f'gamedb.service.{kind.name}')

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def create(self, db, fields: Mapping, author_id: Optional[int]):
        """Insert a new entity together with its first revision.

        Raises:
            ValidationError: Missing required field or unknown key.
            NotFoundError:   The parent entity (a release's game) is missing.
            PersistenceError: The transaction failed; nothing was written.
        """
        values = self._validate(fields, allow_parent=True)
        extra = {}
        if self.kind.parent:
            extra[self.kind.parent_key] = self._parent_id(fields)

        with transaction(db, self._log, f"create {self.kind.name}"):
            if extra:
                self._require_parent(db, extra[self.kind.parent_key])
            now = self._clock()
            entity = self._entities.insert(db, values, author_id, now, extra)
            self._revisions.append(db, entity.id, 1, values,
                                   NEW_ENTRY_MESSAGE, author_id, now)
            entity_id = entity.id

        self._log.info("Created %s %s by user %s", self.kind.name, entity_id, author_id)
        return entity

    def update(self, db, entity_id: int, author_id: Optional[int],
               fields: Mapping, message: str):
        """Apply an edit and record what changed.

        Returns:
            The entity after the edit.

        Raises:
            ValidationError: Missing required field, unknown key, empty
                message or an attempt to move the entity to another parent.
            NotFoundError:   No entity with *entity_id*.
            PersistenceError: The transaction failed; nothing was written.
        """
        values = self._validate(fields, allow_parent=True)
        message = normalize_value(message)
        if not message:
            raise ValidationError("An edit summary is required", field='message')

        with transaction(db, self._log, f"update {self.kind.name} {entity_id}"):
            entity = self._entities.lock(db, entity_id)
            if entity is None:
                raise NotFoundError(self.kind.name, entity_id)
            self._check_parent_unchanged(entity, fields)
            diff = compute_diff(entity.snapshot(), values)
            nth = self._entities.apply(db, entity, values)
            self._revisions.append(db, entity.id, nth, diff, message,
                                   author_id, self._clock())

        self._log.info("Updated %s %s to revision %s by user %s",
                       self.kind.name, entity_id, nth, author_id)
        return entity

    def get(self, db, entity_id: int):
        """Return the entity with *entity_id*.

        Raises:
            NotFoundError: No such entity.
        """
        entity = self._read(db, lambda: self._entities.find(db, entity_id))
        if entity is None:
            raise NotFoundError(self.kind.name, entity_id)
        return entity

    def list_children(self, db, entity_id: int) -> List:
        """Return the entities that belong to *entity_id* (a game's releases).

        Raises:
            ValidationError: This kind has no child entities.
            NotFoundError:   No entity with *entity_id*.
        """
        if not self.kind.child:
            raise ValidationError(f"{self.kind.name} entries have no children", field='kind')
        self.get(db, entity_id)
        child_model, column = self.kind.child
        children = EntityRepository(child_model)
        return self._read(db, lambda: children.find_children(db, column, entity_id))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _validate(self, fields: Mapping, allow_parent: bool = False) -> Dict:
        if fields is None:
            fields = {}
        allowed = set(self.kind.fields)
        if allow_parent and self.kind.parent_key:
            allowed.add(self.kind.parent_key)
        unknown = sorted(set(fields) - allowed)
        if unknown:
            raise ValidationError(
                f"Unknown {self.kind.name} field(s): {', '.join(unknown)}",
                field=unknown[0],
            )
        values = normalize_fields(fields, self.kind.fields)
        for name in self.kind.required:
            if values[name] is None:
                raise ValidationError(f"{name} is required", field=name)
        return values

    def _parent_id(self, fields: Mapping) -> int:
        key = self.kind.parent_key
        raw = fields.get(key)
        try:
            return int(raw)
        except (TypeError, ValueError):
            raise ValidationError(f"{key} must be an integer id", field=key)

    def _require_parent(self, db, parent_id: int) -> None:
        parent_model = self.kind.parent[0]
        if not EntityRepository(parent_model).exists(db, parent_id):
            raise NotFoundError(parent_model.__name__.lower(), parent_id)

    def _check_parent_unchanged(self, entity, fields: Mapping) -> None:
        key = self.kind.parent_key
        if key and fields.get(key) is not None:
            if self._parent_id(fields) != getattr(entity, key):
                raise ValidationError(f"{key} cannot be changed", field=key)

    def _read(self, db, query: Callable):
        try:
            return query()
        except SQLAlchemyError as exc:
            self._log.error("Read from %s failed: %s", self.kind.name, exc)
            raise PersistenceError(f"read {self.kind.name} failed: {exc}",
                                   operation=f"get {self.kind.name}") from exc
