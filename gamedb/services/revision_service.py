"""Business logic for reading revision history."""
import logging
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..errors import NotFoundError, PersistenceError, ValidationError
from ..kinds import EntityKind
from ..repositories import RevisionRepository
from ..versioning import replay


def revision_diff(revision, fields) -> Dict[str, Optional[str]]:
    """Return the stored diff of *revision* as ``{field: None | '' | value}``."""
    return {name: getattr(revision, name) for name in fields}


def revision_to_dict(revision, fields) -> Dict:
    """Serialise a revision row for display.

    ``changes`` only lists the fields the revision touched; a cleared field is
    reported with an empty string.
    """
    diff = revision_diff(revision, fields)
    return {
        'nth_revision': revision.nth_revision,
        'message': revision.message,
        'created': revision.created.isoformat() if revision.created else None,
        'created_by': revision.created_by,
        'changes': {name: value for name, value in diff.items() if value is not None},
    }


class RevisionService:
    """Read side of a kind's revision log.

    Reads take no locks: a listing reflects whatever was last committed.
    """

    def __init__(self, kind: EntityKind) -> None:
        self.kind = kind
        self._revisions = RevisionRepository(kind.revision_model)
        self._log = logging.getLogger(f'gamedb.service.{kind.name}.revisions')

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def list_for(self, db, entity_id: int) -> List:
        """Return the revisions of *entity_id* ordered by ``nth_revision``.

        An unknown id yields an empty list.
        """
        try:
            return self._revisions.list_for(db, entity_id)
        except SQLAlchemyError as exc:
            self._log.error("Listing revisions of %s %s failed: %s",
                            self.kind.name, entity_id, exc)
            raise PersistenceError(f"list revisions failed: {exc}",
                                   operation='list revisions') from exc

    def reconstruct(self, db, entity_id: int, upto: Optional[int] = None) -> Dict:
        """Rebuild the field values of *entity_id* as of revision *upto*.

        Folds the diffs from revision 1 onward; without *upto* the result
        equals the entity's current state.

        Raises:
            NotFoundError:   The entity has no revisions.
            ValidationError: *upto* is outside ``1..revision_count``.
        """
        revisions = self.list_for(db, entity_id)
        if not revisions:
            raise NotFoundError(self.kind.name, entity_id)
        if upto is not None:
            if not 1 <= upto <= len(revisions):
                raise ValidationError(
                    f"Revision {upto} out of range 1..{len(revisions)}", field='upto')
            revisions = revisions[:upto]
        fields = self.kind.fields
        return replay((revision_diff(r, fields) for r in revisions), fields)

    def to_dicts(self, db, entity_id: int) -> List[Dict]:
        """Return the history of *entity_id* serialised with :func:`revision_to_dict`."""
        return [revision_to_dict(r, self.kind.fields) for r in self.list_for(db, entity_id)]
