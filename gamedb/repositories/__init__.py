"""Repository package: expose all concrete repositories from one import."""
from .entity_repository import EntityRepository
from .revision_repository import RevisionRepository
from .rating_repository import RatingRepository

__all__ = [
    'EntityRepository',
    'RevisionRepository',
    'RatingRepository',
]
