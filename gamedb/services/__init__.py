"""Services package: expose all concrete services from one import."""
from .entity_service import EntityService, NEW_ENTRY_MESSAGE
from .revision_service import RevisionService, revision_to_dict
from .rating_service import RatingService
from .ranking_service import RankingService, RankedEntry

__all__ = [
    'EntityService',
    'NEW_ENTRY_MESSAGE',
    'RevisionService',
    'revision_to_dict',
    'RatingService',
    'RankingService',
    'RankedEntry',
]
