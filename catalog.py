#!/usr/bin/env python3
"""
Wild GameDB - catalog core
Versioned game/release records with full edit history and Bayesian-ranked
user ratings.
"""

import argparse
import logging
import sys
from typing import Dict, List, Mapping, Optional

from colorama import init, Fore, Style
from sqlalchemy.exc import SQLAlchemyError

import database
from gamedb.config import load_config
from gamedb.errors import CatalogError
from gamedb.kinds import KINDS, get_kind
from gamedb.services import (
    EntityService, RevisionService, RatingService, RankingService, RankedEntry,
)

# Initialize colorama for cross-platform colored terminal output
init(autoreset=True)

# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------

def setup_logging(level: str = 'WARNING') -> logging.Logger:
    """Configure the root gamedb logger.

    Args:
        level: Log level string (DEBUG, INFO, WARNING, ERROR, CRITICAL).
               Defaults to WARNING so normal use is quiet.

    Returns:
        Configured logger instance.
    """
    numeric = getattr(logging, level.upper(), logging.WARNING)
    logger = logging.getLogger('gamedb')
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter('[%(levelname)s] %(name)s: %(message)s'))
        logger.addHandler(handler)
    logger.setLevel(numeric)
    return logger


logger = logging.getLogger('gamedb.catalog')


class Catalog:
    """Entry point the web layer talks to.

    Builds one service of each type per entity kind and exposes them as
    public attributes (``catalog.entities['game']``, ``catalog.ratings`` ...).
    Every method takes the caller's SQLAlchemy session as *db*; the caller
    opens and closes it, the services commit or roll back.
    """

    def __init__(self, config: Optional[Dict] = None, clock=None) -> None:
        self.config = config if config is not None else load_config()
        self.entities = {name: EntityService(kind, clock) for name, kind in KINDS.items()}
        self.revisions = {name: RevisionService(kind) for name, kind in KINDS.items()}
        self.ratings = {name: RatingService(kind, clock) for name, kind in KINDS.items()}
        self.rankings = {
            name: RankingService(kind,
                                 min_votes=self.config['min_votes'],
                                 global_average=self.config['global_average'])
            for name, kind in KINDS.items()
        }

    # ------------------------------------------------------------------
    # Entities
    # ------------------------------------------------------------------

    def create_entity(self, db, kind: str, fields: Mapping, author_id: Optional[int]):
        return self.entities[get_kind(kind).name].create(db, fields, author_id)

    def update_entity(self, db, kind: str, entity_id: int, fields: Mapping,
                      message: str, author_id: Optional[int]):
        return self.entities[get_kind(kind).name].update(
            db, entity_id, author_id, fields, message)

    def get_entity(self, db, kind: str, entity_id: int):
        return self.entities[get_kind(kind).name].get(db, entity_id)

    def list_releases(self, db, game_id: int) -> List:
        """Releases of *game_id* ordered by release date."""
        return self.entities['game'].list_children(db, game_id)

    # ------------------------------------------------------------------
    # Revisions
    # ------------------------------------------------------------------

    def list_revisions(self, db, entity_id: int, kind: str = 'game') -> List:
        return self.revisions[get_kind(kind).name].list_for(db, entity_id)

    def reconstruct(self, db, entity_id: int, upto: Optional[int] = None,
                    kind: str = 'game') -> Dict:
        """Field values of *entity_id* as of revision *upto* (default: latest)."""
        return self.revisions[get_kind(kind).name].reconstruct(db, entity_id, upto)

    # ------------------------------------------------------------------
    # Ratings and rankings
    # ------------------------------------------------------------------

    def rate(self, db, entity_id: int, user_id: int, value, kind: str = 'game'):
        return self.ratings[get_kind(kind).name].rate(db, entity_id, user_id, value)

    def get_user_rating(self, db, entity_id: int, user_id: int, kind: str = 'game'):
        return self.ratings[get_kind(kind).name].get_user_rating(db, entity_id, user_id)

    def rating_history(self, db, entity_id: int, user_id: int, kind: str = 'game') -> List:
        return self.ratings[get_kind(kind).name].history(db, entity_id, user_id)

    def bayesian_score(self, db, entity_id: int, kind: str = 'game') -> float:
        return self.rankings[get_kind(kind).name].bayesian_score_for(db, entity_id)

    def list_ranked(self, db, kind: str, limit: Optional[int] = None) -> List[RankedEntry]:
        return self.rankings[get_kind(kind).name].list_ranked(db, limit=limit)


# ---------------------------------------------------------------------------
# Command line
# ---------------------------------------------------------------------------

def _print_entity(entity, kind: str) -> None:
    print(f"{Fore.CYAN}{kind.capitalize()} #{entity.id}: {Style.BRIGHT}{entity.title}")
    for name in get_kind(kind).fields:
        value = getattr(entity, name)
        if value is not None and name != 'title':
            print(f"  {Fore.WHITE}{name}: {value}")
    print(f"  {Fore.YELLOW}revision {entity.revision_count}")


def _print_history(catalog: Catalog, db, kind: str, entity_id: int) -> None:
    for entry in catalog.revisions[kind].to_dicts(db, entity_id):
        print(f"{Fore.GREEN}r{entry['nth_revision']}{Style.RESET_ALL} "
              f"{entry['created']} by {entry['created_by']}: {entry['message']}")
        for name, value in entry['changes'].items():
            shown = value if value != '' else f"{Fore.RED}(cleared)"
            print(f"    {name}: {shown}")


def _print_ranked(entries: List[RankedEntry]) -> None:
    for position, entry in enumerate(entries, 1):
        label = entry.entity.alias or entry.entity.title
        votes = f"{entry.n_ratings} vote(s)" if entry.n_ratings else f"{Fore.YELLOW}unrated"
        print(f"{position:>3}. {Fore.CYAN}{label}{Style.RESET_ALL} "
              f"{entry.score:.2f} ({votes}{Style.RESET_ALL}, {entry.n_releases} release(s))")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Wild GameDB - catalog administration',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  gamedb init-db                  # Create missing tables
  gamedb show game 12             # Show the current state of a game
  gamedb history release 40       # Show the edit history of a release
  gamedb ranked game --limit 20   # Top 20 games by Bayesian score
        """
    )
    parser.add_argument(
        '--config', '-c',
        default='gamedb_config.json',
        help='Path to config file (default: gamedb_config.json)'
    )
    parser.add_argument(
        '--database-url',
        help='Database URL (overrides config and DATABASE_URL)'
    )
    parser.add_argument(
        '--log-level',
        help='Log level (DEBUG, INFO, WARNING, ERROR)'
    )

    commands = parser.add_subparsers(dest='command', required=True)
    commands.add_parser('init-db', help='Create database tables')
    for name, help_text in (('show', 'Show an entry'), ('history', 'Show revision history')):
        command = commands.add_parser(name, help=help_text)
        command.add_argument('kind', choices=sorted(KINDS))
        command.add_argument('id', type=int)
    ranked = commands.add_parser('ranked', help='List entries by Bayesian score')
    ranked.add_argument('kind', choices=sorted(KINDS))
    ranked.add_argument('--limit', '-n', type=int, help='Show at most N entries')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.config)
    except ValueError as e:
        print(f"{Fore.RED}Error: {e}")
        return 1
    if args.database_url:
        config['database_url'] = args.database_url
    setup_logging(args.log_level or config['log_level'])

    if database.configure_engine(config['database_url'], echo=bool(config['database_echo'])) is None:
        print(f"{Fore.RED}Error: Cannot create a database engine for {config['database_url']}")
        return 1
    logger.info("Using database %s", config['database_url'])

    if args.command == 'init-db':
        try:
            database.init_db()
        except SQLAlchemyError as e:
            print(f"{Fore.RED}Error: {e}")
            return 1
        print(f"{Fore.GREEN}✓ Database tables ready")
        return 0

    catalog = Catalog(config)
    db = database.SessionLocal()
    try:
        if args.command == 'show':
            _print_entity(catalog.get_entity(db, args.kind, args.id), args.kind)
        elif args.command == 'history':
            catalog.get_entity(db, args.kind, args.id)
            _print_history(catalog, db, args.kind, args.id)
        elif args.command == 'ranked':
            _print_ranked(catalog.list_ranked(db, args.kind, limit=args.limit))
    except CatalogError as e:
        print(f"{Fore.RED}Error: {e.message}")
        return 1
    finally:
        db.close()
    return 0


if __name__ == '__main__':
    sys.exit(main())
