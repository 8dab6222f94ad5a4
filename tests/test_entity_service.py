#!/usr/bin/env python3
"""
Tests for creating and editing versioned entities (games and releases).

Run with:
    python -m pytest tests/test_entity_service.py
"""
import os
import shutil
import sys
import tempfile
import unittest
from unittest.mock import MagicMock, patch

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import database
from gamedb.errors import NotFoundError, PersistenceError, ValidationError
from gamedb.kinds import GAME, RELEASE
from gamedb.repositories import EntityRepository
from gamedb.services import EntityService, NEW_ENTRY_MESSAGE, RevisionService
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker


# ---------------------------------------------------------------------------
# In-memory DB helper
# ---------------------------------------------------------------------------

def _make_session():
    engine = create_engine('sqlite:///:memory:', connect_args={"check_same_thread": False})
    database.Base.metadata.create_all(engine)
    return sessionmaker(bind=engine)()


def _create_user(db, username='alice'):
    user = database.User(username=username)
    db.add(user)
    db.commit()
    return db.query(database.User).filter_by(username=username).first()


def _revisions(db, game_id):
    return (db.query(database.GameRevision)
            .filter_by(game_id=game_id)
            .order_by(database.GameRevision.nth_revision)
            .all())


# ===========================================================================
# create
# ===========================================================================

class TestCreate(unittest.TestCase):

    def setUp(self):
        self.db = _make_session()
        self.user = _create_user(self.db)
        self.games = EntityService(GAME)

    def tearDown(self):
        self.db.close()

    def test_starts_at_revision_one(self):
        game = self.games.create(self.db, {'title': 'Foo'}, self.user.id)
        self.assertEqual(game.revision_count, 1)
        self.assertEqual(game.created_by, self.user.id)
        self.assertIsNotNone(game.created)

    def test_writes_full_first_revision(self):
        fields = {'title': 'Foo', 'developer': 'Acme', 'tags': 'rpg,indie'}
        game = self.games.create(self.db, fields, self.user.id)
        revisions = _revisions(self.db, game.id)
        self.assertEqual(len(revisions), 1)
        first = revisions[0]
        self.assertEqual(first.nth_revision, 1)
        self.assertEqual(first.message, NEW_ENTRY_MESSAGE)
        self.assertEqual(first.title, 'Foo')
        self.assertEqual(first.developer, 'Acme')
        self.assertEqual(first.tags, 'rpg,indie')
        self.assertIsNone(first.publisher)

    def test_values_are_stripped_and_blank_becomes_null(self):
        game = self.games.create(self.db, {'title': '  Foo ', 'alias': '   '}, None)
        self.assertEqual(game.title, 'Foo')
        self.assertIsNone(game.alias)

    def test_missing_title_rejected(self):
        with self.assertRaises(ValidationError) as ctx:
            self.games.create(self.db, {'developer': 'Acme'}, self.user.id)
        self.assertEqual(ctx.exception.field, 'title')
        self.assertEqual(self.db.query(database.Game).count(), 0)

    def test_blank_title_rejected(self):
        with self.assertRaises(ValidationError):
            self.games.create(self.db, {'title': ''}, self.user.id)

    def test_unknown_field_rejected(self):
        with self.assertRaises(ValidationError) as ctx:
            self.games.create(self.db, {'title': 'Foo', 'price': '10'}, self.user.id)
        self.assertEqual(ctx.exception.field, 'price')

    def test_revision_failure_rolls_back_entity(self):
        error = OperationalError('INSERT INTO game_revisions', {}, Exception('disk full'))
        with patch.object(self.games._revisions, 'append', side_effect=error):
            with self.assertRaises(PersistenceError) as ctx:
                self.games.create(self.db, {'title': 'Foo'}, self.user.id)
        self.assertIs(ctx.exception.__cause__, error)
        self.assertEqual(self.db.query(database.Game).count(), 0)
        self.assertEqual(self.db.query(database.GameRevision).count(), 0)

    def test_unexpected_error_rolls_back_entity(self):
        with patch.object(self.games._revisions, 'append', side_effect=RuntimeError('boom')):
            with self.assertRaises(RuntimeError):
                self.games.create(self.db, {'title': 'Foo'}, self.user.id)
        self.assertEqual(self.db.query(database.Game).count(), 0)
        self.assertEqual(self.db.query(database.GameRevision).count(), 0)

    def test_get_returns_entity(self):
        game = self.games.create(self.db, {'title': 'Foo'}, self.user.id)
        self.assertEqual(self.games.get(self.db, game.id).title, 'Foo')

    def test_get_missing_raises(self):
        with self.assertRaises(NotFoundError) as ctx:
            self.games.get(self.db, 999)
        self.assertEqual(ctx.exception.kind, 'game')
        self.assertEqual(ctx.exception.entity_id, 999)


class TestCreateRelease(unittest.TestCase):

    def setUp(self):
        self.db = _make_session()
        self.games = EntityService(GAME)
        self.releases = EntityService(RELEASE)
        self.game = self.games.create(self.db, {'title': 'Foo'}, None)

    def tearDown(self):
        self.db.close()

    def test_release_linked_to_game(self):
        release = self.releases.create(
            self.db, {'game_id': self.game.id, 'title': 'Foo (EU)', 'platform': 'PS2'}, None)
        self.assertEqual(release.game_id, self.game.id)
        self.assertEqual(release.revision_count, 1)
        revision = self.db.query(database.ReleaseRevision).filter_by(release_id=release.id).one()
        self.assertEqual(revision.platform, 'PS2')

    def test_game_id_accepts_numeric_string(self):
        release = self.releases.create(
            self.db, {'game_id': str(self.game.id), 'title': 'Foo'}, None)
        self.assertEqual(release.game_id, self.game.id)

    def test_missing_game_id_rejected(self):
        with self.assertRaises(ValidationError) as ctx:
            self.releases.create(self.db, {'title': 'Foo'}, None)
        self.assertEqual(ctx.exception.field, 'game_id')

    def test_unknown_game_raises_not_found(self):
        with self.assertRaises(NotFoundError) as ctx:
            self.releases.create(self.db, {'game_id': 999, 'title': 'Foo'}, None)
        self.assertEqual(ctx.exception.kind, 'game')
        self.assertEqual(self.db.query(database.Release).count(), 0)

    def test_game_id_not_allowed_on_games(self):
        with self.assertRaises(ValidationError):
            self.games.create(self.db, {'title': 'Bar', 'game_id': 1}, None)

    def test_cannot_move_release_to_other_game(self):
        other = self.games.create(self.db, {'title': 'Bar'}, None)
        release = self.releases.create(self.db, {'game_id': self.game.id, 'title': 'Foo'}, None)
        with self.assertRaises(ValidationError):
            self.releases.update(self.db, release.id, None,
                                 {'game_id': other.id, 'title': 'Foo'}, 'move')
        self.assertEqual(self.releases.get(self.db, release.id).revision_count, 1)

    def test_list_children_ordered_by_release_date(self):
        late = self.releases.create(
            self.db, {'game_id': self.game.id, 'title': 'B', 'release_date': '2004-05-01'}, None)
        undated = self.releases.create(self.db, {'game_id': self.game.id, 'title': 'C'}, None)
        early = self.releases.create(
            self.db, {'game_id': self.game.id, 'title': 'A', 'release_date': '2001-03-22'}, None)
        ids = [r.id for r in self.games.list_children(self.db, self.game.id)]
        self.assertEqual(ids, [early.id, late.id, undated.id])

    def test_list_children_unknown_game(self):
        with self.assertRaises(NotFoundError):
            self.games.list_children(self.db, 999)

    def test_releases_have_no_children(self):
        release = self.releases.create(self.db, {'game_id': self.game.id, 'title': 'A'}, None)
        with self.assertRaises(ValidationError):
            self.releases.list_children(self.db, release.id)


# ===========================================================================
# update
# ===========================================================================

class TestUpdate(unittest.TestCase):

    def setUp(self):
        self.db = _make_session()
        self.user = _create_user(self.db)
        self.games = EntityService(GAME)
        self.game = self.games.create(self.db, {'title': 'Foo', 'developer': 'Acme'}, None)

    def tearDown(self):
        self.db.close()

    def test_increments_revision_by_one(self):
        game = self.games.update(self.db, self.game.id, self.user.id,
                                 {'title': 'Foo', 'developer': 'Acme', 'tags': 'rpg'}, 'add tag')
        self.assertEqual(game.revision_count, 2)
        game = self.games.update(self.db, self.game.id, self.user.id,
                                 {'title': 'Foo II', 'developer': 'Acme', 'tags': 'rpg'}, 'rename')
        self.assertEqual(game.revision_count, 3)

    def test_diff_has_null_for_unchanged_and_value_for_changed(self):
        self.games.update(self.db, self.game.id, self.user.id,
                          {'title': 'Foo', 'developer': 'Acme', 'tags': 'rpg'}, 'add tag')
        second = _revisions(self.db, self.game.id)[1]
        self.assertEqual(second.nth_revision, 2)
        self.assertIsNone(second.title)
        self.assertIsNone(second.developer)
        self.assertEqual(second.tags, 'rpg')
        self.assertEqual(second.message, 'add tag')
        self.assertEqual(second.created_by, self.user.id)

    def test_cleared_field_recorded_as_empty_string(self):
        game = self.games.update(self.db, self.game.id, self.user.id,
                                 {'title': 'Foo', 'developer': ''}, 'drop developer')
        self.assertIsNone(game.developer)
        second = _revisions(self.db, self.game.id)[1]
        self.assertEqual(second.developer, '')
        self.assertIsNone(second.title)

    def test_absent_field_counts_as_cleared(self):
        self.games.update(self.db, self.game.id, self.user.id, {'title': 'Foo'}, 'form post')
        self.assertIsNone(self.games.get(self.db, self.game.id).developer)
        self.assertEqual(_revisions(self.db, self.game.id)[1].developer, '')

    def test_never_set_field_left_empty_is_unchanged(self):
        self.games.update(self.db, self.game.id, self.user.id,
                          {'title': 'Foo', 'developer': 'Acme', 'publisher': ''}, 'noop')
        self.assertIsNone(_revisions(self.db, self.game.id)[1].publisher)

    def test_noop_edit_still_recorded(self):
        game = self.games.update(self.db, self.game.id, self.user.id,
                                 {'title': 'Foo', 'developer': 'Acme'}, 'touch')
        self.assertEqual(game.revision_count, 2)
        second = _revisions(self.db, self.game.id)[1]
        self.assertEqual([getattr(second, f) for f in GAME.fields], [None] * len(GAME.fields))

    def test_empty_message_rejected(self):
        for message in ('', '   ', None):
            with self.assertRaises(ValidationError) as ctx:
                self.games.update(self.db, self.game.id, self.user.id, {'title': 'Bar'}, message)
            self.assertEqual(ctx.exception.field, 'message')
        self.assertEqual(self.games.get(self.db, self.game.id).title, 'Foo')

    def test_blank_title_rejected_before_write(self):
        with self.assertRaises(ValidationError):
            self.games.update(self.db, self.game.id, self.user.id, {'title': ' '}, 'oops')
        self.assertEqual(len(_revisions(self.db, self.game.id)), 1)

    def test_missing_entity_raises_not_found(self):
        with self.assertRaises(NotFoundError):
            self.games.update(self.db, 999, self.user.id, {'title': 'Bar'}, 'edit')

    def test_revision_failure_rolls_back_update(self):
        error = OperationalError('INSERT INTO game_revisions', {}, Exception('lock timeout'))
        with patch.object(self.games._revisions, 'append', side_effect=error):
            with self.assertRaises(PersistenceError):
                self.games.update(self.db, self.game.id, self.user.id,
                                  {'title': 'Bar', 'developer': 'Acme'}, 'rename')
        game = self.games.get(self.db, self.game.id)
        self.assertEqual(game.title, 'Foo')
        self.assertEqual(game.revision_count, 1)
        self.assertEqual(len(_revisions(self.db, self.game.id)), 1)

    def test_duplicate_revision_number_is_persistence_error(self):
        self.db.add(database.GameRevision(game_id=self.game.id, nth_revision=2, message='stray'))
        self.db.commit()
        with self.assertRaises(PersistenceError):
            self.games.update(self.db, self.game.id, self.user.id,
                              {'title': 'Bar', 'developer': 'Acme'}, 'rename')
        game = self.games.get(self.db, self.game.id)
        self.assertEqual(game.revision_count, 1)
        self.assertEqual(game.title, 'Foo')

    def test_created_fields_unchanged_by_update(self):
        created, created_by = self.game.created, self.game.created_by
        game = self.games.update(self.db, self.game.id, self.user.id,
                                 {'title': 'Bar'}, 'rename')
        self.assertEqual(game.created, created)
        self.assertEqual(game.created_by, created_by)

    def test_revision_numbers_are_contiguous(self):
        for n in range(5):
            self.games.update(self.db, self.game.id, self.user.id,
                              {'title': f'Foo {n}'}, f'edit {n}')
        numbers = [r.nth_revision for r in _revisions(self.db, self.game.id)]
        self.assertEqual(numbers, [1, 2, 3, 4, 5, 6])
        self.assertEqual(self.games.get(self.db, self.game.id).revision_count, 6)

    def test_replaying_revisions_rebuilds_current_state(self):
        edits = [
            {'title': 'Foo', 'developer': 'Acme', 'tags': 'rpg'},
            {'title': 'Foo', 'tags': 'rpg', 'website': 'https://foo.example'},
            {'title': 'Foo Remastered', 'alias': 'FooR', 'tags': 'rpg,remaster'},
            {'title': 'Foo Remastered', 'alias': 'FooR'},
        ]
        for n, fields in enumerate(edits):
            self.games.update(self.db, self.game.id, self.user.id, fields, f'edit {n}')
        rebuilt = RevisionService(GAME).reconstruct(self.db, self.game.id)
        self.assertEqual(rebuilt, self.games.get(self.db, self.game.id).snapshot())


# ===========================================================================
# Locking
# ===========================================================================

class TestRowLocking(unittest.TestCase):

    def test_lock_selects_for_update(self):
        db = MagicMock()
        EntityRepository(database.Game).lock(db, 5)
        db.query.assert_called_once_with(database.Game)
        locked = db.query.return_value.filter.return_value.with_for_update
        locked.assert_called_once_with()
        locked.return_value.populate_existing.return_value.first.assert_called_once_with()


class TestConcurrentEdits(unittest.TestCase):
    """Two sessions against one database file, one per editor."""

    def setUp(self):
        self.tmp = tempfile.mkdtemp()
        self.engine = create_engine(f"sqlite:///{os.path.join(self.tmp, 'gamedb.sqlite')}")
        database.Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(bind=self.engine)
        self.games = EntityService(GAME)
        db = self.Session()
        self.game_id = self.games.create(db, {'title': 'Foo'}, None).id
        db.close()

    def tearDown(self):
        self.engine.dispose()
        shutil.rmtree(self.tmp, ignore_errors=True)

    def _edit_after_other_commit(self, alice_fields):
        alice, bob = self.Session(), self.Session()
        try:
            # Alice opens the edit form and sees revision 1.
            stale = alice.query(database.Game).filter_by(id=self.game_id).one()
            self.assertEqual(stale.title, 'Foo')
            self.games.update(bob, self.game_id, 2, {'title': 'Foo', 'tags': 'rpg'}, 'bob')
            game = self.games.update(alice, self.game_id, 1, alice_fields, 'alice')
            self.assertEqual(game.revision_count, 3)
            return _revisions(alice, self.game_id)[2]
        finally:
            alice.close()
            bob.close()

    def test_second_editor_diffs_against_committed_state(self):
        third = self._edit_after_other_commit({'title': 'Foo', 'tags': 'rpg', 'developer': 'Acme'})
        self.assertEqual(third.nth_revision, 3)
        self.assertIsNone(third.tags)
        self.assertEqual(third.developer, 'Acme')

    def test_overwrite_of_other_edit_is_visible_in_diff(self):
        third = self._edit_after_other_commit({'title': 'Foo'})
        self.assertEqual(third.tags, '')


if __name__ == '__main__':
    unittest.main()
