"""Tests for MongoUserRepository against a mocked collection.

Checks the query shapes that carry the account invariants:
- optimistic version filter on save
- single conditional write for reset redemption and provider unlink
"""

import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from adapter.mongodb.indexes import create_index_safe
from adapter.mongodb.user_repository import MongoUserRepository
from domain.model.errors import DomainError, DuplicateError, InvariantViolationError
from domain.model.user import User

NOW = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def _doc(**overrides) -> dict:
    doc = {
        '_id': 'user-1',
        'first_name': 'Ada',
        'last_name': 'Lovelace',
        'email': 'ada@example.com',
        'created_at': NOW.replace(tzinfo=None),
        'updated_at': NOW.replace(tzinfo=None),
        'password_hash': 'hash',
        'provider': 'local',
    }
    doc.update(overrides)
    return doc


class MongoRepoTestCase(unittest.TestCase):

    def setUp(self):
        self.collection = MagicMock()
        db = MagicMock()
        db.__getitem__.return_value = self.collection
        self.repo = MongoUserRepository(db)


class TestMapping(MongoRepoTestCase):

    def test_legacy_document_maps_with_defaults(self):
        self.collection.find_one.return_value = _doc()

        user = self.repo.get_by_id('user-1')

        self.assertEqual(user.id, 'user-1')
        self.assertEqual(user.created_at.tzinfo, timezone.utc)
        self.assertEqual(user.failed_login_attempts, 0)
        self.assertEqual(user.oauth, {})
        self.assertEqual(user.version, 0)
        self.collection.find_one.assert_called_once_with({'_id': 'user-1'})

    def test_oauth_subdocuments_map_to_links(self):
        self.collection.find_one.return_value = _doc(oauth={
            'google': {'external_id': 'g-1', 'username': 'ada', 'scopes': ['email']},
            'github': {'external_id': None},
        })

        user = self.repo.get_by_provider_id('google', 'g-1')

        self.assertEqual(user.linked_providers, ['google'])
        self.assertEqual(user.oauth['google'].scopes, ['email'])
        self.collection.find_one.assert_called_once_with({'oauth.google.external_id': 'g-1'})

    def test_unknown_provider_lookup_skips_query(self):
        self.assertIsNone(self.repo.get_by_provider_id('$where', 'x'))
        self.collection.find_one.assert_not_called()

    def test_email_lookup_is_normalized(self):
        self.collection.find_one.return_value = None
        self.assertIsNone(self.repo.get_by_email(' Ada@Example.com '))
        self.collection.find_one.assert_called_once_with({'email': 'ada@example.com'})

    def test_read_error_raises_instead_of_reporting_missing(self):
        self.collection.find_one.side_effect = PyMongoError('down')
        with self.assertRaises(DomainError):
            self.repo.get_by_id('user-1')
        with self.assertRaises(DomainError):
            self.repo.get_by_email('ada@example.com')


class TestWrites(MongoRepoTestCase):

    def _user(self) -> User:
        return User.create_local('Ada', 'Lovelace', 'Ada@Example.com', 'hash')

    def test_create_inserts_document(self):
        user = self.repo.create(self._user())

        doc = self.collection.insert_one.call_args[0][0]
        self.assertEqual(doc['_id'], user.id)
        self.assertNotIn('id', doc)
        self.assertEqual(doc['email'], 'ada@example.com')

    def test_create_duplicate_email(self):
        self.collection.insert_one.side_effect = DuplicateKeyError('dup')
        with self.assertRaises(DuplicateError):
            self.repo.create(self._user())

    def test_create_other_error(self):
        self.collection.insert_one.side_effect = PyMongoError('down')
        with self.assertRaises(DomainError):
            self.repo.create(self._user())

    def test_save_uses_version_filter(self):
        user = self._user()
        self.collection.replace_one.return_value = MagicMock(matched_count=1)

        self.assertTrue(self.repo.save(user))

        query, doc = self.collection.replace_one.call_args[0]
        self.assertEqual(query, {'_id': user.id, 'version': {'$in': [0, None]}})
        self.assertEqual(doc['version'], 1)
        self.assertEqual(user.version, 1)

        self.repo.save(user)
        query, doc = self.collection.replace_one.call_args[0]
        self.assertEqual(query['version'], 1)
        self.assertEqual(doc['version'], 2)

    def test_save_lost_race(self):
        user = self._user()
        self.collection.replace_one.return_value = MagicMock(matched_count=0)
        self.assertFalse(self.repo.save(user))
        self.assertEqual(user.version, 0)

    def test_save_duplicate_provider_identity(self):
        self.collection.replace_one.side_effect = DuplicateKeyError('dup')
        with self.assertRaises(InvariantViolationError):
            self.repo.save(self._user())

    def test_login_tracking_increments_counter(self):
        self.collection.update_one.return_value = MagicMock(matched_count=1)
        self.assertTrue(self.repo.update_login_tracking('user-1', '10.0.0.1', NOW))

        query, update = self.collection.update_one.call_args[0]
        self.assertEqual(query, {'_id': 'user-1'})
        self.assertEqual(update['$inc'], {'login_count': 1, 'version': 1})
        self.assertEqual(update['$set']['login_ip'], '10.0.0.1')

    def test_token_writes_bump_version(self):
        self.collection.update_one.return_value = MagicMock(matched_count=1)

        self.repo.clear_refresh_token('user-1')
        _, update = self.collection.update_one.call_args[0]
        self.assertEqual(update['$inc'], {'version': 1})
        self.assertIsNone(update['$set']['refresh_token_hash'])

        self.repo.set_refresh_token('user-1', 'digest')
        _, update = self.collection.update_one.call_args[0]
        self.assertEqual(update['$inc'], {'version': 1})

    def test_clear_reset_token_only_if_unchanged(self):
        self.collection.update_one.return_value = MagicMock(matched_count=0)
        self.assertFalse(self.repo.clear_reset_token('user-1', 'digest'))
        query, _ = self.collection.update_one.call_args[0]
        self.assertEqual(query, {'_id': 'user-1', 'reset_password_token': 'digest'})

    def test_consume_reset_token_is_one_conditional_write(self):
        self.collection.find_one_and_update.return_value = _doc(password_hash='new-hash', version=3)

        user = self.repo.consume_reset_token('digest', 'new-hash', NOW)

        self.assertEqual(user.password_hash, 'new-hash')
        query, update = self.collection.find_one_and_update.call_args[0]
        self.assertEqual(query, {'reset_password_token': 'digest', 'reset_password_expiry': {'$gt': NOW}})
        self.assertIsNone(update['$set']['reset_password_token'])
        self.assertIsNone(update['$set']['refresh_token_hash'])
        self.assertFalse(update['$set']['is_locked'])
        self.assertEqual(update['$inc'], {'version': 1})
        self.assertEqual(
            self.collection.find_one_and_update.call_args[1]['return_document'], ReturnDocument.AFTER,
        )

    def test_consume_reset_token_no_match(self):
        self.collection.find_one_and_update.return_value = None
        self.assertIsNone(self.repo.consume_reset_token('digest', 'new-hash', NOW + timedelta(hours=1)))

    def test_unlink_requires_remaining_method_in_filter(self):
        self.collection.find_one_and_update.return_value = None

        self.assertIsNone(self.repo.unlink_provider('user-1', 'google'))

        query, update = self.collection.find_one_and_update.call_args[0]
        self.assertEqual(query['_id'], 'user-1')
        self.assertEqual(query['oauth.google.external_id'], {'$type': 'string'})
        self.assertEqual(query['$or'], [
            {'password_hash': {'$type': 'string', '$ne': ''}},
            {'oauth.github.external_id': {'$type': 'string'}},
        ])
        self.assertEqual(update['$unset'], {'oauth.google': ''})
        self.assertEqual(update['$pull'], {'oauth_accounts_linked': 'google'})

    def test_clear_provider_tokens(self):
        self.collection.find_one.return_value = _doc(oauth={'github': {'external_id': '7', 'access_token': 't'}})
        self.collection.update_one.return_value = MagicMock(matched_count=1)

        self.assertTrue(self.repo.clear_provider_tokens('user-1'))

        _, update = self.collection.update_one.call_args[0]
        self.assertIsNone(update['$set']['oauth.github.access_token'])
        self.assertIsNone(update['$set']['oauth.github.refresh_token'])


class TestIndexes(MongoRepoTestCase):

    def test_ensure_indexes(self):
        self.collection.index_information.return_value = {}

        self.assertTrue(self.repo.ensure_indexes())

        names = [c[1]['name'] for c in self.collection.create_index.call_args_list]
        self.assertIn('idx_users_email', names)
        self.assertIn('idx_users_google_id', names)
        self.assertIn('idx_users_github_id', names)
        google = next(c for c in self.collection.create_index.call_args_list if c[1]['name'] == 'idx_users_google_id')
        self.assertTrue(google[1]['unique'])
        self.assertEqual(
            google[1]['partialFilterExpression'], {'oauth.google.external_id': {'$type': 'string'}},
        )


class TestIndexConflict(unittest.TestCase):

    def test_renamed_index_is_dropped_and_recreated(self):
        collection = MagicMock()
        collection.create_index.side_effect = [PyMongoError('Index already exists with a different name'), None]
        collection.index_information.return_value = {
            '_id_': {'key': [('_id', 1)]},
            'email_1': {'key': [('email', 1)]},
        }

        self.assertTrue(create_index_safe(collection, [('email', 1)], 'idx_users_email', unique=True))
        collection.drop_index.assert_called_once_with('email_1')
        self.assertEqual(collection.create_index.call_count, 2)

    def test_unrelated_error_propagates(self):
        collection = MagicMock()
        collection.create_index.side_effect = PyMongoError('not authorized')
        with self.assertRaises(PyMongoError):
            create_index_safe(collection, [('email', 1)], 'idx_users_email')


if __name__ == '__main__':
    unittest.main()
