"""Unit tests for OAuthCoordinator: state/PKCE handling, account resolution, unlink guard."""

import asyncio
import base64
import hashlib
import unittest
from urllib.parse import parse_qs, urlparse

from adapter.fake.oauth_client import FakeOAuthClient
from adapter.fake.session_store import FakeSessionStore
from adapter.fake.user_repository import FakeUserRepository
from domain.model.errors import (
    CSRFViolationError,
    InvariantViolationError,
    OAuthExchangeError,
    OAuthStateMissingError,
    ProviderNotConfiguredError,
    UnknownProviderError,
    ValidationError,
)
from domain.model.oauth import ExternalIdentity, ProviderTokens
from domain.model.user import User
from services.oauth_service import (
    SESSION_KEY_PREFIX,
    OAuthCoordinator,
    generate_state,
    make_pkce_pair,
)
from services.password_service import hash_password
from utils.config import Settings

SETTINGS = Settings(
    jwt_secret='access-secret-for-tests-0123456789',
    jwt_refresh_secret='refresh-secret-for-tests-0123456789',
    google_client_id='google-id',
    google_client_secret='google-secret',
    github_client_id='github-id',
    github_client_secret='github-secret',
    app_base_url='https://auth.example.com',
)

GITHUB_IDENTITY = ExternalIdentity(
    provider='github',
    external_id='1001',
    email='octo@example.com',
    email_verified=True,
    username='octocat',
    display_name='Octo Cat',
    profile_url='https://github.com/octocat',
)


class TestPkceAndState(unittest.TestCase):

    def test_state_is_256_bits_hex(self):
        state = generate_state()
        self.assertEqual(len(state), 64)
        int(state, 16)
        self.assertNotEqual(state, generate_state())

    def test_pkce_challenge_is_s256_of_verifier(self):
        pair = make_pkce_pair()
        expected = base64.urlsafe_b64encode(hashlib.sha256(pair.verifier.encode()).digest()).rstrip(b'=').decode()
        self.assertEqual(pair.challenge, expected)
        self.assertEqual(pair.method, 'S256')
        self.assertNotIn('=', pair.challenge)
        self.assertGreaterEqual(len(pair.verifier), 43)


class OAuthCoordinatorTestCase(unittest.TestCase):

    def setUp(self):
        self.repo = FakeUserRepository()
        self.sessions = FakeSessionStore()
        self.client = FakeOAuthClient()
        self.coordinator = OAuthCoordinator(self.repo, self.sessions, self.client, SETTINGS)

    def _start(self, provider='github', session_id=None):
        redirect = self.coordinator.initiate(provider, session_id)
        query = parse_qs(urlparse(redirect.url).query)
        return redirect, query

    def _complete(self, provider, session_id, state, code='auth-code', error=None, current_user=None):
        return asyncio.run(self.coordinator.complete(
            provider, session_id, state, code, error=error, current_user=current_user,
        ))


class TestInitiate(OAuthCoordinatorTestCase):

    def test_authorize_url_carries_state_and_pkce(self):
        redirect, query = self._start('github')

        self.assertTrue(redirect.url.startswith('https://github.com/login/oauth/authorize?'))
        self.assertEqual(query['client_id'], ['github-id'])
        self.assertEqual(query['redirect_uri'], ['https://auth.example.com/auth/github/callback'])
        self.assertEqual(query['response_type'], ['code'])
        self.assertEqual(query['code_challenge_method'], ['S256'])

        stored = self.sessions.sessions[redirect.session_id][SESSION_KEY_PREFIX + 'github']
        self.assertEqual(query['state'], [stored['state']])
        expected_challenge = make_challenge(stored['code_verifier'])
        self.assertEqual(query['code_challenge'], [expected_challenge])

    def test_google_gets_offline_access(self):
        _, query = self._start('google')
        self.assertEqual(query['access_type'], ['offline'])
        self.assertEqual(query['scope'], ['profile email'])

    def test_existing_session_is_reused(self):
        redirect, _ = self._start('github', session_id='browser-session')
        self.assertEqual(redirect.session_id, 'browser-session')

    def test_unknown_provider(self):
        with self.assertRaises(UnknownProviderError):
            self.coordinator.initiate('myspace')

    def test_missing_credentials(self):
        coordinator = OAuthCoordinator(
            self.repo, self.sessions, self.client,
            Settings(jwt_secret='a' * 32, jwt_refresh_secret='b' * 32),
        )
        with self.assertRaises(ProviderNotConfiguredError):
            coordinator.initiate('google')


def make_challenge(verifier: str) -> str:
    return base64.urlsafe_b64encode(hashlib.sha256(verifier.encode()).digest()).rstrip(b'=').decode()


class TestCallbackChecks(OAuthCoordinatorTestCase):

    def setUp(self):
        super().setUp()
        self.client.set_identity(GITHUB_IDENTITY)

    def test_state_mismatch_never_reaches_exchange(self):
        redirect, _ = self._start('github')
        with self.assertRaises(CSRFViolationError):
            self._complete('github', redirect.session_id, 'f' * 64)
        self.assertEqual(self.client.calls, [])

    def test_missing_state_param_is_csrf(self):
        redirect, _ = self._start('github')
        with self.assertRaises(CSRFViolationError):
            self._complete('github', redirect.session_id, None)
        self.assertEqual(self.client.calls, [])

    def test_no_pending_authorization(self):
        with self.assertRaises(OAuthStateMissingError):
            self._complete('github', 'unknown-session', 'f' * 64)
        with self.assertRaises(OAuthStateMissingError):
            self._complete('github', None, 'f' * 64)
        self.assertEqual(self.client.calls, [])

    def test_state_is_single_use(self):
        redirect, query = self._start('github')
        self._complete('github', redirect.session_id, query['state'][0])
        with self.assertRaises(OAuthStateMissingError):
            self._complete('github', redirect.session_id, query['state'][0])
        self.assertEqual(len(self.client.calls), 1)

    def test_state_for_other_provider_does_not_match(self):
        redirect, query = self._start('google')
        with self.assertRaises(OAuthStateMissingError):
            self._complete('github', redirect.session_id, query['state'][0])

    def test_provider_error_param(self):
        redirect, query = self._start('github')
        with self.assertRaises(OAuthExchangeError) as ctx:
            self._complete('github', redirect.session_id, query['state'][0], code=None, error='access_denied')
        self.assertEqual(ctx.exception.detail, 'access_denied')
        self.assertEqual(self.client.calls, [])

    def test_exchange_receives_stored_verifier(self):
        redirect, query = self._start('github')
        verifier = self.sessions.sessions[redirect.session_id][SESSION_KEY_PREFIX + 'github']['code_verifier']
        self._complete('github', redirect.session_id, query['state'][0])

        call = self.client.calls[0]
        self.assertEqual(call['code'], 'auth-code')
        self.assertEqual(call['code_verifier'], verifier)
        self.assertEqual(call['redirect_uri'], 'https://auth.example.com/auth/github/callback')


class TestAccountResolution(OAuthCoordinatorTestCase):

    def _login(self, identity, current_user=None):
        self.client.set_identity(identity)
        redirect, query = self._start(identity.provider)
        return self._complete(identity.provider, redirect.session_id, query['state'][0], current_user=current_user)

    def test_first_login_creates_passwordless_user(self):
        user = self._login(GITHUB_IDENTITY)

        self.assertEqual(user.provider, 'github')
        self.assertEqual(user.email, 'octo@example.com')
        self.assertFalse(user.has_password)
        self.assertTrue(user.is_email_verified)
        self.assertEqual(user.first_name, 'Octo')
        self.assertEqual(user.oauth['github'].external_id, '1001')
        self.assertEqual(user.oauth['github'].username, 'octocat')
        self.assertEqual(user.oauth_accounts_linked, ['github'])
        self.assertEqual(user.last_oauth_provider, 'github')

    def test_second_login_finds_linked_user(self):
        first = self._login(GITHUB_IDENTITY)
        second = self._login(GITHUB_IDENTITY)
        self.assertEqual(first.id, second.id)
        self.assertEqual(len(self.repo.store), 1)

    def test_verified_email_links_to_existing_account(self):
        local = self.repo.create(User.create_local('Ada', 'Lovelace', 'octo@example.com', hash_password('Valid#Pass1', 4)))
        user = self._login(GITHUB_IDENTITY)

        self.assertEqual(user.id, local.id)
        self.assertEqual(user.provider, 'local')
        self.assertTrue(user.is_linked_to('github'))
        self.assertTrue(user.has_password)

    def test_unverified_email_does_not_take_over_account(self):
        self.repo.create(User.create_local('Ada', 'Lovelace', 'octo@example.com', hash_password('Valid#Pass1', 4)))
        identity = ExternalIdentity(provider='github', external_id='1001', email='octo@example.com', username='octocat')
        with self.assertRaises(InvariantViolationError):
            self._login(identity)

    def test_logged_in_user_gets_provider_linked(self):
        local = self.repo.create(User.create_local('Ada', 'Lovelace', 'ada@example.com', hash_password('Valid#Pass1', 4)))
        user = self._login(GITHUB_IDENTITY, current_user=local)

        self.assertEqual(user.id, local.id)
        self.assertEqual(user.email, 'ada@example.com')
        self.assertTrue(self.repo.get_by_id(local.id).is_linked_to('github'))

    def test_identity_linked_elsewhere_conflicts_with_logged_in_user(self):
        self._login(GITHUB_IDENTITY)
        other = self.repo.create(User.create_local('Bob', 'Builder', 'bob@example.com', hash_password('Valid#Pass1', 4)))
        with self.assertRaises(InvariantViolationError):
            self._login(GITHUB_IDENTITY, current_user=other)

    def test_missing_email_uses_placeholder(self):
        identity = ExternalIdentity(provider='github', external_id='77', username='ghost')
        user = self._login(identity)
        self.assertEqual(user.email, 'ghost@github.local')
        self.assertFalse(user.is_email_verified)

    def test_provider_refresh_token_is_kept_when_not_reissued(self):
        self._login(GITHUB_IDENTITY)
        self.client.set_identity(GITHUB_IDENTITY, refresh_token=None)
        redirect, query = self._start('github')
        user = self._complete('github', redirect.session_id, query['state'][0])
        self.assertEqual(user.oauth['github'].refresh_token, 'provider-refresh')


class TestUnlink(OAuthCoordinatorTestCase):

    def _oauth_only_user(self):
        user = User.create_from_identity(GITHUB_IDENTITY)
        self.client.set_identity(GITHUB_IDENTITY)
        user.link_provider(GITHUB_IDENTITY, ProviderTokens(access_token='t'), ['user:email'])
        return self.repo.create(user)

    def test_only_method_cannot_be_unlinked(self):
        user = self._oauth_only_user()
        with self.assertRaises(InvariantViolationError):
            self.coordinator.unlink(user, 'github')
        self.assertTrue(self.repo.get_by_id(user.id).is_linked_to('github'))

    def test_unlink_succeeds_once_password_is_set(self):
        user = self._oauth_only_user()
        self.repo.store[user.id].password_hash = hash_password('Valid#Pass1', 4)

        updated = self.coordinator.unlink(self.repo.get_by_id(user.id), 'github')

        self.assertFalse(updated.is_linked_to('github'))
        self.assertEqual(updated.oauth_accounts_linked, [])
        self.assertNotIn('github', self.repo.get_by_id(user.id).oauth)

    def test_unlink_not_linked_provider(self):
        user = self._oauth_only_user()
        with self.assertRaises(ValidationError):
            self.coordinator.unlink(user, 'google')

    def test_unlink_unknown_provider(self):
        user = self._oauth_only_user()
        with self.assertRaises(UnknownProviderError):
            self.coordinator.unlink(user, 'myspace')


if __name__ == '__main__':
    unittest.main()
