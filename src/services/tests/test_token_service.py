"""Unit tests for TokenService: issue/verify contract of access and refresh JWTs."""

import unittest
from datetime import datetime, timedelta, timezone

from jose import jwt

from domain.model.errors import TokenExpiredError, TokenMalformedError, TokenSignatureError
from domain.model.token import TokenType
from services.token_service import JWT_ALGORITHM, TokenService, hash_token
from utils.config import Settings

SETTINGS = Settings(
    jwt_secret='access-secret-for-tests-0123456789',
    jwt_refresh_secret='refresh-secret-for-tests-0123456789',
    access_token_ttl=3600,
    refresh_token_ttl=7 * 24 * 3600,
)


class TestTokenService(unittest.TestCase):

    def setUp(self):
        self.tokens = TokenService(SETTINGS)

    def test_access_token_round_trip(self):
        token = self.tokens.issue_access_token('user-1', 'a@example.com')
        payload = self.tokens.verify_access(token)

        self.assertEqual(payload.user_id, 'user-1')
        self.assertEqual(payload.email, 'a@example.com')
        self.assertEqual(payload.token_type, TokenType.ACCESS)
        self.assertTrue(payload.jti)
        self.assertEqual((payload.expires_at - payload.issued_at).total_seconds(), 3600)

    def test_each_token_has_unique_jti(self):
        first = self.tokens.verify_access(self.tokens.issue_access_token('user-1', 'a@example.com'))
        second = self.tokens.verify_access(self.tokens.issue_access_token('user-1', 'a@example.com'))
        self.assertNotEqual(first.jti, second.jti)

    def test_tampered_signature(self):
        token = self.tokens.issue_access_token('user-1', 'a@example.com')
        header, payload, signature = token.split('.')
        flipped = ('A' if signature[0] != 'A' else 'B') + signature[1:]
        with self.assertRaises(TokenSignatureError):
            self.tokens.verify_access(f"{header}.{payload}.{flipped}")

    def test_wrong_secret_is_signature_failure(self):
        token = self.tokens.issue_access_token('user-1', 'a@example.com')
        with self.assertRaises(TokenSignatureError):
            self.tokens.verify(token, 'some-other-secret-value', TokenType.ACCESS)

    def test_expired_token(self):
        issued = datetime.now(timezone.utc) - timedelta(hours=2)
        token = self.tokens.issue_access_token('user-1', 'a@example.com', now=issued)
        with self.assertRaises(TokenExpiredError):
            self.tokens.verify_access(token)

    def test_garbage_is_malformed(self):
        with self.assertRaises(TokenMalformedError):
            self.tokens.verify_access('not-a-jwt')

    def test_refresh_token_cannot_be_used_as_access_token(self):
        refresh = self.tokens.issue_refresh_token('user-1', 'a@example.com')
        # signed with the refresh secret, so the access secret rejects it outright
        with self.assertRaises(TokenSignatureError):
            self.tokens.verify_access(refresh)
        with self.assertRaises(TokenMalformedError):
            self.tokens.verify(refresh, SETTINGS.jwt_refresh_secret, TokenType.ACCESS)

    def test_missing_claims_is_malformed(self):
        now = datetime.now(timezone.utc)
        token = jwt.encode(
            {'sub': 'user-1', 'type': 'access', 'iat': now, 'exp': now + timedelta(minutes=5)},
            SETTINGS.jwt_secret,
            algorithm=JWT_ALGORITHM,
        )
        with self.assertRaises(TokenMalformedError):
            self.tokens.verify_access(token)

    def test_refresh_round_trip(self):
        payload = self.tokens.verify_refresh(self.tokens.issue_refresh_token('user-1', 'a@example.com'))
        self.assertEqual(payload.token_type, TokenType.REFRESH)
        self.assertEqual((payload.expires_at - payload.issued_at).days, 7)


class TestHashToken(unittest.TestCase):

    def test_sha256_hex(self):
        digest = hash_token('abc')
        self.assertEqual(digest, 'ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad')


if __name__ == '__main__':
    unittest.main()
