"""Unit tests for API dependencies: repository wiring and client address resolution."""

import unittest
from unittest.mock import patch, MagicMock

from fastapi import HTTPException

from api.dependencies import client_ip, get_mailer, get_user_repo
from adapter.mongodb.user_repository import MongoUserRepository
from adapter.smtp.mailer import SmtpMailer
from utils.config import Settings

SETTINGS = Settings(jwt_secret='a' * 32, jwt_refresh_secret='b' * 32)


def _request(host='10.0.0.9', forwarded=None):
    request = MagicMock()
    request.client.host = host
    request.headers = {'x-forwarded-for': forwarded} if forwarded else {}
    return request


class TestGetUserRepo(unittest.TestCase):

    @patch('api.dependencies.get_mongodb_client')
    def test_returns_mongo_repository_when_connected(self, mock_get_client):
        mock_client = MagicMock()
        mock_client.__getitem__.return_value = MagicMock()
        mock_get_client.return_value = mock_client

        self.assertIsInstance(get_user_repo(), MongoUserRepository)

    @patch('api.dependencies.get_mongodb_client')
    def test_raises_503_when_mongodb_unavailable(self, mock_get_client):
        mock_get_client.return_value = None

        with self.assertRaises(HTTPException) as context:
            get_user_repo()

        self.assertEqual(context.exception.status_code, 503)
        self.assertEqual(context.exception.detail, "Database unavailable")


class TestClientIp(unittest.TestCase):

    def test_socket_address_by_default(self):
        request = _request(forwarded='1.2.3.4')
        self.assertEqual(client_ip(request, SETTINGS), '10.0.0.9')

    def test_first_forwarded_hop_behind_trusted_proxy(self):
        settings = Settings(jwt_secret='a' * 32, jwt_refresh_secret='b' * 32, trust_proxy=True)
        request = _request(forwarded=' 1.2.3.4 , 10.0.0.1')
        self.assertEqual(client_ip(request, settings), '1.2.3.4')

    def test_no_client(self):
        request = _request()
        request.client = None
        self.assertEqual(client_ip(request, SETTINGS), 'unknown')


class TestGetMailer(unittest.TestCase):

    def test_mailer_uses_settings(self):
        settings = Settings(
            jwt_secret='a' * 32, jwt_refresh_secret='b' * 32,
            email_host='smtp.example.com', email_port=2525, email_user='bot@example.com',
        )
        mailer = get_mailer(settings)
        self.assertIsInstance(mailer, SmtpMailer)
        self.assertEqual((mailer.host, mailer.port), ('smtp.example.com', 2525))
        self.assertEqual(mailer.from_email, 'bot@example.com')


if __name__ == '__main__':
    unittest.main()
