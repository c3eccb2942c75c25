"""Tests for SmtpMailer with smtplib patched out."""

import smtplib
import unittest
from unittest.mock import MagicMock, patch

from adapter.smtp.mailer import SmtpMailer

RESET_URL = 'https://auth.example.com/auth/reset-password/abc123'


class TestSmtpMailer(unittest.TestCase):

    def _mailer(self, **overrides):
        config = dict(host='smtp.example.com', port=587, user='bot@example.com', password='app-pass')
        config.update(overrides)
        return SmtpMailer(**config)

    @patch('adapter.smtp.mailer.smtplib.SMTP')
    def test_sends_with_starttls_and_login(self, mock_smtp):
        server = MagicMock()
        mock_smtp.return_value.__enter__.return_value = server

        self.assertTrue(self._mailer().send_password_reset('ada@example.com', 'Ada', RESET_URL, 10))

        mock_smtp.assert_called_once_with('smtp.example.com', 587, timeout=10)
        server.starttls.assert_called_once()
        server.login.assert_called_once_with('bot@example.com', 'app-pass')
        from_addr, to_addr, message = server.sendmail.call_args[0]
        self.assertEqual((from_addr, to_addr), ('bot@example.com', 'ada@example.com'))
        self.assertIn('Password Reset Request', message)
        self.assertIn(RESET_URL, message)

    @patch('adapter.smtp.mailer.smtplib.SMTP')
    def test_html_body_escapes_user_supplied_name(self, mock_smtp):
        server = MagicMock()
        mock_smtp.return_value.__enter__.return_value = server

        self._mailer().send_password_reset('ada@example.com', '<b>Ada</b>', RESET_URL, 10)

        message = server.sendmail.call_args[0][2]
        self.assertIn('<p>Hello &lt;b&gt;Ada&lt;/b&gt;,</p>', message)
        self.assertNotIn('<p>Hello <b>', message)

    @patch('adapter.smtp.mailer.smtplib.SMTP')
    def test_unconfigured_mailer_does_not_send(self, mock_smtp):
        mailer = self._mailer(user=None, password=None)
        self.assertFalse(mailer.send_password_reset('ada@example.com', 'Ada', RESET_URL, 10))
        mock_smtp.assert_not_called()

    @patch('adapter.smtp.mailer.smtplib.SMTP')
    def test_smtp_failure_returns_false(self, mock_smtp):
        server = MagicMock()
        server.login.side_effect = smtplib.SMTPAuthenticationError(535, b'bad credentials')
        mock_smtp.return_value.__enter__.return_value = server

        self.assertFalse(self._mailer().send_password_reset('ada@example.com', 'Ada', RESET_URL, 10))

    @patch('adapter.smtp.mailer.smtplib.SMTP', side_effect=OSError('connection refused'))
    def test_connection_failure_returns_false(self, mock_smtp):
        self.assertFalse(self._mailer().send_password_reset('ada@example.com', 'Ada', RESET_URL, 10))


if __name__ == '__main__':
    unittest.main()
