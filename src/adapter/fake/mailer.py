"""In-memory implementation of MailerPort for testing."""

from dataclasses import dataclass


@dataclass
class SentMail:
    to_email: str
    first_name: str
    reset_url: str
    expires_minutes: int


class FakeMailer:
    def __init__(self, fail: bool = False):
        self.sent: list[SentMail] = []
        self.fail = fail

    def send_password_reset(self, to_email: str, first_name: str, reset_url: str, expires_minutes: int) -> bool:
        if self.fail:
            return False
        self.sent.append(SentMail(to_email, first_name, reset_url, expires_minutes))
        return True

    @property
    def last_token(self) -> str | None:
        """Token at the end of the most recent reset link."""
        if not self.sent:
            return None
        return self.sent[-1].reset_url.rstrip('/').rsplit('/', 1)[-1]
