"""Port definition for outbound mail."""

from typing import Protocol


class MailerPort(Protocol):
    def send_password_reset(self, to_email: str, first_name: str, reset_url: str, expires_minutes: int) -> bool:
        """Deliver a one-time reset link. Return False if delivery failed."""
        ...
