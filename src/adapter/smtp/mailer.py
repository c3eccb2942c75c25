"""SMTP implementation of MailerPort (STARTTLS on the submission port)."""

import html
import logging
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

logger = logging.getLogger(__name__)

SMTP_TIMEOUT_SECONDS = 10


def _redact_email(email: str) -> str:
    if "@" not in email:
        return "redacted"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


class SmtpMailer:
    def __init__(
        self,
        host: str,
        port: int = 587,
        user: str | None = None,
        password: str | None = None,
        from_email: str | None = None,
        from_name: str = "Account Security",
    ):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.from_email = from_email or user
        self.from_name = from_name

    @property
    def is_configured(self) -> bool:
        return bool(self.host and self.from_email)

    def send_password_reset(self, to_email: str, first_name: str, reset_url: str, expires_minutes: int) -> bool:
        subject = "Password Reset Request"
        text_body = (
            f"Hello {first_name},\n\n"
            "You requested a password reset. Open the link below to choose a new password:\n\n"
            f"{reset_url}\n\n"
            f"This link expires in {expires_minutes} minutes and can be used once.\n"
            "If you did not request a reset, you can ignore this email.\n"
        )
        safe_name = html.escape(first_name)
        safe_url = html.escape(reset_url, quote=True)
        html_body = (
            f"<p>Hello {safe_name},</p>"
            "<p>You requested a password reset. Click the button below to choose a new password:</p>"
            f'<p><a href="{safe_url}" style="padding:10px 20px;background:#4f46e5;color:#fff;'
            'text-decoration:none;border-radius:4px;">Reset Password</a></p>'
            f"<p>This link expires in {expires_minutes} minutes and can be used once.</p>"
            "<p>If you did not request a reset, you can ignore this email.</p>"
        )
        return self._send(to_email, subject, html_body, text_body)

    def _send(self, to_email: str, subject: str, html_body: str, text_body: str) -> bool:
        if not self.is_configured:
            logger.error("Email is not configured, message not sent", extra={
                "to": _redact_email(to_email), "subject": subject,
            })
            return False

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"{self.from_name} <{self.from_email}>"
        msg["To"] = to_email
        msg.attach(MIMEText(text_body, "plain"))
        msg.attach(MIMEText(html_body, "html"))

        try:
            with smtplib.SMTP(self.host, self.port, timeout=SMTP_TIMEOUT_SECONDS) as server:
                server.starttls(context=ssl.create_default_context())
                if self.user and self.password:
                    server.login(self.user, self.password)
                server.sendmail(self.from_email, to_email, msg.as_string())
        except smtplib.SMTPAuthenticationError as e:
            logger.error("SMTP authentication failed", extra={"host": self.host, "error": str(e)})
            return False
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Failed to send email", extra={
                "to": _redact_email(to_email),
                "host": self.host,
                "errorType": type(e).__name__,
                "error": str(e),
            })
            return False

        logger.info("Email sent", extra={"to": _redact_email(to_email), "subject": subject})
        return True
