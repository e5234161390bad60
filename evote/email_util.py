"""
Email utility: async SMTP email delivery using aiosmtplib.

The ``Mailer`` is built once by the app lifespan from ``Settings`` and
injected into the auth routes.  Sending is awaited by the caller: a
registration or login only answers after the SMTP dispatch call returns.
"""

import logging
from email.message import EmailMessage

import aiosmtplib

from .config import Settings

logger = logging.getLogger(__name__)


class Mailer:
    """SMTP sender configured from ``SMTP_*`` settings."""

    def __init__(self, settings: Settings):
        self.settings = settings

    async def send_email(self, to: str, subject: str, body_text: str, body_html: str | None = None):
        """Send an email asynchronously via SMTP."""
        s = self.settings
        msg = EmailMessage()
        msg["From"] = s.smtp_from
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content(body_text)

        if body_html:
            msg.add_alternative(body_html, subtype="html")

        kwargs: dict = {
            "hostname": s.smtp_host,
            "port": s.smtp_port,
            "start_tls": s.smtp_use_tls,
            "timeout": s.smtp_timeout,
        }
        if s.smtp_user and s.smtp_pass:
            kwargs["username"] = s.smtp_user
            kwargs["password"] = s.smtp_pass

        try:
            await aiosmtplib.send(msg, **kwargs)
            logger.info(f"Email sent to {to}: {subject}")
        except Exception as e:
            logger.error(f"Failed to send email to {to}: {e}")
            raise

    async def close(self) -> None:
        # Each send opens its own SMTP session; nothing is held between calls.
        return None


async def send_otp_email(mailer: Mailer, to_email: str, otp_code: str,
                         purpose: str = "Account Verification", expiry_minutes: int = 10):
    """Send a 6-digit OTP code for email verification."""
    subject = "E-Voting OTP Verification"

    body_text = (
        f"E-Voting {purpose}\n\n"
        f"Your OTP is: {otp_code}\n\n"
        f"This OTP will expire in {expiry_minutes} minutes.\n"
        "If you did not request this, please ignore this email."
    )

    body_html = (
        f"<h2>E-Voting {purpose}</h2>"
        f"<p>Your OTP is: <strong>{otp_code}</strong></p>"
        f"<p>This OTP will expire in {expiry_minutes} minutes.</p>"
    )

    await mailer.send_email(to_email, subject, body_text, body_html)
