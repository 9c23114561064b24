"""Registration e-mail sent after a merchant is onboarded.

Sending is fire-and-forget: it runs after the response in a worker thread,
and a failure is logged and dropped. It never affects the sync result.
"""

from __future__ import annotations

import smtplib
from email.mime.text import MIMEText
from typing import Optional

from loguru import logger

from serviceability.core.concurrency import run_in_thread_notify
from serviceability.core.config import settings

SUBJECT = "Merchant Onboarded on ONDC!"


class RegistrationMailer:
    """Sends the onboarding confirmation over SMTP with STARTTLS."""

    def __init__(
        self,
        smtp_host: str,
        smtp_username: str,
        smtp_key: str,
        smtp_port: int = 587,
        timeout: int = 10,
    ):
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_username = smtp_username
        self.smtp_key = smtp_key
        self.timeout = timeout

    @classmethod
    def from_settings(cls) -> "RegistrationMailer":
        return cls(
            smtp_host=settings.SMTP_HOST or "",
            smtp_username=settings.SMTP_USERNAME or "",
            smtp_key=settings.SMTP_KEY or "",
            smtp_port=settings.SMTP_PORT,
            timeout=settings.SMTP_TIMEOUT_SEC,
        )

    def build_message(self, to_address: str, merchant_id: int) -> MIMEText:
        msg = MIMEText(
            f"Your registration was successful with merchant id {merchant_id}", "plain"
        )
        msg["Subject"] = SUBJECT
        msg["From"] = self.smtp_username
        msg["To"] = to_address
        return msg

    def _deliver(self, msg: MIMEText) -> None:
        with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout) as server:
            server.starttls()
            server.login(self.smtp_username, self.smtp_key)
            server.send_message(msg)

    async def send_registration(self, to_address: str, merchant_id: int) -> bool:
        if not to_address:
            return False
        msg = self.build_message(to_address, merchant_id)
        try:
            await run_in_thread_notify(self._deliver, msg)
        except (smtplib.SMTPException, OSError) as exc:
            logger.bind(merchant_id=merchant_id, error=str(exc)).warning(
                "registration_email_failed"
            )
            return False
        logger.bind(merchant_id=merchant_id).info("registration_email_sent")
        return True


def get_mailer() -> Optional[RegistrationMailer]:
    """FastAPI dependency: a mailer when notifications are enabled and SMTP is configured."""

    if settings.NOTIFY_ON_CREATE and settings.smtp_configured:
        return RegistrationMailer.from_settings()
    return None
