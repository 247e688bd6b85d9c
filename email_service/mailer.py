"""SMTP mail transport.

Why is this its own module?
- Keeps the notification handlers free of transport details.
- Tests swap in any object with the same `send()` signature.

We open one SMTP connection per message. Throughput is bounded by the
consumer loop anyway, since messages are processed one at a time.
"""

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from typing import Protocol

from .config import SMTP_HOST, SMTP_PASSWORD, SMTP_PORT, SMTP_STARTTLS, SMTP_TIMEOUT, SMTP_USER

logger = logging.getLogger(__name__)


class Mailer(Protocol):
    def send(self, to: str, from_addr: str, subject: str, text: str) -> None:
        """Deliver one plain-text message. Raises on failure."""


class SmtpMailer:
    """Sends plain-text mail through an SMTP relay."""

    def __init__(
        self,
        host: str = SMTP_HOST,
        port: int = SMTP_PORT,
        username: str = SMTP_USER,
        password: str = SMTP_PASSWORD,
        starttls: bool = SMTP_STARTTLS,
        timeout: float = SMTP_TIMEOUT,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.starttls = starttls
        self.timeout = timeout

    def send(self, to: str, from_addr: str, subject: str, text: str) -> None:
        """Send one message.

        Raises:
            smtplib.SMTPException or OSError on connection/delivery failures.
        """
        message = EmailMessage()
        message["From"] = from_addr
        message["To"] = to
        message["Subject"] = subject
        message.set_content(text)

        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
            if self.starttls:
                smtp.starttls()
            if self.username:
                smtp.login(self.username, self.password)
            smtp.send_message(message)
        logger.info("[Mailer] Sent %r to %s", subject, to)
