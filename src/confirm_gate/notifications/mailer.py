"""Outbound e-mail for PIN recovery."""

from __future__ import annotations

import asyncio
import smtplib
from abc import ABC, abstractmethod
from email.message import EmailMessage

from confirm_gate.core.exceptions import DeliveryError
from confirm_gate.core.structured_logger import get_logger

logger = get_logger("Mailer")


class Mailer(ABC):
    """Capability to deliver a plain-text message. Failures raise ``DeliveryError``."""

    @abstractmethod
    async def send(self, to: str, subject: str, body: str) -> None:
        ...


class SmtpMailer(Mailer):
    """Sends through an SMTP relay; the blocking client runs in a worker thread."""

    def __init__(
        self,
        host: str,
        port: int = 587,
        username: str | None = None,
        password: str | None = None,
        sender: str | None = None,
        use_tls: bool = True,
        timeout: float = 30.0,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender or username or f"confirm-gate@{host}"
        self.use_tls = use_tls
        self.timeout = timeout

    def _build_message(self, to: str, subject: str, body: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = to
        message["Subject"] = subject
        message.set_content(body)
        return message

    def _send_sync(self, message: EmailMessage) -> None:
        if self.port == 465:
            client: smtplib.SMTP = smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout)
        else:
            client = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
        with client:
            if self.use_tls and self.port != 465:
                client.starttls()
            if self.username and self.password:
                client.login(self.username, self.password)
            client.send_message(message)

    async def send(self, to: str, subject: str, body: str) -> None:
        message = self._build_message(to, subject, body)
        try:
            await asyncio.to_thread(self._send_sync, message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Mail delivery failed via %s:%d: %s", self.host, self.port, e)
            raise DeliveryError("failed to send email", details={"reason": type(e).__name__}) from e
        logger.info("Mail delivered", host=self.host, subject=subject)
