"""Email capability used by ``email:send`` Tasks."""

from __future__ import annotations

import logging
import smtplib
from dataclasses import dataclass
from email.mime.text import MIMEText
from email.utils import make_msgid
from typing import Protocol

from .errors import CallFailed, CallTimeout

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class EmailMessage:
    to_addresses: tuple[str, ...]
    subject: str
    body: str
    from_address: str
    charset: str = "UTF-8"


class EmailSender(Protocol):
    """Sends one message and returns a provider message id."""

    def send(self, message: EmailMessage) -> str: ...


class SmtpEmailSender:
    def __init__(
        self,
        *,
        host: str,
        port: int = 587,
        username: str = "",
        password: str = "",
        use_tls: bool = True,
        timeout_seconds: float = 30.0,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self._password = password
        self.use_tls = use_tls
        self.timeout_seconds = timeout_seconds

    def send(self, message: EmailMessage) -> str:
        msg = MIMEText(message.body, "plain", message.charset.lower())
        msg["From"] = message.from_address
        msg["To"] = ", ".join(message.to_addresses)
        msg["Subject"] = message.subject
        msg["Message-ID"] = make_msgid()

        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout_seconds) as server:
                if self.use_tls:
                    server.starttls()
                if self.username and self._password:
                    server.login(self.username, self._password)
                server.send_message(msg)
        except TimeoutError as e:
            raise CallTimeout(f"SMTP {self.host}:{self.port} timed out: {e}") from e
        except smtplib.SMTPResponseException as e:
            # 4xx replies are transient, 5xx are permanent.
            raise CallFailed(
                f"SMTP {self.host}:{self.port} rejected message: {e.smtp_code} {e.smtp_error!r}",
                retryable=400 <= e.smtp_code < 500,
                status_code=e.smtp_code,
            ) from e
        except (smtplib.SMTPException, OSError) as e:
            raise CallFailed(f"SMTP {self.host}:{self.port} failed: {e}", retryable=True) from e

        message_id = str(msg["Message-ID"])
        logger.info(
            "Email sent",
            extra={"recipients": len(message.to_addresses), "subject": message.subject},
        )
        return message_id
