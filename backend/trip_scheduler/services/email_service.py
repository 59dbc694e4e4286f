"""SMTP email delivery for trip reminders.

Typical usage:
    sender = EmailSender(smtp_host="smtp.gmail.com", smtp_port=587,
                         username="trips@example.com", password="app-password")
    await sender.send(to="traveller@example.com", subject="Reminder", body="...", html="<p>...</p>")
"""

import asyncio
import logging
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from trip_scheduler.core.errors import NotificationError

logger = logging.getLogger(__name__)


class EmailSender:
    """SMTP sender with SSL (port 465) or STARTTLS support.

    Args:
        smtp_host: SMTP server hostname.
        smtp_port: 465 for implicit SSL, anything else uses STARTTLS.
        username: SMTP login.
        password: SMTP password or app password.
        from_address: Envelope/From address; defaults to ``username``.
        timeout: Socket timeout in seconds for every SMTP operation.
    """

    def __init__(
        self,
        smtp_host: str,
        smtp_port: int,
        username: Optional[str],
        password: Optional[str],
        from_address: Optional[str] = None,
        timeout: float = 20.0,
    ):
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.username = username
        self.password = password
        self.from_address = from_address or username
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.username and self.password and self.from_address)

    def _build_message(self, to: str, subject: str, body: str, html: Optional[str] = None) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["From"] = self.from_address or ""
        msg["To"] = to
        msg["Subject"] = subject
        msg.attach(MIMEText(body, "plain", "utf-8"))
        if html:
            # Last part is the preferred rendering
            msg.attach(MIMEText(html, "html", "utf-8"))
        return msg

    def _send_sync(self, to: str, subject: str, body: str, html: Optional[str] = None) -> None:
        msg = self._build_message(to, subject, body, html)
        context = ssl.create_default_context()
        try:
            if self.smtp_port == 465:
                with smtplib.SMTP_SSL(self.smtp_host, self.smtp_port, context=context, timeout=self.timeout) as server:
                    server.login(self.username, self.password)
                    server.send_message(msg)
            else:
                with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout) as server:
                    server.ehlo()
                    server.starttls(context=context)
                    server.ehlo()
                    server.login(self.username, self.password)
                    server.send_message(msg)
        except smtplib.SMTPAuthenticationError as e:
            raise NotificationError(f"SMTP auth failed, check username/app password: {e}") from e
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationError(f"Failed to send email to {to}: {e}") from e
        logger.info("Email sent to %s: %s", to, subject)

    async def send(self, to: str, subject: str, body: str, html: Optional[str] = None) -> None:
        """Send one email; raises NotificationError on any delivery failure."""
        if not self.configured:
            raise NotificationError("SMTP credentials are not configured")
        await asyncio.to_thread(self._send_sync, to, subject, body, html)
