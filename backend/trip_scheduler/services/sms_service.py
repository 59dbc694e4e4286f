import asyncio
import logging
from typing import Optional

import requests

from trip_scheduler.core.errors import NotificationError

logger = logging.getLogger(__name__)

TWILIO_API_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"


class SmsSender:
    """Twilio SMS sender over the REST API."""

    def __init__(self, account_sid: Optional[str], auth_token: Optional[str], from_number: Optional[str], timeout: float = 10.0):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.from_number)

    def _send_sync(self, to: str, body: str) -> str:
        url = TWILIO_API_URL.format(sid=self.account_sid)
        try:
            response = requests.post(
                url,
                data={"From": self.from_number, "To": to, "Body": body},
                auth=(self.account_sid, self.auth_token),
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise NotificationError(f"Error sending SMS to {to}: {e}") from e
        sid = response.json().get("sid", "")
        logger.info("SMS sent to %s (sid=%s)", to, sid)
        return sid

    async def send(self, to: str, body: str) -> str:
        if not self.configured:
            raise NotificationError("Twilio is not configured")
        return await asyncio.to_thread(self._send_sync, to, body)
