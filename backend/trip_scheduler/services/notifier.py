"""Delivery of a single trip reminder.

The scheduler talks to a ``Notifier``: ``send`` returns normally on success
and raises ``NotificationError`` on failure. ``TripNotifier`` is the
production implementation: email is the required channel, SMS (opt-in) and
the in-app feed are best-effort extras.
"""
from __future__ import annotations
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol
import asyncio
import logging

from sqlalchemy.orm import Session

from trip_scheduler.core.config import Settings
from trip_scheduler.core.errors import NotificationError
from trip_scheduler.models.notification import Notification
from trip_scheduler.schemas.trip import Contact, FlightSummary, NotificationKind
from trip_scheduler.services.email_service import EmailSender
from trip_scheduler.services.notification_ws import NotificationConnectionManager
from trip_scheduler.services.sms_service import SmsSender
from trip_scheduler.services.templates import render, trip_url

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    async def send(
        self,
        kind: NotificationKind,
        contact: Contact,
        summary: FlightSummary,
        check_in_url: Optional[str] = None,
    ) -> None:
        ...


class InAppRecorder:
    """Stores a copy of each reminder in the notifications feed and pushes it over WebSocket."""

    def __init__(self, session_factory: Callable[[], Session], ws_manager: NotificationConnectionManager):
        self._session_factory = session_factory
        self._ws_manager = ws_manager

    def _store(self, email: str, booking_id: str, kind: NotificationKind, message: str) -> Notification:
        with self._session_factory() as db:
            n = Notification(user_email=email.lower(), booking_id=booking_id, type=kind.value, message=message[:1024], created_at=datetime.now(timezone.utc))
            db.add(n)
            db.commit()
            db.refresh(n)
            db.expunge(n)
            return n

    async def record(self, email: str, booking_id: str, kind: NotificationKind, message: str) -> None:
        n = await asyncio.to_thread(self._store, email, booking_id, kind, message)
        await self._ws_manager.send_to_user(email, {
            "type": "notification",
            "data": {"id": n.id, "type": n.type, "message": n.message, "created_at": n.created_at.isoformat(), "read": False},
        })


class TripNotifier:
    def __init__(
        self,
        email: EmailSender,
        app_url: str,
        sms: Optional[SmsSender] = None,
        in_app: Optional[InAppRecorder] = None,
    ):
        self.email = email
        self.app_url = app_url
        self.sms = sms
        self.in_app = in_app

    async def send(
        self,
        kind: NotificationKind,
        contact: Contact,
        summary: FlightSummary,
        check_in_url: Optional[str] = None,
    ) -> None:
        if not contact.email:
            raise NotificationError(f"booking {summary.booking_id} has no email address")
        link = trip_url(self.app_url, summary.booking_id)
        message = render(kind, summary, link, check_in_url)

        await self.email.send(contact.email, message.subject, message.text, message.html)

        if contact.sms_opt_in and contact.phone and self.sms is not None and self.sms.configured:
            try:
                await self.sms.send(contact.phone, message.sms)
            except NotificationError as e:
                # Email already went out; SMS is a courtesy copy
                logger.warning("SMS copy of %s failed for booking %s: %s", kind.value, summary.booking_id, e)

        if self.in_app is not None:
            try:
                await self.in_app.record(contact.email, summary.booking_id, kind, message.subject)
            except Exception:
                # Email already went out; a failed feed copy must not trigger a resend
                logger.warning("In-app copy of %s failed for booking %s", kind.value, summary.booking_id, exc_info=True)


def build_trip_notifier(settings: Settings, session_factory: Optional[Callable[[], Session]] = None, ws_manager: Optional[NotificationConnectionManager] = None) -> TripNotifier:
    email = EmailSender(
        smtp_host=settings.smtp_host,
        smtp_port=settings.smtp_port,
        username=settings.smtp_username,
        password=settings.smtp_password,
        from_address=settings.email_from,
        timeout=settings.notify_timeout_seconds,
    )
    sms = SmsSender(settings.twilio_sid, settings.twilio_token, settings.twilio_phone) if settings.sms_configured else None
    in_app = InAppRecorder(session_factory, ws_manager) if session_factory is not None and ws_manager is not None else None
    return TripNotifier(email=email, app_url=settings.app_url, sms=sms, in_app=in_app)
