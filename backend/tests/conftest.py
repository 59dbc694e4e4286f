import asyncio
from datetime import datetime, timezone
from typing import Dict, List, Optional, Set

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from trip_scheduler.core.errors import NotificationError
from trip_scheduler.models import Base
from trip_scheduler.schemas.trip import (
    BookingSnapshot,
    Contact,
    FlightSummary,
    NotificationKind,
    NotificationLedger,
    RawFlightLeg,
)
from trip_scheduler.services.booking_store import InMemoryBookingStore
from trip_scheduler.services.reminder_scheduler import TripNotificationScheduler

DEPARTURE = datetime(2025, 3, 10, 10, 0, tzinfo=timezone.utc)


def utc(text: str) -> datetime:
    return datetime.fromisoformat(text.replace("Z", "+00:00"))


def make_booking(
    booking_id: str = "bk-1",
    departure: Optional[str] = "2025-03-10T10:00:00Z",
    status: str = "ticketed",
    email: Optional[str] = "traveller@example.com",
    airline: str = "QF",
    ledger: Optional[Dict[NotificationKind, datetime]] = None,
    with_leg: bool = True,
) -> BookingSnapshot:
    leg = RawFlightLeg(
        airline_iata=airline,
        flight_number="QF1",
        departure_airport="SYD",
        arrival_airport="LHR",
        scheduled_departure=departure,
    ) if with_leg else None
    return BookingSnapshot(
        id=booking_id,
        reference=f"REF-{booking_id}",
        status=status,
        supplier_reference="PNR123",
        contact=Contact(email=email, phone="+61400000000", sms_opt_in=True),
        leg=leg,
        ledger=NotificationLedger(sent_at=dict(ledger or {})),
    )


class RecordingNotifier:
    """Notifier stub that records calls and fails for selected kinds or bookings."""

    def __init__(self, fail_kinds: Set[NotificationKind] = frozenset(), fail_bookings: Set[str] = frozenset(), delay: float = 0.0):
        self.fail_kinds = set(fail_kinds)
        self.fail_bookings = set(fail_bookings)
        self.delay = delay
        self.calls: List[tuple] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def send(self, kind: NotificationKind, contact: Contact, summary: FlightSummary, check_in_url: Optional[str] = None) -> None:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if kind in self.fail_kinds or summary.booking_id in self.fail_bookings:
                raise NotificationError(f"provider rejected {kind.value}")
            self.calls.append((summary.booking_id, kind, check_in_url))
        finally:
            self.in_flight -= 1

    def kinds_for(self, booking_id: str) -> List[NotificationKind]:
        return [k for b, k, _ in self.calls if b == booking_id]


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def store():
    return InMemoryBookingStore()


@pytest.fixture
def scheduler(store, notifier):
    return TripNotificationScheduler(store, store, notifier, max_concurrency=4, notify_timeout=1.0, ledger_timeout=1.0)


def run(scheduler, now):
    return asyncio.run(scheduler.run_once(now))


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    Base.metadata.drop_all(bind=engine)
    engine.dispose()
