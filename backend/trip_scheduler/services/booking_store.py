"""Booking source and ledger writer used by the trip notification scheduler.

The scheduler only depends on the two small protocols below. The SQL
implementations read and write the ``bookings`` table; the in-memory store
backs tests and local dry runs.
"""
from __future__ import annotations
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterable, List, Optional, Protocol, Sequence, Tuple
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, contains_eager

from trip_scheduler.core.errors import BookingSourceError, LedgerWriteError
from trip_scheduler.models.booking import Booking
from trip_scheduler.schemas.trip import (
    BookingSnapshot,
    Contact,
    NotificationKind,
    NotificationLedger,
    RawFlightLeg,
)
from trip_scheduler.services.validation import parse_instant

logger = logging.getLogger(__name__)


class BookingSource(Protocol):
    def fetch_candidates(self, now: datetime) -> List[BookingSnapshot]:
        ...


class LedgerWriter(Protocol):
    def mark_sent(self, booking_id: str, kind: NotificationKind, at: datetime) -> bool:
        """Set the sent-at marker if still empty. Returns False when nothing changed."""
        ...


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _departed_before(leg: Optional[RawFlightLeg], cutoff: datetime) -> bool:
    # Unparsable departures are kept so the run can report them as skipped
    if leg is None:
        return False
    departure = parse_instant(leg.scheduled_departure)
    return departure is not None and departure < cutoff


def snapshot_from_row(row: Booking) -> BookingSnapshot:
    leg = None
    if row.flight_leg is not None:
        leg = RawFlightLeg(
            airline_iata=row.flight_leg.airline_iata,
            flight_number=row.flight_leg.flight_number,
            departure_airport=row.flight_leg.departure_airport,
            arrival_airport=row.flight_leg.arrival_airport,
            scheduled_departure=row.flight_leg.scheduled_departure,
        )
    ledger = NotificationLedger(sent_at={kind: _as_utc(getattr(row, kind.ledger_field)) for kind in NotificationKind})
    return BookingSnapshot(
        id=row.id,
        reference=row.booking_reference or row.id,
        status=row.status,
        supplier_reference=row.supplier_reference,
        contact=Contact(email=row.passenger_email, phone=row.phone_number, sms_opt_in=bool(row.sms_opt_in)),
        leg=leg,
        ledger=ledger,
    )


class SqlBookingSource:
    def __init__(self, session_factory: Callable[[], Session], active_statuses: Sequence[str], departure_grace: timedelta):
        self._session_factory = session_factory
        self._active_statuses = [s.lower() for s in active_statuses]
        self._departure_grace = departure_grace

    def fetch_candidates(self, now: datetime) -> List[BookingSnapshot]:
        cutoff = now - self._departure_grace
        try:
            with self._session_factory() as db:
                rows = (
                    db.query(Booking)
                    .join(Booking.flight_leg)
                    .options(contains_eager(Booking.flight_leg))
                    .filter(Booking.status.in_(self._active_statuses))
                    .order_by(Booking.id)
                    .all()
                )
                snapshots = [snapshot_from_row(r) for r in rows]
        except SQLAlchemyError as e:
            raise BookingSourceError(f"candidate query failed: {e}") from e
        candidates = [b for b in snapshots if not _departed_before(b.leg, cutoff)]
        logger.debug("Fetched %d candidate bookings (%d already departed)", len(candidates), len(snapshots) - len(candidates))
        return candidates


class SqlLedgerWriter:
    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def mark_sent(self, booking_id: str, kind: NotificationKind, at: datetime) -> bool:
        column = getattr(Booking, kind.ledger_field)
        with self._session_factory() as db:
            try:
                # Conditional on NULL so an existing marker is never overwritten
                updated = (
                    db.query(Booking)
                    .filter(Booking.id == booking_id, column.is_(None))
                    .update({column: at}, synchronize_session=False)
                )
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                raise LedgerWriteError(f"could not persist {kind.value} for booking {booking_id}: {e}") from e
        return updated == 1


class InMemoryBookingStore:
    """Booking source and ledger writer over plain snapshots."""

    def __init__(self, bookings: Iterable[BookingSnapshot] = (), active_statuses: Sequence[str] = ("paid", "booked", "ticketed"), departure_grace: timedelta = timedelta(hours=1)):
        self._bookings: Dict[str, BookingSnapshot] = {b.id: b for b in bookings}
        self._active_statuses = {s.lower() for s in active_statuses}
        self._departure_grace = departure_grace
        self.writes: List[Tuple[str, NotificationKind, datetime]] = []

    def add(self, booking: BookingSnapshot) -> None:
        self._bookings[booking.id] = booking

    def get(self, booking_id: str) -> BookingSnapshot:
        return self._bookings[booking_id]

    def fetch_candidates(self, now: datetime) -> List[BookingSnapshot]:
        cutoff = now - self._departure_grace
        return [
            b for b in self._bookings.values()
            if b.status.lower() in self._active_statuses and b.leg is not None and not _departed_before(b.leg, cutoff)
        ]

    def mark_sent(self, booking_id: str, kind: NotificationKind, at: datetime) -> bool:
        booking = self._bookings.get(booking_id)
        if booking is None or booking.ledger.get(kind) is not None:
            return False
        self._bookings[booking_id] = booking.model_copy(update={"ledger": booking.ledger.with_sent(kind, at)})
        self.writes.append((booking_id, kind, at))
        return True
