from __future__ import annotations
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional
from pydantic import BaseModel, Field


class NotificationKind(str, Enum):
    """Trip reminder kinds, in the order the scheduler evaluates them."""
    CHECK_IN_OPENS_SOON = "checkin_opens_soon"
    CHECK_IN_OPEN = "checkin_open"
    SIX_HOUR_REMINDER = "six_hour_reminder"
    DEPARTURE_REMINDER = "departure_reminder"
    TWO_HOUR_REMINDER = "two_hour_reminder"

    @property
    def ledger_field(self) -> str:
        return LEDGER_FIELDS[self]


# Column on the bookings table holding the sent-at marker for each kind
LEDGER_FIELDS: Dict[NotificationKind, str] = {
    NotificationKind.CHECK_IN_OPENS_SOON: "checkin_opens_email_sent_at",
    NotificationKind.CHECK_IN_OPEN: "checkin_email_sent_at",
    NotificationKind.SIX_HOUR_REMINDER: "six_hour_reminder_sent_at",
    NotificationKind.DEPARTURE_REMINDER: "departure_reminder_sent_at",
    NotificationKind.TWO_HOUR_REMINDER: "two_hour_reminder_sent_at",
}


class Contact(BaseModel):
    email: Optional[str] = None
    phone: Optional[str] = None
    sms_opt_in: bool = False

    class Config:
        frozen = True


class RawFlightLeg(BaseModel):
    """Flight leg as stored; scheduled_departure is unvalidated supplier text."""
    airline_iata: Optional[str] = None
    flight_number: Optional[str] = None
    departure_airport: Optional[str] = None
    arrival_airport: Optional[str] = None
    scheduled_departure: Optional[str] = None

    class Config:
        frozen = True


class FlightLeg(BaseModel):
    airline_iata: Optional[str] = None
    flight_number: Optional[str] = None
    departure_airport: Optional[str] = None
    arrival_airport: Optional[str] = None
    departure_at: datetime

    class Config:
        frozen = True


class FlightSummary(BaseModel):
    """Everything a notifier needs to render one reminder."""
    booking_id: str
    booking_reference: str
    airline_iata: Optional[str] = None
    flight_number: Optional[str] = None
    departure_airport: Optional[str] = None
    departure_at: datetime
    check_in_opens_at: datetime

    class Config:
        frozen = True

    @property
    def flight_label(self) -> str:
        parts = [p for p in (self.airline_iata, self.flight_number) if p]
        return " ".join(parts) or "your flight"


class NotificationLedger(BaseModel):
    sent_at: Dict[NotificationKind, Optional[datetime]] = Field(default_factory=dict)

    class Config:
        frozen = True

    def get(self, kind: NotificationKind) -> Optional[datetime]:
        return self.sent_at.get(kind)

    def with_sent(self, kind: NotificationKind, at: datetime) -> "NotificationLedger":
        if self.get(kind) is not None:
            return self
        return NotificationLedger(sent_at={**self.sent_at, kind: at})


class BookingSnapshot(BaseModel):
    """Read-only view of a booking handed to the scheduler by a booking source."""
    id: str
    reference: str
    status: str
    contact: Contact
    supplier_reference: Optional[str] = None
    leg: Optional[RawFlightLeg] = None
    ledger: NotificationLedger = Field(default_factory=NotificationLedger)

    class Config:
        frozen = True


class RunSummary(BaseModel):
    scanned: int = 0
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    ledger_errors: int = 0
    deferred: int = 0
    aborted: bool = False
    error: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), serialization_alias="timestampUTC")

    def to_payload(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)
