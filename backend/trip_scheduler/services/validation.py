from datetime import datetime, timezone
from typing import Optional

from trip_scheduler.core.errors import BookingValidationError
from trip_scheduler.schemas.trip import BookingSnapshot, FlightLeg


def parse_instant(raw: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 instant into an aware UTC datetime, or None if unusable.

    Strings without an offset are read as UTC, matching how timestamps are stored.
    """
    if not raw or not raw.strip():
        return None
    text = raw.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)
    except (ValueError, OverflowError):
        # OverflowError: offset pushes the instant outside datetime range
        return None


def validate_booking(booking: BookingSnapshot) -> FlightLeg:
    if booking.leg is None:
        raise BookingValidationError(booking.id, "no flight leg")
    if not booking.contact.email:
        raise BookingValidationError(booking.id, "no passenger email")
    departure = parse_instant(booking.leg.scheduled_departure)
    if departure is None:
        raise BookingValidationError(booking.id, f"unparsable departure {booking.leg.scheduled_departure!r}")
    return FlightLeg(
        airline_iata=booking.leg.airline_iata,
        flight_number=booking.leg.flight_number,
        departure_airport=booking.leg.departure_airport,
        arrival_airport=booking.leg.arrival_airport,
        departure_at=departure,
    )
