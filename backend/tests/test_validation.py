from datetime import timezone

import pytest

from trip_scheduler.core.errors import BookingValidationError
from trip_scheduler.services.validation import parse_instant, validate_booking

from tests.conftest import DEPARTURE, make_booking


@pytest.mark.parametrize("raw", [
    "2025-03-10T10:00:00Z",
    "2025-03-10T10:00:00.000Z",
    "2025-03-10T21:00:00+11:00",
    "2025-03-10T10:00:00",
])
def test_parse_instant_normalizes_to_utc(raw):
    assert parse_instant(raw) == DEPARTURE


@pytest.mark.parametrize("raw", [None, "", "   ", "TBA", "2025-13-45T99:00:00Z", "9999-12-31T23:30:00-05:00"])
def test_parse_instant_rejects_garbage(raw):
    assert parse_instant(raw) is None


def test_validate_booking_returns_flight_leg():
    leg = validate_booking(make_booking())
    assert leg.departure_at == DEPARTURE
    assert leg.departure_at.tzinfo == timezone.utc
    assert leg.airline_iata == "QF"


@pytest.mark.parametrize("kwargs, reason", [
    ({"with_leg": False}, "no flight leg"),
    ({"email": None}, "no passenger email"),
    ({"departure": "soon"}, "unparsable departure 'soon'"),
])
def test_validate_booking_rejects_unusable_bookings(kwargs, reason):
    with pytest.raises(BookingValidationError) as exc:
        validate_booking(make_booking("bk-x", **kwargs))
    assert exc.value.booking_id == "bk-x"
    assert exc.value.reason == reason
