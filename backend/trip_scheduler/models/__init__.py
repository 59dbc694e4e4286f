from trip_scheduler.models.base import Base  # noqa: F401
from trip_scheduler.models.booking import Booking  # noqa: F401
from trip_scheduler.models.flight_leg import FlightLeg  # noqa: F401
from trip_scheduler.models.notification import Notification  # noqa: F401
