"""Exception hierarchy for the trip notification scheduler.

Severity follows the class: validation problems only skip a booking,
notifier problems are retried on a later run, ledger write problems risk a
duplicate reminder, and booking source problems mean the whole run did nothing.
"""


class TripSchedulerError(Exception):
    """Base class for all scheduler errors."""


class BookingValidationError(TripSchedulerError):
    """Booking cannot be scheduled this run (missing leg, bad departure, no email)."""

    def __init__(self, booking_id: str, reason: str):
        super().__init__(f"booking {booking_id}: {reason}")
        self.booking_id = booking_id
        self.reason = reason


class NotificationError(TripSchedulerError):
    """Delivery of one reminder failed (network, provider rejection)."""


class LedgerWriteError(TripSchedulerError):
    """The sent-at marker could not be persisted after a successful send."""


class BookingSourceError(TripSchedulerError):
    """The candidate query itself failed; the run cannot make progress."""
