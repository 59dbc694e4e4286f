from __future__ import annotations
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, Optional, TypeVar
import asyncio
import logging
import time

from trip_scheduler.core.config import Settings
from trip_scheduler.core.errors import BookingSourceError, BookingValidationError, LedgerWriteError, NotificationError
from trip_scheduler.schemas.trip import BookingSnapshot, FlightSummary, NotificationKind, RunSummary
from trip_scheduler.services.booking_store import BookingSource, LedgerWriter
from trip_scheduler.services.checkin_urls import resolve_check_in_url
from trip_scheduler.services.dispatch_gate import should_fire
from trip_scheduler.services.notifier import Notifier
from trip_scheduler.services.validation import validate_booking
from trip_scheduler.services.windows import check_in_opens_at, compute_windows

logger = logging.getLogger(__name__)

JOB_NAME = "trip-notifications"
STARTUP_DELAY_SECONDS = 3

T = TypeVar("T")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TripNotificationScheduler:
    """One pass over all active flight bookings, dispatching due reminders.

    Bookings are processed concurrently (bounded by ``max_concurrency``);
    the five kinds of one booking are always evaluated sequentially in
    table order. A kind's ledger field is written only after its notifier
    call succeeded.
    """

    def __init__(
        self,
        source: BookingSource,
        ledger: LedgerWriter,
        notifier: Notifier,
        *,
        max_concurrency: int = 8,
        notify_timeout: float = 20.0,
        ledger_timeout: float = 10.0,
        source_timeout: float = 30.0,
        run_deadline: Optional[float] = 600.0,
        check_in_url_resolver: Callable[[Optional[str], Optional[str]], Optional[str]] = resolve_check_in_url,
        clock: Callable[[], datetime] = _utcnow,
    ):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.source = source
        self.ledger = ledger
        self.notifier = notifier
        self.max_concurrency = max_concurrency
        self.notify_timeout = notify_timeout
        self.ledger_timeout = ledger_timeout
        self.source_timeout = source_timeout
        self.run_deadline = run_deadline
        self._resolve_check_in_url = check_in_url_resolver
        self._clock = clock

    async def run_once(self, now: Optional[datetime] = None) -> RunSummary:
        now = now or self._clock()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        summary = RunSummary(timestamp=now)
        started = time.monotonic()

        try:
            bookings = await asyncio.wait_for(asyncio.to_thread(self.source.fetch_candidates, now), timeout=self.source_timeout)
        except BookingSourceError as e:
            logger.critical("Trip notification run aborted, booking source failed: %s", e)
            summary.aborted, summary.error = True, str(e)
            return summary
        except asyncio.TimeoutError:
            logger.critical("Trip notification run aborted, booking source timed out after %.1fs", self.source_timeout)
            summary.aborted, summary.error = True, "booking source timed out"
            return summary
        except Exception as e:
            logger.critical("Trip notification run aborted, unexpected booking source error", exc_info=True)
            summary.aborted, summary.error = True, f"booking source error: {e}"
            return summary

        summary.scanned = len(bookings)
        semaphore = asyncio.Semaphore(self.max_concurrency)
        deadline = None if self.run_deadline is None else started + self.run_deadline

        async def worker(booking: BookingSnapshot) -> None:
            async with semaphore:
                if deadline is not None and time.monotonic() >= deadline:
                    summary.deferred += 1
                    return
                await self._process_booking(booking, now, summary)

        results = await asyncio.gather(*(worker(b) for b in bookings), return_exceptions=True)
        for booking, result in zip(bookings, results):
            if isinstance(result, Exception):
                logger.error("Unexpected error processing booking %s", booking.id, exc_info=result)
                summary.skipped += 1

        if summary.deferred:
            logger.warning("Run deadline of %.0fs reached, %d bookings deferred to next run", self.run_deadline, summary.deferred)
        logger.info(
            "Trip notification run done: scanned=%d sent=%d failed=%d skipped=%d ledger_errors=%d deferred=%d",
            summary.scanned, summary.sent, summary.failed, summary.skipped, summary.ledger_errors, summary.deferred,
        )
        return summary

    async def _process_booking(self, booking: BookingSnapshot, now: datetime, summary: RunSummary) -> None:
        try:
            leg = validate_booking(booking)
        except BookingValidationError as e:
            logger.warning("Skipping booking %s: %s", booking.id, e.reason)
            summary.skipped += 1
            return

        flight = FlightSummary(
            booking_id=booking.id,
            booking_reference=booking.reference,
            airline_iata=leg.airline_iata,
            flight_number=leg.flight_number,
            departure_airport=leg.departure_airport,
            departure_at=leg.departure_at,
            check_in_opens_at=check_in_opens_at(leg.departure_at),
        )
        check_in_url = self._resolve_check_in_url(leg.airline_iata, booking.supplier_reference)

        for kind, window in compute_windows(leg.departure_at).items():
            if should_fire(now, window, booking.ledger.get(kind)):
                await self._dispatch(booking, kind, flight, check_in_url, now, summary)

    async def _dispatch(
        self,
        booking: BookingSnapshot,
        kind: NotificationKind,
        flight: FlightSummary,
        check_in_url: Optional[str],
        now: datetime,
        summary: RunSummary,
    ) -> None:
        try:
            await asyncio.wait_for(self.notifier.send(kind, booking.contact, flight, check_in_url), timeout=self.notify_timeout)
        except asyncio.TimeoutError:
            logger.error("Notifier timed out after %.1fs for booking %s kind %s", self.notify_timeout, booking.id, kind.value)
            summary.failed += 1
            return
        except NotificationError as e:
            logger.error("Failed to send %s for booking %s: %s", kind.value, booking.id, e)
            summary.failed += 1
            return
        except Exception:
            logger.exception("Notifier raised unexpectedly for booking %s kind %s", booking.id, kind.value)
            summary.failed += 1
            return

        summary.sent += 1
        try:
            # A timed-out write may still land later; the conditional update keeps it harmless
            written = await asyncio.wait_for(asyncio.to_thread(self.ledger.mark_sent, booking.id, kind, now), timeout=self.ledger_timeout)
        except (LedgerWriteError, asyncio.TimeoutError) as e:
            logger.critical("ledger_write_failed booking=%s kind=%s: %s (reminder may be sent again next run)", booking.id, kind.value, str(e) or "timeout")
            summary.ledger_errors += 1
            return
        if not written:
            logger.error("ledger_write_noop booking=%s kind=%s: marker already set or booking missing", booking.id, kind.value)
            summary.ledger_errors += 1
            return
        logger.info("Sent %s for booking %s", kind.value, booking.id)


class JobLock:
    """Named mutual exclusion so two runs of the same job never overlap in this process."""

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}

    async def run_exclusive(self, name: str, func: Callable[[], Awaitable[T]]) -> Optional[T]:
        """Run ``func`` under the named lock; returns None without running if already held."""
        lock = self._locks.setdefault(name, asyncio.Lock())
        if lock.locked():
            logger.warning("Job %s is already running, skipping this trigger", name)
            return None
        async with lock:
            return await func()


job_lock = JobLock()


def build_scheduler(settings: Settings, session_factory=None, notifier: Optional[Notifier] = None) -> TripNotificationScheduler:
    """Wire the SQL-backed scheduler from settings."""
    from trip_scheduler.db.session import get_session_factory
    from trip_scheduler.services.booking_store import SqlBookingSource, SqlLedgerWriter
    from trip_scheduler.services.notification_ws import manager as ws_manager
    from trip_scheduler.services.notifier import build_trip_notifier

    session_factory = session_factory or get_session_factory()
    if notifier is None:
        notifier = build_trip_notifier(settings, session_factory=session_factory, ws_manager=ws_manager)
    return TripNotificationScheduler(
        source=SqlBookingSource(session_factory, settings.active_statuses, settings.departure_grace),
        ledger=SqlLedgerWriter(session_factory),
        notifier=notifier,
        max_concurrency=settings.max_concurrency,
        notify_timeout=settings.notify_timeout_seconds,
        ledger_timeout=settings.ledger_timeout_seconds,
        source_timeout=settings.source_timeout_seconds,
        run_deadline=settings.run_deadline_seconds,
    )


async def trip_notification_loop(scheduler: TripNotificationScheduler, interval_seconds: int, lock: JobLock = job_lock):
    """In-process periodic trigger; an external cron hitting the endpoint works the same way."""
    await asyncio.sleep(STARTUP_DELAY_SECONDS)
    while True:
        try:
            await lock.run_exclusive(JOB_NAME, scheduler.run_once)
        except Exception:
            logger.exception("Trip notification loop iteration failed")
        await asyncio.sleep(interval_seconds)
