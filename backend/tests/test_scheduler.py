import asyncio
from datetime import timedelta

from trip_scheduler.core.errors import BookingSourceError, LedgerWriteError
from trip_scheduler.schemas.trip import NotificationKind
from trip_scheduler.services.booking_store import InMemoryBookingStore
from trip_scheduler.services.reminder_scheduler import JobLock, TripNotificationScheduler

from tests.conftest import DEPARTURE, RecordingNotifier, make_booking, run, utc

K = NotificationKind


def ledger_of(store, booking_id="bk-1"):
    return {kind: store.get(booking_id).ledger.get(kind) for kind in NotificationKind}


def test_repeated_runs_send_each_kind_once(store, notifier, scheduler):
    store.add(make_booking())
    now = DEPARTURE - timedelta(hours=60)
    summaries = [run(scheduler, now) for _ in range(5)]

    assert notifier.kinds_for("bk-1") == [K.CHECK_IN_OPENS_SOON]
    assert len(store.writes) == 1
    assert [s.sent for s in summaries] == [1, 0, 0, 0, 0]


def test_closed_window_is_never_backfilled(store, notifier, scheduler):
    store.add(make_booking())
    # 47h before departure: the opens-soon window closed an hour ago without firing
    for hours in (47, 30, 10):
        run(scheduler, DEPARTURE - timedelta(hours=hours))
    assert K.CHECK_IN_OPENS_SOON not in notifier.kinds_for("bk-1")
    assert ledger_of(store)[K.CHECK_IN_OPENS_SOON] is None
    assert notifier.kinds_for("bk-1") == [K.CHECK_IN_OPEN]


def test_scenario_check_in_opens_soon_then_open_then_departure():
    store = InMemoryBookingStore([make_booking()])
    notifier = RecordingNotifier()
    scheduler = TripNotificationScheduler(store, store, notifier)

    first = utc("2025-03-07T10:30:00Z")  # 71.5h before departure
    summary = run(scheduler, first)
    assert summary.sent == 1
    assert ledger_of(store) == {
        K.CHECK_IN_OPENS_SOON: first,
        K.CHECK_IN_OPEN: None,
        K.SIX_HOUR_REMINDER: None,
        K.DEPARTURE_REMINDER: None,
        K.TWO_HOUR_REMINDER: None,
    }

    second = utc("2025-03-09T08:00:00Z")
    run(scheduler, second)
    assert notifier.kinds_for("bk-1") == [K.CHECK_IN_OPENS_SOON, K.CHECK_IN_OPEN]
    assert ledger_of(store)[K.CHECK_IN_OPENS_SOON] == first
    assert ledger_of(store)[K.CHECK_IN_OPEN] == second

    third = utc("2025-03-10T08:30:00Z")
    summary = run(scheduler, third)
    assert summary.sent == 2
    assert notifier.kinds_for("bk-1")[2:] == [K.DEPARTURE_REMINDER, K.TWO_HOUR_REMINDER]
    assert ledger_of(store)[K.SIX_HOUR_REMINDER] is None
    assert ledger_of(store)[K.DEPARTURE_REMINDER] == third
    assert ledger_of(store)[K.TWO_HOUR_REMINDER] == third


def test_check_in_open_fires_half_an_hour_after_check_in_opens(store, notifier, scheduler):
    store.add(make_booking())
    run(scheduler, utc("2025-03-08T10:30:00Z"))
    assert notifier.kinds_for("bk-1") == [K.CHECK_IN_OPEN]


def test_malformed_booking_does_not_affect_its_neighbours(store, notifier, scheduler):
    store.add(make_booking("bk-1"))
    store.add(make_booking("bk-2", departure="next tuesday-ish"))
    store.add(make_booking("bk-3"))

    summary = run(scheduler, DEPARTURE - timedelta(minutes=90))

    assert summary.scanned == 3
    assert summary.skipped == 1
    assert summary.sent == 6  # check-in open + departure + two hour, for bookings 1 and 3
    assert notifier.kinds_for("bk-2") == []
    for booking_id in ("bk-1", "bk-3"):
        assert notifier.kinds_for(booking_id) == [K.CHECK_IN_OPEN, K.DEPARTURE_REMINDER, K.TWO_HOUR_REMINDER]


def test_departure_outside_datetime_range_skips_only_that_booking(store, notifier, scheduler):
    store.add(make_booking("bk-1"))
    store.add(make_booking("bk-2", departure="9999-12-31T23:30:00-05:00"))
    store.add(make_booking("bk-3"))

    summary = run(scheduler, DEPARTURE - timedelta(minutes=90))

    assert summary.aborted is False
    assert (summary.scanned, summary.sent, summary.skipped) == (3, 6, 1)
    assert notifier.kinds_for("bk-2") == []
    assert notifier.kinds_for("bk-3") == [K.CHECK_IN_OPEN, K.DEPARTURE_REMINDER, K.TWO_HOUR_REMINDER]


def test_booking_without_email_is_skipped(store, notifier, scheduler):
    store.add(make_booking(email=None))
    summary = run(scheduler, DEPARTURE - timedelta(hours=1))
    assert summary.skipped == 1
    assert notifier.calls == []


def test_failing_kind_does_not_block_the_others(store, scheduler):
    notifier = RecordingNotifier(fail_kinds={K.SIX_HOUR_REMINDER})
    scheduler.notifier = notifier
    store.add(make_booking())

    summary = run(scheduler, DEPARTURE - timedelta(hours=5))

    assert summary.sent == 1
    assert summary.failed == 1
    assert notifier.kinds_for("bk-1") == [K.CHECK_IN_OPEN]
    assert ledger_of(store)[K.CHECK_IN_OPEN] is not None
    assert ledger_of(store)[K.SIX_HOUR_REMINDER] is None


def test_failure_on_earlier_kind_still_fires_later_kinds(store, scheduler):
    notifier = RecordingNotifier(fail_kinds={K.CHECK_IN_OPEN})
    scheduler.notifier = notifier
    store.add(make_booking())

    summary = run(scheduler, DEPARTURE - timedelta(minutes=90))

    assert summary.failed == 1
    assert notifier.kinds_for("bk-1") == [K.DEPARTURE_REMINDER, K.TWO_HOUR_REMINDER]
    assert ledger_of(store)[K.CHECK_IN_OPEN] is None


def test_failed_kind_is_retried_on_next_run_inside_window(store, scheduler):
    scheduler.notifier = RecordingNotifier(fail_kinds={K.SIX_HOUR_REMINDER})
    store.add(make_booking())
    run(scheduler, DEPARTURE - timedelta(hours=5))

    retry = RecordingNotifier()
    scheduler.notifier = retry
    later = DEPARTURE - timedelta(hours=4)
    summary = run(scheduler, later)

    assert summary.sent == 1
    assert retry.kinds_for("bk-1") == [K.SIX_HOUR_REMINDER]
    assert ledger_of(store)[K.SIX_HOUR_REMINDER] == later


def test_notifier_timeout_counts_as_failure(store):
    notifier = RecordingNotifier(delay=0.5)
    scheduler = TripNotificationScheduler(store, store, notifier, notify_timeout=0.05)
    store.add(make_booking())

    summary = run(scheduler, DEPARTURE - timedelta(hours=60))

    assert summary.failed == 1
    assert summary.sent == 0
    assert store.writes == []


class FailingLedger:
    def __init__(self):
        self.attempts = 0

    def mark_sent(self, booking_id, kind, at):
        self.attempts += 1
        raise LedgerWriteError("connection reset")


def test_ledger_write_failure_is_reported_and_may_resend(store, notifier):
    ledger = FailingLedger()
    scheduler = TripNotificationScheduler(store, ledger, notifier)
    store.add(make_booking())
    now = DEPARTURE - timedelta(hours=60)

    summary = run(scheduler, now)
    assert summary.sent == 1
    assert summary.ledger_errors == 1
    assert summary.failed == 0

    run(scheduler, now)
    assert notifier.kinds_for("bk-1") == [K.CHECK_IN_OPENS_SOON, K.CHECK_IN_OPENS_SOON]
    assert ledger.attempts == 2


class BrokenSource:
    def fetch_candidates(self, now):
        raise BookingSourceError("database unavailable")


def test_source_failure_aborts_run_with_zero_progress(notifier, store):
    scheduler = TripNotificationScheduler(BrokenSource(), store, notifier)
    summary = run(scheduler, DEPARTURE)
    assert summary.aborted is True
    assert summary.error == "database unavailable"
    assert (summary.scanned, summary.sent, summary.failed) == (0, 0, 0)
    assert notifier.calls == []


class CrashingSource:
    def fetch_candidates(self, now):
        raise OverflowError("date value out of range")


def test_unexpected_source_error_aborts_run_instead_of_raising(notifier, store):
    scheduler = TripNotificationScheduler(CrashingSource(), store, notifier)
    summary = run(scheduler, DEPARTURE)
    assert summary.aborted is True
    assert summary.error == "booking source error: date value out of range"
    assert (summary.scanned, summary.sent) == (0, 0)


def test_run_deadline_defers_unstarted_bookings(store):
    notifier = RecordingNotifier(delay=0.3)
    scheduler = TripNotificationScheduler(store, store, notifier, max_concurrency=1, run_deadline=0.1)
    for i in range(3):
        store.add(make_booking(f"bk-{i}"))

    summary = run(scheduler, DEPARTURE - timedelta(hours=60))

    assert summary.scanned == 3
    assert summary.sent == 1
    assert summary.deferred == 2
    assert len(store.writes) == 1


def test_concurrency_is_bounded(store):
    notifier = RecordingNotifier(delay=0.02)
    scheduler = TripNotificationScheduler(store, store, notifier, max_concurrency=2)
    for i in range(6):
        store.add(make_booking(f"bk-{i}"))

    summary = run(scheduler, DEPARTURE - timedelta(hours=60))

    assert summary.sent == 6
    assert notifier.max_in_flight == 2


def test_inactive_and_departed_bookings_are_not_candidates(store, notifier, scheduler):
    store.add(make_booking("cancelled", status="cancelled"))
    store.add(make_booking("no-leg", with_leg=False))
    store.add(make_booking("departed", departure="2025-03-01T10:00:00Z"))
    summary = run(scheduler, DEPARTURE - timedelta(hours=60))
    assert summary.scanned == 0
    assert notifier.calls == []


def test_check_in_url_is_passed_through_and_may_be_absent(store, notifier, scheduler):
    store.add(make_booking("qantas", airline="QF"))
    store.add(make_booking("unknown", airline="ZZ"))
    run(scheduler, DEPARTURE - timedelta(hours=60))
    urls = {b: url for b, _, url in notifier.calls}
    assert urls["qantas"].startswith("https://www.qantas.com/")
    assert urls["qantas"].endswith("pnr=PNR123")
    assert urls["unknown"] is None


def test_summary_payload_shape(store, scheduler):
    store.add(make_booking())
    payload = run(scheduler, utc("2025-03-07T10:30:00Z")).to_payload()
    assert payload["scanned"] == 1
    assert payload["sent"] == 1
    assert payload["failed"] == 0
    assert payload["timestampUTC"].startswith("2025-03-07T10:30:00")


def test_job_lock_skips_overlapping_runs():
    lock = JobLock()

    async def scenario():
        started = asyncio.Event()
        release = asyncio.Event()

        async def slow():
            started.set()
            await release.wait()
            return "first"

        first = asyncio.create_task(lock.run_exclusive("job", slow))
        await started.wait()
        second = await lock.run_exclusive("job", slow)
        release.set()
        return await first, second

    assert asyncio.run(scenario()) == ("first", None)
