import asyncio
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from trip_scheduler.api import deps
from trip_scheduler.api.routes import cron
from trip_scheduler.core.config import Settings
from trip_scheduler.core.errors import BookingSourceError
from trip_scheduler.core.security import create_access_token
from trip_scheduler.db.session import get_db
from trip_scheduler.main import app
from trip_scheduler.models import Notification
from trip_scheduler.services.reminder_scheduler import JOB_NAME, JobLock, TripNotificationScheduler

from tests.conftest import DEPARTURE, RecordingNotifier, make_booking

client = TestClient(app)


class BrokenSource:
    def fetch_candidates(self, now):
        raise BookingSourceError("database unavailable")


@pytest.fixture
def wired(store, notifier, monkeypatch):
    # Pin the scheduler clock inside the opens-soon window
    scheduler = TripNotificationScheduler(store, store, notifier, clock=lambda: DEPARTURE - timedelta(hours=60))
    app.dependency_overrides[deps.get_settings] = lambda: Settings(CRON_SECRET="s3cret")
    app.dependency_overrides[deps.get_scheduler] = lambda: scheduler
    monkeypatch.setattr(cron, "job_lock", JobLock())
    yield scheduler
    app.dependency_overrides.clear()


def test_cron_requires_secret(wired):
    assert client.get("/cron/trip-notifications").status_code == 401
    r = client.get("/cron/trip-notifications", headers={"Authorization": "Bearer wrong"})
    assert r.status_code == 401


def test_cron_runs_and_returns_summary(wired, store, notifier):
    store.add(make_booking())
    r = client.get("/cron/trip-notifications", headers={"Authorization": "Bearer s3cret"})
    assert r.status_code == 200, r.text
    data = r.json()
    assert data["success"] is True
    assert (data["scanned"], data["sent"], data["failed"]) == (1, 1, 0)
    assert data["timestampUTC"].startswith("2025-03-07T22:00:00")
    assert len(notifier.calls) == 1


def test_cron_reports_aborted_run_as_server_error(wired):
    wired.source = BrokenSource()
    r = client.get("/cron/trip-notifications", headers={"Authorization": "Bearer s3cret"})
    assert r.status_code == 500
    assert r.json()["success"] is False
    assert r.json()["error"] == "database unavailable"


def test_cron_refuses_overlapping_run(wired, monkeypatch):
    busy = JobLock()
    lock = busy._locks.setdefault(JOB_NAME, asyncio.Lock())
    asyncio.run(lock.acquire())
    monkeypatch.setattr(cron, "job_lock", busy)
    r = client.get("/cron/trip-notifications", headers={"Authorization": "Bearer s3cret"})
    assert r.status_code == 409


def test_cron_open_without_secret(store, notifier, monkeypatch):
    scheduler = TripNotificationScheduler(store, store, notifier, clock=lambda: DEPARTURE)
    app.dependency_overrides[deps.get_settings] = lambda: Settings(CRON_SECRET="")
    app.dependency_overrides[deps.get_scheduler] = lambda: scheduler
    monkeypatch.setattr(cron, "job_lock", JobLock())
    try:
        r = client.get("/cron/trip-notifications")
    finally:
        app.dependency_overrides.clear()
    assert r.status_code == 200


def test_notification_feed_is_scoped_to_token_subject(session_factory):
    db = session_factory()
    db.add_all([
        Notification(user_email="traveller@example.com", booking_id="bk-1", type="checkin_open", message="Check-in is now open"),
        Notification(user_email="other@example.com", booking_id="bk-2", type="checkin_open", message="Check-in is now open"),
    ])
    db.commit()
    db.close()

    def override_db():
        s = session_factory()
        try:
            yield s
        finally:
            s.close()

    app.dependency_overrides[get_db] = override_db
    headers = {"Authorization": f"Bearer {create_access_token('Traveller@example.com')}"}
    try:
        items = client.get("/notifications/", headers=headers).json()
        unread = client.get("/notifications/unread-count", headers=headers).json()
        marked = client.post(f"/notifications/{items[0]['id']}/read", headers=headers)
        after = client.get("/notifications/unread-count", headers=headers).json()
        denied = client.get("/notifications/", headers={"Authorization": "Bearer nope"})
    finally:
        app.dependency_overrides.clear()

    assert [i["booking_id"] for i in items] == ["bk-1"]
    assert unread == {"unread": 1}
    assert marked.status_code == 200
    assert after == {"unread": 0}
    assert denied.status_code == 401
