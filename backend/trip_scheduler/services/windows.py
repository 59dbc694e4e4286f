"""Reminder windows relative to a flight's scheduled departure.

Every kind is eligible during a half-open interval ``[start, end)``. The
intervals come from one table so each boundary can be checked on its own;
some of them overlap near departure, which is fine because every kind has its
own ledger field.
"""
from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Tuple

from trip_scheduler.schemas.trip import NotificationKind

# Most carriers in our integrations open online check-in 48h before departure.
# TODO: make this carrier-parameterized once per-airline check-in leads are sourced.
CHECK_IN_LEAD = timedelta(hours=48)

# kind -> (start offset, end offset), both measured back from departure
WINDOW_TABLE: Dict[NotificationKind, Tuple[timedelta, timedelta]] = {
    NotificationKind.CHECK_IN_OPENS_SOON: (CHECK_IN_LEAD + timedelta(hours=24), CHECK_IN_LEAD),
    NotificationKind.CHECK_IN_OPEN: (CHECK_IN_LEAD, timedelta(0)),
    NotificationKind.SIX_HOUR_REMINDER: (timedelta(hours=6), timedelta(hours=3)),
    NotificationKind.DEPARTURE_REMINDER: (timedelta(hours=3), timedelta(0)),
    NotificationKind.TWO_HOUR_REMINDER: (timedelta(hours=2), timedelta(0)),
}


@dataclass(frozen=True)
class Window:
    kind: NotificationKind
    start: datetime
    end: datetime

    def contains(self, now: datetime) -> bool:
        return self.start <= now < self.end


def _require_aware(value: datetime, name: str) -> None:
    if value.tzinfo is None or value.utcoffset() is None:
        raise ValueError(f"{name} must be timezone-aware, got naive {value.isoformat()}")


def check_in_opens_at(departure: datetime) -> datetime:
    _require_aware(departure, "departure")
    return departure - CHECK_IN_LEAD


def compute_windows(departure: datetime) -> Dict[NotificationKind, Window]:
    """Return the window of every kind for one departure instant, in evaluation order."""
    _require_aware(departure, "departure")
    return {
        kind: Window(kind=kind, start=departure - start_offset, end=departure - end_offset)
        for kind, (start_offset, end_offset) in WINDOW_TABLE.items()
    }
