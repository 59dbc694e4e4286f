from datetime import datetime
from typing import Optional

from trip_scheduler.services.windows import Window


def should_fire(now: datetime, window: Window, sent_at: Optional[datetime]) -> bool:
    """Fire only for an unsent kind while ``now`` is inside its window.

    A window that closed without a successful send is never backfilled.
    """
    if sent_at is not None:
        return False
    return window.contains(now)
