"""
Tally Promotion Engine — Schedule Evaluator
=============================================
Pure function of the instant: no activation state is stored.
"""

from __future__ import annotations

from datetime import datetime

from core.time.temporal import to_local
from engines.promotion.models import Schedule


def is_active(schedule: Schedule, instant: datetime) -> bool:
    """
    Is the schedule live at `instant`?

    Window bounds are inclusive and either may be open. The weekday
    test uses the local day in the schedule's own zone, so a rule for
    "Saturdays in Santiago" follows Santiago's calendar regardless of
    where the till's clock is set.
    """
    if instant.tzinfo is None:
        raise ValueError("is_active requires a timezone-aware instant.")
    if not schedule.window.contains(instant):
        return False
    if not schedule.weekdays:
        return True
    return to_local(instant, schedule.timezone).weekday() in schedule.weekdays
