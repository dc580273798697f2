"""
Tally Core Time — Temporal Helpers
====================================
Pure functions for time interval logic.
All functions take explicit datetime arguments — no hidden clock access.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import pytz


# ══════════════════════════════════════════════════════════════
# ACTIVE WINDOW — Closed interval [start, end], either side open
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ActiveWindow:
    """
    A closed time interval [start, end].

    A missing bound is unbounded on that side.
    Invariant: start <= end when both are set (enforced at construction).
    """

    start: Optional[datetime] = None
    end: Optional[datetime] = None

    def __post_init__(self) -> None:
        for bound in (self.start, self.end):
            if bound is not None and bound.tzinfo is None:
                raise ValueError("ActiveWindow bounds must be timezone-aware.")
        if self.start is not None and self.end is not None and self.start > self.end:
            raise ValueError(
                f"ActiveWindow start ({self.start}) must be <= end ({self.end})."
            )

    @property
    def is_unbounded(self) -> bool:
        return self.start is None and self.end is None

    def contains(self, dt: datetime) -> bool:
        """Check if datetime falls within window (inclusive)."""
        if self.start is not None and dt < self.start:
            return False
        if self.end is not None and dt > self.end:
            return False
        return True


# ══════════════════════════════════════════════════════════════
# TIMEZONE HELPERS
# ══════════════════════════════════════════════════════════════

def resolve_timezone(tz_name: Optional[str]) -> pytz.BaseTzInfo:
    """
    Look up an IANA timezone by name. Empty name means UTC.

    Raises pytz.UnknownTimeZoneError for unknown names.
    """
    if not tz_name:
        return pytz.utc
    return pytz.timezone(tz_name)


def to_local(instant: datetime, tz_name: Optional[str]) -> datetime:
    """Convert an aware instant to wall-clock time in the named zone."""
    if instant.tzinfo is None:
        raise ValueError("to_local requires a timezone-aware instant.")
    return instant.astimezone(resolve_timezone(tz_name))


def localize(naive: datetime, tz_name: Optional[str]) -> datetime:
    """Attach the named zone to a naive wall-clock datetime."""
    if naive.tzinfo is not None:
        return naive
    return resolve_timezone(tz_name).localize(naive)
