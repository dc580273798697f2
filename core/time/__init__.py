"""
Tally Core Time — Public API
==============================
Explicit clock protocol and temporal helpers.
Doctrine: NO datetime.now() in engine logic.
"""

from core.time.clock import Clock, FixedClock, SystemClock
from core.time.temporal import ActiveWindow, localize, resolve_timezone, to_local

__all__ = [
    "Clock",
    "FixedClock",
    "SystemClock",
    "ActiveWindow",
    "localize",
    "resolve_timezone",
    "to_local",
]
