"""
Tally Core Config — Pricing Configuration
============================================
Doctrine: No hardcoded rounding or defaults in engine logic.
Rounding quantum, default priority and default timezone come
from deployment configuration, not from source code.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping

import pytz


# ══════════════════════════════════════════════════════════════
# PRICING CONFIG
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class PricingConfig:
    """
    Engine-wide pricing configuration.

    rounding_quantum:  Final rounding step (0.01 = cents). Applied once,
                       at the end of an evaluation, ROUND_HALF_UP.
    default_priority:  Priority given to rule records that carry none.
    default_timezone:  Zone for schedules and contexts that carry none.
    """

    rounding_quantum: Decimal = Decimal("0.01")
    default_priority: int = 100
    default_timezone: str = "UTC"

    def __post_init__(self) -> None:
        if not isinstance(self.rounding_quantum, Decimal) or self.rounding_quantum <= 0:
            raise ValueError("rounding_quantum must be a positive Decimal.")
        if not isinstance(self.default_priority, int) or isinstance(self.default_priority, bool):
            raise ValueError("default_priority must be an integer.")
        if self.default_timezone not in pytz.all_timezones_set:
            raise ValueError(f"default_timezone '{self.default_timezone}' is not a known zone.")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "PricingConfig":
        """Build from a settings dict (keys are case-insensitive)."""
        normalized = {str(k).lower(): v for k, v in data.items()}
        kwargs: dict = {}
        if "rounding_quantum" in normalized:
            try:
                kwargs["rounding_quantum"] = Decimal(str(normalized["rounding_quantum"]))
            except InvalidOperation as exc:
                raise ValueError(
                    f"rounding_quantum '{normalized['rounding_quantum']}' is not a number."
                ) from exc
        if "default_priority" in normalized:
            kwargs["default_priority"] = int(normalized["default_priority"])
        if "default_timezone" in normalized:
            kwargs["default_timezone"] = str(normalized["default_timezone"])
        return cls(**kwargs)


DEFAULT_PRICING_CONFIG = PricingConfig()


# ══════════════════════════════════════════════════════════════
# SETTINGS LOOKUP
# ══════════════════════════════════════════════════════════════

def pricing_config_from_settings() -> PricingConfig:
    """
    Read TALLY_PRICING from Django settings.

    Falls back to DEFAULT_PRICING_CONFIG when Django settings are
    not configured or the key is absent.
    """
    from django.conf import settings
    from django.core.exceptions import ImproperlyConfigured

    try:
        raw = getattr(settings, "TALLY_PRICING", None)
    except ImproperlyConfigured:
        return DEFAULT_PRICING_CONFIG
    if not raw:
        return DEFAULT_PRICING_CONFIG
    return PricingConfig.from_mapping(raw)
