"""
Tally Core Config — Public API
================================
Deployment-configurable pricing settings.
Doctrine: No hardcoded rounding rules in engine logic.
"""

from core.config.pricing import (
    DEFAULT_PRICING_CONFIG,
    PricingConfig,
    pricing_config_from_settings,
)

__all__ = [
    "PricingConfig",
    "DEFAULT_PRICING_CONFIG",
    "pricing_config_from_settings",
]
