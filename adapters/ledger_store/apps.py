"""
Tally Ledger Store — App Configuration
========================================
Database-backed redemption counters shared by every till.

This app:
- Persists per-rule and per-(rule, customer) redemption counts
- Performs the atomic compare-and-increment at order commit

This app does NOT:
- Decide which rules apply (that is engines.promotion)
- Compute discounts
"""

from django.apps import AppConfig


class LedgerStoreConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "adapters.ledger_store"
    label = "ledger_store"
    verbose_name = "Tally Redemption Ledger"
