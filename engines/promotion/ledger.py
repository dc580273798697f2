"""
Tally Promotion Engine — Redemption Ledger
============================================
The ONLY shared mutable resource of the engine.

Counters:
- per (rule_id, customer_id): redemptions by one customer
- per rule_id: lifetime redemptions across all customers

RULES (NON-NEGOTIABLE):
- Reads (count/total) are used at preview time; they never mutate
- try_increment is an atomic compare-and-increment performed at
  order commit only: it succeeds only if every post-increment
  count stays within its cap, and then bumps all counters together
- A failed try_increment leaves every counter untouched
"""

from __future__ import annotations

import threading
from typing import Dict, Optional, Protocol, Tuple


class RedemptionLedger(Protocol):
    """Persisted redemption counters."""

    def count(self, rule_id: str, customer_id: str) -> int:
        """Redemptions of the rule by one customer."""
        ...  # pragma: no cover

    def total(self, rule_id: str) -> int:
        """Lifetime redemptions of the rule."""
        ...  # pragma: no cover

    def try_increment(
        self,
        rule_id: str,
        customer_id: Optional[str] = None,
        *,
        per_customer: Optional[int] = None,
        total_redemptions: Optional[int] = None,
    ) -> bool:
        """Atomically record one redemption if caps allow it."""
        ...  # pragma: no cover


def within_caps(
    *,
    customer_count: int,
    total_count: int,
    per_customer: Optional[int],
    total_redemptions: Optional[int],
) -> bool:
    """Would one more redemption keep both counters within their caps?"""
    if per_customer is not None and customer_count + 1 > per_customer:
        return False
    if total_redemptions is not None and total_count + 1 > total_redemptions:
        return False
    return True


class InMemoryRedemptionLedger:
    """
    Thread-safe in-memory ledger.

    Suitable for tests and for a single-process till. Multi-till
    deployments use the database-backed ledger.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._by_customer: Dict[Tuple[str, str], int] = {}
        self._totals: Dict[str, int] = {}

    def count(self, rule_id: str, customer_id: str) -> int:
        with self._lock:
            return self._by_customer.get((rule_id, customer_id), 0)

    def total(self, rule_id: str) -> int:
        with self._lock:
            return self._totals.get(rule_id, 0)

    def try_increment(
        self,
        rule_id: str,
        customer_id: Optional[str] = None,
        *,
        per_customer: Optional[int] = None,
        total_redemptions: Optional[int] = None,
    ) -> bool:
        with self._lock:
            if per_customer is not None and customer_id is None:
                return False
            customer_count = (
                self._by_customer.get((rule_id, customer_id), 0)
                if customer_id is not None
                else 0
            )
            total_count = self._totals.get(rule_id, 0)
            if not within_caps(
                customer_count=customer_count,
                total_count=total_count,
                per_customer=per_customer,
                total_redemptions=total_redemptions,
            ):
                return False
            if customer_id is not None:
                self._by_customer[(rule_id, customer_id)] = customer_count + 1
            self._totals[rule_id] = total_count + 1
            return True

    def seed(self, rule_id: str, *, total: int = 0, customers: Optional[Dict[str, int]] = None) -> None:
        """Preload counters (bootstrap from a persisted store, tests)."""
        with self._lock:
            self._totals[rule_id] = total
            for customer_id, used in (customers or {}).items():
                self._by_customer[(rule_id, customer_id)] = used
