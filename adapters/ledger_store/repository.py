"""
Tally Ledger Store - Database Redemption Ledger
================================================
RedemptionLedger implementation over the Django ORM.

Compare-and-increment is a conditional UPDATE inside one
transaction: the rule-wide counter is bumped first, then the
customer counter; if the customer counter is at its cap the whole
increment rolls back.
"""

from __future__ import annotations

import logging
from typing import Optional

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from adapters.ledger_store.models import GLOBAL_CUSTOMER, RedemptionCounter

logger = logging.getLogger("tally.ledger")


class DbRedemptionLedger:
    def count(self, rule_id: str, customer_id: str) -> int:
        return _read(rule_id, customer_id)

    def total(self, rule_id: str) -> int:
        return _read(rule_id, GLOBAL_CUSTOMER)

    def try_increment(
        self,
        rule_id: str,
        customer_id: Optional[str] = None,
        *,
        per_customer: Optional[int] = None,
        total_redemptions: Optional[int] = None,
    ) -> bool:
        if per_customer is not None and not customer_id:
            return False
        with transaction.atomic():
            if not _bump(rule_id, GLOBAL_CUSTOMER, total_redemptions):
                logger.debug(f"Rule '{rule_id}' at lifetime cap {total_redemptions}")
                return False
            if customer_id:
                if not _bump(rule_id, customer_id, per_customer):
                    transaction.set_rollback(True)
                    logger.debug(
                        f"Rule '{rule_id}' at per-customer cap {per_customer} "
                        f"for '{customer_id}'")
                    return False
        return True

    def seed(self, rule_id: str, *, total: int = 0, customers: Optional[dict] = None) -> None:
        """Set counters directly (data migration, tests)."""
        with transaction.atomic():
            RedemptionCounter.objects.update_or_create(
                rule_id=rule_id, customer_id=GLOBAL_CUSTOMER, defaults={"count": total})
            for customer_id, used in (customers or {}).items():
                RedemptionCounter.objects.update_or_create(
                    rule_id=rule_id, customer_id=customer_id, defaults={"count": used})


def _read(rule_id: str, customer_id: str) -> int:
    value = (
        RedemptionCounter.objects
        .filter(rule_id=rule_id, customer_id=customer_id)
        .values_list("count", flat=True)
        .first()
    )
    return value or 0


def _bump(rule_id: str, customer_id: str, cap: Optional[int]) -> bool:
    RedemptionCounter.objects.get_or_create(rule_id=rule_id, customer_id=customer_id)
    query = RedemptionCounter.objects.filter(rule_id=rule_id, customer_id=customer_id)
    if cap is not None:
        query = query.filter(count__lt=cap)
    updated = query.update(count=F("count") + 1, updated_at=timezone.now())
    return updated == 1
