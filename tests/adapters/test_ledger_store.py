"""
Tally Ledger Store — Database Redemption Ledger Tests
=======================================================
Tests verify:
- Reads default to zero for unseen rules
- Compare-and-increment honours both caps
- A per-customer failure rolls back the rule-wide increment
- The ledger drives PromotionService.commit end to end
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from adapters.ledger_store.models import GLOBAL_CUSTOMER, RedemptionCounter
from adapters.ledger_store.repository import DbRedemptionLedger
from core.config.pricing import DEFAULT_PRICING_CONFIG
from engines.promotion.models import CartLine, TransactionContext
from engines.promotion.services import PromotionService

pytestmark = pytest.mark.django_db(transaction=True)

NOW = datetime(2026, 3, 7, 15, 0, 0, tzinfo=timezone.utc)


def test_unseen_rule_reads_zero() -> None:
    ledger = DbRedemptionLedger()
    assert ledger.total("nope") == 0
    assert ledger.count("nope", "c-1") == 0


def test_increment_without_caps() -> None:
    ledger = DbRedemptionLedger()
    assert ledger.try_increment("r", "c-1")
    assert ledger.try_increment("r", "c-1")
    assert ledger.total("r") == 2
    assert ledger.count("r", "c-1") == 2


def test_total_cap() -> None:
    ledger = DbRedemptionLedger()
    assert ledger.try_increment("r", total_redemptions=2)
    assert ledger.try_increment("r", total_redemptions=2)
    assert not ledger.try_increment("r", total_redemptions=2)
    assert ledger.total("r") == 2


def test_per_customer_failure_rolls_back_total() -> None:
    ledger = DbRedemptionLedger()
    ledger.seed("r", total=4, customers={"c-1": 1})

    assert not ledger.try_increment("r", "c-1", per_customer=1, total_redemptions=10)

    assert ledger.total("r") == 4
    assert ledger.count("r", "c-1") == 1


def test_per_customer_cap_requires_customer() -> None:
    ledger = DbRedemptionLedger()
    assert not ledger.try_increment("r", None, per_customer=1)
    assert not RedemptionCounter.objects.filter(rule_id="r").exists()


def test_rows_are_keyed_by_rule_and_customer() -> None:
    ledger = DbRedemptionLedger()
    ledger.try_increment("r", "c-1")
    rows = {
        (row.customer_id, row.count)
        for row in RedemptionCounter.objects.filter(rule_id="r")
    }
    assert rows == {(GLOBAL_CUSTOMER, 1), ("c-1", 1)}


def test_commit_through_service() -> None:
    ledger = DbRedemptionLedger()
    service = PromotionService(ledger=ledger, config=DEFAULT_PRICING_CONFIG)
    rules = [{"id": "first-order", "type": "percent", "value": 20, "limits": {"perCustomer": 1}}]
    ctx = TransactionContext(
        instant=NOW,
        items=(CartLine(product_id="a", quantity=1, unit_price=Decimal("50.00")),),
        customer_id="c-9",
    )

    first = service.commit(ctx, rules)
    second = service.evaluate(ctx, rules)

    assert first.result.order_discount_total == Decimal("10.00")
    assert ledger.count("first-order", "c-9") == 1
    assert second.applied_rule_ids == ()
    assert second.rejected_rule_ids == ("first-order",)
