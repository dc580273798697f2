"""
Tally Promotion Engine — Limit Enforcer
=========================================
Vetoes accepted rules that would exceed their redemption caps.

Gates, checked in this order for each rule (first failure wins):
    1. per-order     — application instances within this order
    2. per-customer  — ledger count for (rule, customer)
    3. total         — ledger lifetime count for the rule

Application instances: line-level rules (Percent, UnitPriceOverride,
BuyXGetY) apply once per matched line; order-level rules apply once
per order. A per-order cap of N keeps a line-level rule on its first
N matched lines (cart order) and drops the rest.

A rejected rule is removed from the combination. The checkout
proceeds without it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from core.policy.rejection import RejectionReason
from engines.promotion.candidates import Candidate
from engines.promotion.ledger import RedemptionLedger
from engines.promotion.models import TransactionContext
from engines.promotion.policies import (
    per_customer_limit_policy,
    per_order_limit_policy,
    total_redemptions_policy,
)


@dataclass(frozen=True)
class RejectedRule:
    rule_id: str
    reason: RejectionReason

    def to_dict(self) -> dict:
        return {"ruleId": self.rule_id, "reason": self.reason.code}


@dataclass
class Enforcement:
    """Outcome of limit enforcement, in application order."""

    admitted: List[Candidate] = field(default_factory=list)
    rejected: List[RejectedRule] = field(default_factory=list)

    @property
    def admitted_rule_ids(self) -> List[str]:
        return [c.rule_id for c in self.admitted]


def enforce(
    accepted: Iterable[Candidate],
    context: TransactionContext,
    ledger: Optional[RedemptionLedger],
) -> Enforcement:
    if ledger is None:
        ledger = _UnavailableLedger()
    result = Enforcement()
    for candidate in accepted:
        rule = candidate.rule
        kept, rejection = _apply_per_order(candidate)
        if rejection is None:
            rejection = per_customer_limit_policy(rule, context, ledger)
        if rejection is None:
            rejection = total_redemptions_policy(rule, ledger)
        if rejection is not None:
            result.rejected.append(RejectedRule(rule_id=rule.rule_id, reason=rejection))
            continue
        result.admitted.append(kept)
    return result


def _apply_per_order(candidate: Candidate):
    rule = candidate.rule
    if not rule.applies_per_line:
        return candidate, per_order_limit_policy(rule, 0)
    kept: List[int] = []
    rejection = None
    for index in candidate.line_indexes:
        rejection = per_order_limit_policy(rule, len(kept))
        if rejection is not None:
            break
        kept.append(index)
    if not kept:
        return candidate, rejection
    return Candidate(rule=rule, line_indexes=tuple(kept)), None


class _UnavailableLedger:
    """Stand-in used when no ledger is wired; every read fails closed."""

    def count(self, rule_id: str, customer_id: str) -> int:
        raise LookupError("no redemption ledger configured")

    def total(self, rule_id: str) -> int:
        raise LookupError("no redemption ledger configured")
