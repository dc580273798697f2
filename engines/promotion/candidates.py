"""
Tally Promotion Engine — Candidate Filter
===========================================
Combines the scope matcher and the schedule evaluator into the set
of rules eligible for one transaction.

A rule is a candidate when it is enabled, schedule-active at the
context instant, matches at least one cart line, and (for
quantity-gated types) at least one matched line reaches
min_quantity. Lines below the threshold are not part of the
candidate's matched lines.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from engines.promotion.models import PromotionRule, TransactionContext
from engines.promotion.schedule import is_active
from engines.promotion.scope import ScopeMatcher


@dataclass(frozen=True)
class Candidate:
    """A rule together with the indexes of the cart lines it matched."""

    rule: PromotionRule
    line_indexes: Tuple[int, ...]

    @property
    def rule_id(self) -> str:
        return self.rule.rule_id


def candidates(
    rules: Iterable[PromotionRule],
    context: TransactionContext,
    matcher: Optional[ScopeMatcher] = None,
) -> List[Candidate]:
    matcher = matcher or ScopeMatcher()
    eligible: List[Candidate] = []
    for rule in rules:
        if not rule.enabled:
            continue
        if not is_active(rule.schedule, context.instant):
            continue
        threshold = rule.required_quantity
        matched = tuple(
            index
            for index, line in enumerate(context.items)
            if line.quantity >= threshold
            and matcher.matches(rule.scope, context, line)
        )
        if matched:
            eligible.append(Candidate(rule=rule, line_indexes=matched))
    return eligible
