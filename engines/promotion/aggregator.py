"""
Tally Promotion Engine — Result Aggregator
============================================
Applies admitted rules to a working copy of the cart, in admitted
(priority) order, and produces the PricingResult.

RULES (NON-NEGOTIABLE):
- Sequential compounding: each rule sees the subtotals left by the
  rules before it, so the same currency unit is never discounted
  twice
- Intermediate math at full precision; ONE rounding step at the end
  (ROUND_HALF_UP to the configured quantum) on the order discount
- The rounded order discount is split back across lines by largest
  remainder, so line breakdown and order total always agree exactly
  and neither drifts from the full-precision sum
- A rule whose calculation has no effect is not reported as applied
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List, Tuple

from core.config.pricing import DEFAULT_PRICING_CONFIG, PricingConfig
from engines.promotion import calculator
from engines.promotion.calculator import WorkingCart
from engines.promotion.candidates import Candidate
from engines.promotion.limits import RejectedRule
from engines.promotion.models import ZERO, TransactionContext

logger = logging.getLogger("tally.promotion")


# ══════════════════════════════════════════════════════════════
# RESULT MODEL
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class LineResult:
    line_index: int
    product_id: str
    quantity: int
    original_total: Decimal
    discounted_total: Decimal
    applied_rule_ids: Tuple[str, ...] = ()

    @property
    def discount(self) -> Decimal:
        return self.original_total - self.discounted_total

    def to_dict(self) -> dict:
        return {
            "productId": self.product_id,
            "originalTotal": self.original_total,
            "discountedTotal": self.discounted_total,
            "appliedRuleIds": list(self.applied_rule_ids),
        }


@dataclass(frozen=True)
class AppliedRule:
    rule_id: str
    amount: Decimal

    def to_dict(self) -> dict:
        return {"ruleId": self.rule_id, "amount": self.amount}


@dataclass(frozen=True)
class PricingResult:
    """
    Outcome of one evaluation.

    Money values are Decimal, rounded to the configured quantum.
    to_dict() emits the checkout wire shape; display_view() emits the
    subset a customer-facing display may show (no rule identifiers).
    """

    lines: Tuple[LineResult, ...]
    applied_rules: Tuple[AppliedRule, ...]
    rejected_rules: Tuple[RejectedRule, ...]
    subtotal: Decimal
    order_discount_total: Decimal
    shipping_fee: Decimal
    shipping_waived: bool
    shipping_discount: Decimal
    total: Decimal

    @property
    def applied_rule_ids(self) -> Tuple[str, ...]:
        return tuple(a.rule_id for a in self.applied_rules)

    @property
    def rejected_rule_ids(self) -> Tuple[str, ...]:
        return tuple(r.rule_id for r in self.rejected_rules)

    def line_for(self, product_id: str) -> LineResult:
        for line in self.lines:
            if line.product_id == product_id:
                return line
        raise KeyError(product_id)

    def to_dict(self) -> dict:
        return {
            "lines": [line.to_dict() for line in self.lines],
            "orderDiscountTotal": self.order_discount_total,
            "shippingWaived": self.shipping_waived,
            "appliedRules": [a.to_dict() for a in self.applied_rules],
            "rejectedRules": [r.to_dict() for r in self.rejected_rules],
        }

    def display_view(self) -> dict:
        return {
            "lines": [
                {
                    "productId": line.product_id,
                    "quantity": line.quantity,
                    "originalTotal": line.original_total,
                    "discountedTotal": line.discounted_total,
                }
                for line in self.lines
            ],
            "subtotal": self.subtotal,
            "discountTotal": self.order_discount_total,
            "shipping": self.shipping_fee - self.shipping_discount,
            "total": self.total,
        }


# ══════════════════════════════════════════════════════════════
# AGGREGATION
# ══════════════════════════════════════════════════════════════

def aggregate(
    admitted: Iterable[Candidate],
    context: TransactionContext,
    rejected: Iterable[RejectedRule] = (),
    config: PricingConfig = DEFAULT_PRICING_CONFIG,
) -> PricingResult:
    cart = WorkingCart.from_context(context)
    amounts: List[Tuple[str, Decimal]] = []
    rules_by_line: Dict[int, List[str]] = defaultdict(list)

    for candidate in admitted:
        effect = calculator.apply(candidate.rule, cart, candidate.line_indexes)
        if effect.is_empty:
            logger.debug(f"Rule '{candidate.rule_id}' admitted but had no effect")
            continue
        cart.apply(effect)
        amounts.append((candidate.rule_id, effect.rule_amount))
        for index in effect.line_adjustments:
            rules_by_line[index].append(candidate.rule_id)

    quantum = config.rounding_quantum

    def money(value: Decimal) -> Decimal:
        return value.quantize(quantum, rounding=ROUND_HALF_UP)

    originals = [money(line.subtotal) for line in context.items]
    exact = [line.subtotal - cart.current[i] for i, line in enumerate(context.items)]
    discounts = _allocate(exact, originals, money(sum(exact, ZERO)), quantum)

    lines = []
    for index, line in enumerate(context.items):
        lines.append(LineResult(
            line_index=index,
            product_id=line.product_id,
            quantity=line.quantity,
            original_total=originals[index],
            discounted_total=originals[index] - discounts[index],
            applied_rule_ids=tuple(rules_by_line.get(index, ())),
        ))

    subtotal = sum((line.original_total for line in lines), money(ZERO))
    discount_total = sum((line.discount for line in lines), money(ZERO))
    shipping_fee = money(context.shipping_fee)
    shipping_discount = shipping_fee if cart.shipping_waived else money(ZERO)

    return PricingResult(
        lines=tuple(lines),
        applied_rules=tuple(AppliedRule(rule_id=rid, amount=money(a)) for rid, a in amounts),
        rejected_rules=tuple(rejected),
        subtotal=subtotal,
        order_discount_total=discount_total,
        shipping_fee=shipping_fee,
        shipping_waived=cart.shipping_waived,
        shipping_discount=shipping_discount,
        total=subtotal - discount_total + shipping_fee - shipping_discount,
    )


def _allocate(
    exact: List[Decimal],
    caps: List[Decimal],
    total: Decimal,
    quantum: Decimal,
) -> List[Decimal]:
    """
    Split the once-rounded order discount across lines.

    Each line gets its exact discount rounded down; the units still
    owed go one quantum at a time to the lines with the largest
    remainders (earlier line wins a tie). A line is never given more
    than its own rounded total.
    """
    floors = [value.quantize(quantum, rounding=ROUND_DOWN) for value in exact]
    owed = int((total - sum(floors, ZERO)) / quantum)
    by_remainder = sorted(range(len(exact)), key=lambda i: (-(exact[i] - floors[i]), i))
    for index in by_remainder:
        if owed <= 0:
            break
        if exact[index] == floors[index] or floors[index] + quantum > caps[index]:
            continue
        floors[index] += quantum
        owed -= 1
    return floors
