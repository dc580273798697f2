"""
Tally Promotion Engine — Discount Calculator
==============================================
Computes the monetary effect of ONE admitted rule against the
then-current state of the cart.

RULES (NON-NEGOTIABLE):
- Full Decimal precision; no rounding here (the aggregator rounds
  once, at the end)
- Every line adjustment is >= 0 and never exceeds the line's
  current subtotal
- The calculator reads the working cart; it never mutates it
- Distributed amounts sum exactly to the rule amount (the last
  share absorbs the remainder)

Per-type semantics:
    Percent            value% off each matched line
    FixedAmount        value off the matched lines together, split
                       proportionally to their current subtotals
    UnitPriceOverride  first min_quantity units (else all) of each
                       matched line priced at unit_price
    BuyXGetY           per matched line, one unit in every complete
                       group of min_quantity gets value% off
    BundlePrice        each complete bundle of the scoped products
                       is charged unit_price; leftovers keep price
    FreeShipping       the order's shipping fee is waived
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Sequence

from engines.promotion.models import (
    HUNDRED,
    ZERO,
    CartLine,
    PromotionRule,
    RuleType,
    TransactionContext,
)


# ══════════════════════════════════════════════════════════════
# WORKING CART
# ══════════════════════════════════════════════════════════════

@dataclass
class WorkingCart:
    """
    Mutable working copy of a cart during one evaluation.

    current[i] is line i's subtotal after every effect applied so far.
    """

    lines: Sequence[CartLine]
    current: List[Decimal]
    shipping_fee: Decimal = ZERO
    shipping_waived: bool = False

    @classmethod
    def from_context(cls, context: TransactionContext) -> "WorkingCart":
        return cls(
            lines=context.items,
            current=[line.subtotal for line in context.items],
            shipping_fee=context.shipping_fee,
        )

    def unit_price_now(self, index: int) -> Decimal:
        quantity = self.lines[index].quantity
        if quantity <= 0:
            return ZERO
        return self.current[index] / quantity

    def apply(self, effect: "RuleEffect") -> None:
        for index, amount in effect.line_adjustments.items():
            self.current[index] -= amount
        if effect.shipping_waived:
            self.shipping_waived = True


@dataclass
class RuleEffect:
    rule_id: str
    line_adjustments: Dict[int, Decimal] = field(default_factory=dict)
    shipping_waived: bool = False
    shipping_amount: Decimal = ZERO

    @property
    def line_amount(self) -> Decimal:
        return sum(self.line_adjustments.values(), ZERO)

    @property
    def rule_amount(self) -> Decimal:
        return self.line_amount + self.shipping_amount

    @property
    def is_empty(self) -> bool:
        return not self.line_adjustments and not self.shipping_waived


# ══════════════════════════════════════════════════════════════
# ENTRY POINT
# ══════════════════════════════════════════════════════════════

def apply(rule: PromotionRule, cart: WorkingCart, line_indexes: Sequence[int]) -> RuleEffect:
    handler = _HANDLERS[rule.rule_type]
    effect = handler(rule, cart, line_indexes)
    effect.line_adjustments = {
        index: _clamp(amount, cart.current[index])
        for index, amount in effect.line_adjustments.items()
        if amount > ZERO
    }
    return effect


def _clamp(amount: Decimal, ceiling: Decimal) -> Decimal:
    if amount < ZERO:
        return ZERO
    return min(amount, ceiling)


def distribute(amount: Decimal, weights: Dict[int, Decimal]) -> Dict[int, Decimal]:
    """
    Split `amount` proportionally to `weights`.

    The last positive weight absorbs the remainder, so the parts
    always sum to `amount` exactly.
    """
    positive = [(index, weight) for index, weight in weights.items() if weight > ZERO]
    if amount <= ZERO or not positive:
        return {}
    base = sum((weight for _, weight in positive), ZERO)
    shares: Dict[int, Decimal] = {}
    allocated = ZERO
    for index, weight in positive[:-1]:
        share = amount * weight / base
        shares[index] = share
        allocated += share
    last_index = positive[-1][0]
    shares[last_index] = amount - allocated
    return shares


# ══════════════════════════════════════════════════════════════
# HANDLERS
# ══════════════════════════════════════════════════════════════

def _percent(rule: PromotionRule, cart: WorkingCart, line_indexes: Sequence[int]) -> RuleEffect:
    rate = rule.value / HUNDRED
    return RuleEffect(
        rule_id=rule.rule_id,
        line_adjustments={i: cart.current[i] * rate for i in line_indexes},
    )


def _fixed_amount(rule: PromotionRule, cart: WorkingCart, line_indexes: Sequence[int]) -> RuleEffect:
    weights = {i: cart.current[i] for i in line_indexes}
    combined = sum(weights.values(), ZERO)
    amount = min(rule.value, combined)
    return RuleEffect(rule_id=rule.rule_id, line_adjustments=distribute(amount, weights))


def _unit_price_override(
    rule: PromotionRule, cart: WorkingCart, line_indexes: Sequence[int],
) -> RuleEffect:
    adjustments: Dict[int, Decimal] = {}
    for i in line_indexes:
        quantity = cart.lines[i].quantity
        units = min(rule.min_quantity, quantity) if rule.min_quantity else quantity
        gap = cart.unit_price_now(i) - rule.unit_price
        # an override never raises a price
        if gap > ZERO:
            adjustments[i] = gap * units
    return RuleEffect(rule_id=rule.rule_id, line_adjustments=adjustments)


def _buy_x_get_y(rule: PromotionRule, cart: WorkingCart, line_indexes: Sequence[int]) -> RuleEffect:
    rate = rule.value / HUNDRED
    adjustments: Dict[int, Decimal] = {}
    for i in line_indexes:
        groups = cart.lines[i].quantity // rule.min_quantity
        if groups:
            adjustments[i] = cart.unit_price_now(i) * groups * rate
    return RuleEffect(rule_id=rule.rule_id, line_adjustments=adjustments)


def _bundle_price(rule: PromotionRule, cart: WorkingCart, line_indexes: Sequence[int]) -> RuleEffect:
    required = rule.min_quantity or 1
    by_product: Dict[str, List[int]] = {}
    for i in line_indexes:
        by_product.setdefault(cart.lines[i].product_id, []).append(i)

    # completeness: every bundle product present with enough units
    available = {}
    for product_id in rule.scope.products:
        quantity = sum(cart.lines[i].quantity for i in by_product.get(product_id, ()))
        if quantity < required:
            return RuleEffect(rule_id=rule.rule_id)
        available[product_id] = quantity
    bundles = min(quantity // required for quantity in available.values())

    bundled_value: Dict[int, Decimal] = {}
    for product_id in rule.scope.products:
        units_left = bundles * required
        for i in by_product[product_id]:
            if units_left <= 0:
                break
            units = min(units_left, cart.lines[i].quantity)
            bundled_value[i] = bundled_value.get(i, ZERO) + cart.unit_price_now(i) * units
            units_left -= units

    saving = sum(bundled_value.values(), ZERO) - rule.unit_price * bundles
    if saving <= ZERO:
        return RuleEffect(rule_id=rule.rule_id)
    return RuleEffect(rule_id=rule.rule_id, line_adjustments=distribute(saving, bundled_value))


def _free_shipping(rule: PromotionRule, cart: WorkingCart, line_indexes: Sequence[int]) -> RuleEffect:
    amount = ZERO if cart.shipping_waived else cart.shipping_fee
    return RuleEffect(rule_id=rule.rule_id, shipping_waived=True, shipping_amount=amount)


_HANDLERS = {
    RuleType.PERCENT: _percent,
    RuleType.FIXED_AMOUNT: _fixed_amount,
    RuleType.UNIT_PRICE_OVERRIDE: _unit_price_override,
    RuleType.BUY_X_GET_Y: _buy_x_get_y,
    RuleType.BUNDLE_PRICE: _bundle_price,
    RuleType.FREE_SHIPPING: _free_shipping,
}
