"""
Tally Promotion Engine — Rule and Context Model
=================================================
Immutable value objects handed to the engine per evaluation call.

RULES (NON-NEGOTIABLE):
- Every identifier list is ONE canonical type: an ordered set of
  strings (tuple, de-duplicated, first occurrence wins)
- An empty scope dimension is a wildcard
- Money is Decimal at full precision; rounding happens once, at
  the end of an evaluation
- Rules and contexts are frozen snapshots — evaluation never
  mutates them
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, FrozenSet, Iterable, Mapping, Optional, Tuple

import pytz

from core.time.temporal import ActiveWindow, localize, resolve_timezone
from engines.promotion.errors import InvalidContextError, MalformedRuleError

IdSet = Tuple[str, ...]

ZERO = Decimal("0")
HUNDRED = Decimal("100")


# ══════════════════════════════════════════════════════════════
# CANONICAL HELPERS
# ══════════════════════════════════════════════════════════════

def id_set(values: Any) -> IdSet:
    """
    Canonicalize identifiers into an ordered set of strings.

    Accepts None, a comma-delimited string, or any iterable.
    Blank entries are dropped; duplicates keep their first position.
    """
    if values is None:
        return ()
    if isinstance(values, str):
        raw: Iterable[Any] = values.split(",")
    elif isinstance(values, (int, float, Decimal)):
        raw = (values,)
    else:
        raw = values
    seen: dict = {}
    for value in raw:
        if value is None:
            continue
        text = str(value).strip()
        if text and text not in seen:
            seen[text] = None
    return tuple(seen)


def to_decimal(value: Any, field_name: str) -> Decimal:
    """Convert a money/number input to Decimal without float drift."""
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool):
        raise ValueError(f"{field_name} must be a number, got bool.")
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError) as exc:
            raise ValueError(f"{field_name} must be a number, got {value!r}.") from exc
    if not result.is_finite():
        raise ValueError(f"{field_name} must be finite, got {value!r}.")
    return result


# ══════════════════════════════════════════════════════════════
# RULE TYPES
# ══════════════════════════════════════════════════════════════

class RuleType(Enum):
    PERCENT = "Percent"
    FIXED_AMOUNT = "FixedAmount"
    UNIT_PRICE_OVERRIDE = "UnitPriceOverride"
    BUY_X_GET_Y = "BuyXGetY"
    BUNDLE_PRICE = "BundlePrice"
    FREE_SHIPPING = "FreeShipping"


# min_quantity only means something for these
QUANTITY_GATED_TYPES: FrozenSet[RuleType] = frozenset({
    RuleType.BUY_X_GET_Y,
    RuleType.UNIT_PRICE_OVERRIDE,
    RuleType.BUNDLE_PRICE,
})

# One application instance per matched line; the rest apply once per order
LINE_LEVEL_TYPES: FrozenSet[RuleType] = frozenset({
    RuleType.PERCENT,
    RuleType.UNIT_PRICE_OVERRIDE,
    RuleType.BUY_X_GET_Y,
})

UNIT_PRICE_TYPES: FrozenSet[RuleType] = frozenset({
    RuleType.UNIT_PRICE_OVERRIDE,
    RuleType.BUNDLE_PRICE,
})


# ══════════════════════════════════════════════════════════════
# SCOPE
# ══════════════════════════════════════════════════════════════

SCOPE_DIMENSIONS = (
    "products",
    "categories",
    "customers",
    "brands",
    "employees",
    "custom_field_values",
    "channels",
)


@dataclass(frozen=True)
class Scope:
    """
    Targeting criteria of a rule.

    AND across non-empty dimensions, OR within one dimension.
    Categories hold category ids only; membership is resolved at
    evaluation time, never flattened into a product list.
    """

    products: IdSet = ()
    categories: IdSet = ()
    customers: IdSet = ()
    brands: IdSet = ()
    employees: IdSet = ()
    custom_field_values: IdSet = ()
    channels: IdSet = ()

    def __post_init__(self) -> None:
        for name in SCOPE_DIMENSIONS:
            object.__setattr__(self, name, id_set(getattr(self, name)))

    @property
    def is_unrestricted(self) -> bool:
        return not any(getattr(self, name) for name in SCOPE_DIMENSIONS)

    def restricted_dimensions(self) -> Tuple[str, ...]:
        return tuple(name for name in SCOPE_DIMENSIONS if getattr(self, name))


# ══════════════════════════════════════════════════════════════
# SCHEDULE
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Schedule:
    """
    When a rule is live.

    weekdays uses Monday=0 … Sunday=6 in the schedule's own zone.
    An empty weekday set means every day.
    """

    start: Optional[datetime] = None
    end: Optional[datetime] = None
    timezone: str = "UTC"
    weekdays: FrozenSet[int] = frozenset()

    def __post_init__(self) -> None:
        resolve_timezone(self.timezone)
        object.__setattr__(self, "weekdays", frozenset(self.weekdays))
        for day in self.weekdays:
            if not isinstance(day, int) or not 0 <= day <= 6:
                raise ValueError(f"weekday must be an int 0-6, got {day!r}.")
        object.__setattr__(self, "start", self._aware(self.start))
        object.__setattr__(self, "end", self._aware(self.end))
        ActiveWindow(start=self.start, end=self.end)

    def _aware(self, dt: Optional[datetime]) -> Optional[datetime]:
        if dt is None:
            return None
        return localize(dt, self.timezone)

    @property
    def window(self) -> ActiveWindow:
        return ActiveWindow(start=self.start, end=self.end)


# ══════════════════════════════════════════════════════════════
# LIMITS
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Limits:
    """Redemption caps. None means unlimited."""

    per_order: Optional[int] = None
    per_customer: Optional[int] = None
    total_redemptions: Optional[int] = None

    def __post_init__(self) -> None:
        for name in ("per_order", "per_customer", "total_redemptions"):
            value = getattr(self, name)
            if value is None:
                continue
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                raise ValueError(f"{name} must be a non-negative integer, got {value!r}.")

    @property
    def is_unlimited(self) -> bool:
        return (
            self.per_order is None
            and self.per_customer is None
            and self.total_redemptions is None
        )

    @property
    def uses_ledger(self) -> bool:
        return self.per_customer is not None or self.total_redemptions is not None


# ══════════════════════════════════════════════════════════════
# PROMOTION RULE
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class PromotionRule:
    """
    One configured marketing rule (immutable snapshot).

    sequence is the authoring order and serves as the stable
    tie-breaker between rules of equal priority.
    """

    rule_id: str
    name: str
    rule_type: RuleType
    value: Decimal = ZERO
    unit_price: Optional[Decimal] = None
    code: Optional[str] = None
    description: str = ""
    enabled: bool = True
    stackable: bool = True
    priority: int = 100
    min_quantity: Optional[int] = None
    scope: Scope = field(default_factory=Scope)
    schedule: Schedule = field(default_factory=Schedule)
    limits: Limits = field(default_factory=Limits)
    sequence: int = 0

    def __post_init__(self) -> None:
        rid = self.rule_id or "<missing>"
        if not self.rule_id or not isinstance(self.rule_id, str):
            raise MalformedRuleError(rid, "rule_id must be a non-empty string.")
        if not self.name or not isinstance(self.name, str):
            raise MalformedRuleError(rid, "name must be a non-empty string.")
        if not isinstance(self.rule_type, RuleType):
            raise MalformedRuleError(rid, f"unknown rule type {self.rule_type!r}.")
        if not isinstance(self.value, Decimal) or self.value < ZERO:
            raise MalformedRuleError(rid, "value must be a non-negative Decimal.")
        if self.rule_type in (RuleType.PERCENT, RuleType.BUY_X_GET_Y) and self.value > HUNDRED:
            raise MalformedRuleError(rid, "percentage value must be between 0 and 100.")
        if self.rule_type in UNIT_PRICE_TYPES:
            if self.unit_price is None:
                raise MalformedRuleError(rid, f"{self.rule_type.value} requires unit_price.")
            if not isinstance(self.unit_price, Decimal) or self.unit_price < ZERO:
                raise MalformedRuleError(rid, "unit_price must be a non-negative Decimal.")
        if self.min_quantity is not None and (
            not isinstance(self.min_quantity, int)
            or isinstance(self.min_quantity, bool)
            or self.min_quantity < 1
        ):
            raise MalformedRuleError(rid, "min_quantity must be a positive integer.")
        if self.rule_type is RuleType.BUY_X_GET_Y and self.min_quantity is None:
            raise MalformedRuleError(rid, "BuyXGetY requires min_quantity.")
        if self.rule_type is RuleType.BUNDLE_PRICE and not self.scope.products:
            raise MalformedRuleError(rid, "BundlePrice requires at least one product in scope.")
        if not isinstance(self.priority, int) or isinstance(self.priority, bool):
            raise MalformedRuleError(rid, "priority must be an integer.")

    @property
    def is_quantity_gated(self) -> bool:
        return self.rule_type in QUANTITY_GATED_TYPES

    @property
    def applies_per_line(self) -> bool:
        return self.rule_type in LINE_LEVEL_TYPES

    @property
    def required_quantity(self) -> int:
        """Quantity threshold a matched line must reach (1 when not gated)."""
        if self.is_quantity_gated and self.min_quantity:
            return self.min_quantity
        return 1

    def sort_key(self) -> tuple:
        return (self.priority, self.sequence, self.rule_id)


# ══════════════════════════════════════════════════════════════
# TRANSACTION CONTEXT
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class CartLine:
    """One cart line as submitted by the checkout caller."""

    product_id: str
    quantity: int
    unit_price: Decimal
    category_ids: IdSet = ()
    brand_id: Optional[str] = None
    custom_field_values: IdSet = ()

    def __post_init__(self) -> None:
        if not self.product_id:
            raise InvalidContextError("product_id must be non-empty.")
        if not isinstance(self.quantity, int) or isinstance(self.quantity, bool) or self.quantity < 0:
            raise InvalidContextError(
                f"quantity must be a non-negative integer, got {self.quantity!r}."
            )
        if not isinstance(self.unit_price, Decimal) or self.unit_price < ZERO:
            raise InvalidContextError(
                f"unit_price must be a non-negative Decimal, got {self.unit_price!r}."
            )
        object.__setattr__(self, "product_id", str(self.product_id))
        object.__setattr__(self, "category_ids", id_set(self.category_ids))
        object.__setattr__(self, "custom_field_values", id_set(self.custom_field_values))
        if self.brand_id is not None:
            object.__setattr__(self, "brand_id", str(self.brand_id).strip() or None)

    @property
    def subtotal(self) -> Decimal:
        return self.unit_price * self.quantity

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CartLine":
        try:
            return cls(
                product_id=str(data["productId"]),
                quantity=int(data.get("quantity", 1)),
                unit_price=to_decimal(data.get("unitPrice", 0), "unitPrice"),
                category_ids=id_set(data.get("categoryIds")),
                brand_id=data.get("brandId"),
                custom_field_values=id_set(data.get("customFieldValues")),
            )
        except InvalidContextError:
            raise
        except KeyError as exc:
            raise InvalidContextError(f"cart line is missing {exc.args[0]!r}.") from exc
        except (TypeError, ValueError) as exc:
            raise InvalidContextError(str(exc)) from exc


@dataclass(frozen=True)
class TransactionContext:
    """
    Everything the engine knows about one checkout.

    instant must be timezone-aware; timezone is the till's zone
    and is used only to interpret naive inputs.
    """

    instant: datetime
    items: Tuple[CartLine, ...]
    channel: str = ""
    timezone: str = "UTC"
    customer_id: Optional[str] = None
    employee_id: Optional[str] = None
    shipping_fee: Decimal = ZERO
    order_id: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.instant, datetime) or self.instant.tzinfo is None:
            raise InvalidContextError("instant must be a timezone-aware datetime.")
        if not isinstance(self.shipping_fee, Decimal) or self.shipping_fee < ZERO:
            raise InvalidContextError("shipping_fee must be a non-negative Decimal.")
        object.__setattr__(self, "items", tuple(self.items))
        for name in ("customer_id", "employee_id"):
            value = getattr(self, name)
            if value is not None:
                object.__setattr__(self, name, str(value).strip() or None)
        object.__setattr__(self, "channel", str(self.channel or "").strip())

    @property
    def subtotal(self) -> Decimal:
        return sum((line.subtotal for line in self.items), ZERO)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], default_timezone: str = "UTC") -> "TransactionContext":
        """Build from the checkout payload (camelCase keys)."""
        now = data.get("now") or {}
        tz_name = now.get("timezone") or default_timezone
        try:
            resolve_timezone(tz_name)
        except pytz.UnknownTimeZoneError as exc:
            raise InvalidContextError(f"unknown timezone {tz_name!r}.") from exc
        instant = _parse_instant(now.get("instant"), tz_name)
        try:
            shipping_fee = to_decimal(data.get("shippingFee", 0) or 0, "shippingFee")
        except ValueError as exc:
            raise InvalidContextError(str(exc)) from exc
        return cls(
            instant=instant,
            items=tuple(CartLine.from_dict(item) for item in data.get("items") or ()),
            channel=data.get("channel") or "",
            timezone=tz_name,
            customer_id=data.get("customerId"),
            employee_id=data.get("employeeId"),
            shipping_fee=shipping_fee,
            order_id=data.get("orderId"),
        )


def _parse_instant(value: Any, tz_name: str) -> datetime:
    if value is None:
        raise InvalidContextError("now.instant is required.")
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError as exc:
            raise InvalidContextError(f"now.instant {value!r} is not ISO-8601.") from exc
    else:
        raise InvalidContextError(f"now.instant must be a datetime or ISO string, got {value!r}.")
    return localize(dt, tz_name)
