"""
Tally Promotion Engine — Rule Store Boundary
==============================================
Turns raw rule records (as handed over by the rule store) into
immutable PromotionRule snapshots.

Records arrive in more than one shape: scope lists as arrays or
as comma-delimited strings, short UI type codes or long names,
limits nested or flat, weekdays under the schedule or under the
scopes. Everything is normalized here, once, so the engine only
ever sees the canonical types.

A malformed record is skipped with a warning. It never raises out
of load_rules and it never matches.
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable, Mapping, Optional, Tuple

import pytz

from core.config.pricing import DEFAULT_PRICING_CONFIG, PricingConfig
from engines.promotion.errors import MalformedRuleError
from engines.promotion.models import (
    Limits,
    PromotionRule,
    RuleType,
    Schedule,
    Scope,
    id_set,
    to_decimal,
)

logger = logging.getLogger("tally.promotion")


# ══════════════════════════════════════════════════════════════
# VOCABULARY
# ══════════════════════════════════════════════════════════════

# Keys are lower-case with separators removed
RULE_TYPE_ALIASES = {
    "percent": RuleType.PERCENT,
    "percentage": RuleType.PERCENT,
    "amount": RuleType.FIXED_AMOUNT,
    "fixed": RuleType.FIXED_AMOUNT,
    "fixedamount": RuleType.FIXED_AMOUNT,
    "unit": RuleType.UNIT_PRICE_OVERRIDE,
    "unitprice": RuleType.UNIT_PRICE_OVERRIDE,
    "unitpriceoverride": RuleType.UNIT_PRICE_OVERRIDE,
    "bogo": RuleType.BUY_X_GET_Y,
    "buyxgety": RuleType.BUY_X_GET_Y,
    "bundle": RuleType.BUNDLE_PRICE,
    "bundleprice": RuleType.BUNDLE_PRICE,
    "shipping": RuleType.FREE_SHIPPING,
    "freeshipping": RuleType.FREE_SHIPPING,
}

WEEKDAY_ALIASES = {
    "mon": 0, "monday": 0,
    "tue": 1, "tues": 1, "tuesday": 1,
    "wed": 2, "wednesday": 2,
    "thu": 3, "thur": 3, "thurs": 3, "thursday": 3,
    "fri": 4, "friday": 4,
    "sat": 5, "saturday": 5,
    "sun": 6, "sunday": 6,
}

_TRUE_STRINGS = frozenset({"true", "1", "yes", "on", "y"})
_FALSE_STRINGS = frozenset({"false", "0", "no", "off", "n", ""})


# ══════════════════════════════════════════════════════════════
# FIELD PARSERS
# ══════════════════════════════════════════════════════════════

def _first(data: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = data.get(key)
        if value is not None and value != "":
            return value
    return None


def _either(preferred: Any, fallback: Any) -> Any:
    return fallback if preferred is None else preferred


def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def parse_rule_type(raw: Any, *, has_unit_price: bool = False) -> RuleType:
    if isinstance(raw, RuleType):
        return raw
    key = str(raw or "").strip().lower().replace("_", "").replace("-", "").replace(" ", "")
    if key not in RULE_TYPE_ALIASES:
        raise ValueError(f"unknown rule type {raw!r}.")
    rule_type = RULE_TYPE_ALIASES[key]
    # legacy records stored unit-price promotions as "amount" + unitPrice
    if rule_type is RuleType.FIXED_AMOUNT and has_unit_price:
        return RuleType.UNIT_PRICE_OVERRIDE
    return rule_type


def parse_weekdays(raw: Any) -> frozenset:
    days = set()
    for token in id_set(raw):
        if token.isdigit():
            day = int(token)
            if not 0 <= day <= 6:
                raise ValueError(f"weekday {token!r} out of range 0-6.")
            days.add(day)
            continue
        key = token.lower()
        if key not in WEEKDAY_ALIASES:
            raise ValueError(f"unknown weekday {token!r}.")
        days.add(WEEKDAY_ALIASES[key])
    return frozenset(days)


def parse_bool(raw: Any, *, default: bool) -> bool:
    if raw is None:
        return default
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, (int, Decimal)):
        return raw != 0
    text = str(raw).strip().lower()
    if text in _TRUE_STRINGS:
        return True
    if text in _FALSE_STRINGS:
        return False
    raise ValueError(f"cannot read {raw!r} as a boolean.")


def parse_optional_int(raw: Any, field_name: str) -> Optional[int]:
    if raw is None or raw == "":
        return None
    if isinstance(raw, bool):
        raise ValueError(f"{field_name} must be an integer, got bool.")
    number = to_decimal(raw, field_name)
    if number != number.to_integral_value():
        raise ValueError(f"{field_name} must be a whole number, got {raw!r}.")
    return int(number)


def parse_datetime(raw: Any, field_name: str) -> Optional[datetime]:
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return raw
    text = str(raw).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError as exc:
        raise ValueError(f"{field_name} {raw!r} is not ISO-8601.") from exc


# ══════════════════════════════════════════════════════════════
# RECORD → RULE
# ══════════════════════════════════════════════════════════════

def parse_rule(
    record: Mapping[str, Any],
    *,
    sequence: int = 0,
    config: PricingConfig = DEFAULT_PRICING_CONFIG,
) -> PromotionRule:
    """
    Build one PromotionRule from a rule-store record.

    Raises MalformedRuleError when the record cannot be used.
    """
    if not isinstance(record, Mapping):
        raise MalformedRuleError("<missing>", f"record must be a mapping, got {type(record).__name__}.")
    rule_id = str(_first(record, "id", "ruleId", "rule_id") or "").strip()
    if not rule_id:
        raise MalformedRuleError("<missing>", "id is required.")

    try:
        return _build_rule(rule_id, record, sequence=sequence, config=config)
    except MalformedRuleError:
        raise
    except pytz.UnknownTimeZoneError as exc:
        raise MalformedRuleError(rule_id, f"unknown timezone {exc.args[0]!r}.") from exc
    except (KeyError, TypeError, ValueError) as exc:
        raise MalformedRuleError(rule_id, str(exc)) from exc


def _build_rule(
    rule_id: str,
    record: Mapping[str, Any],
    *,
    sequence: int,
    config: PricingConfig,
) -> PromotionRule:
    raw_unit_price = _first(record, "unitPrice", "unit_price")
    unit_price = None if raw_unit_price is None else to_decimal(raw_unit_price, "unitPrice")
    rule_type = parse_rule_type(
        _first(record, "type", "ruleType", "rule_type"),
        has_unit_price=unit_price is not None,
    )

    raw_value = _first(record, "value")
    value = Decimal("0") if raw_value is None else to_decimal(raw_value, "value")

    scopes = _mapping(_first(record, "scopes", "scope"))
    scope = Scope(
        products=id_set(scopes.get("products")),
        categories=id_set(scopes.get("categories")),
        customers=id_set(scopes.get("customers")),
        brands=id_set(scopes.get("brands")),
        employees=id_set(scopes.get("employees")),
        custom_field_values=id_set(_first(scopes, "customFieldValues", "customFields")),
        channels=id_set(scopes.get("channels")),
    )

    schedule_data = _mapping(record.get("schedule"))
    schedule = Schedule(
        start=parse_datetime(_first(schedule_data, "startAt", "start") or record.get("startAt"), "startAt"),
        end=parse_datetime(_first(schedule_data, "endAt", "end") or record.get("endAt"), "endAt"),
        timezone=str(
            _first(schedule_data, "timezone") or record.get("timezone") or config.default_timezone
        ),
        weekdays=parse_weekdays(
            _first(schedule_data, "days", "weekdays") or _first(scopes, "days") or record.get("days")
        ),
    )

    limits_data = _mapping(record.get("limits"))
    limits = Limits(
        per_order=parse_optional_int(
            _either(_first(limits_data, "perOrder"), _first(record, "perOrderLimit")),
            "perOrder"),
        per_customer=parse_optional_int(
            _either(_first(limits_data, "perCustomer"), _first(record, "perCustomerLimit")),
            "perCustomer"),
        total_redemptions=parse_optional_int(
            _either(_first(limits_data, "totalRedemptions"), _first(record, "totalRedemptions")),
            "totalRedemptions"),
    )

    priority = parse_optional_int(record.get("priority"), "priority")
    explicit_sequence = parse_optional_int(record.get("sequence"), "sequence")
    code = _first(record, "code")

    return PromotionRule(
        rule_id=rule_id,
        name=str(_first(record, "name") or rule_id).strip(),
        rule_type=rule_type,
        value=value,
        unit_price=unit_price,
        code=str(code).strip() if code is not None else None,
        description=str(record.get("description") or ""),
        enabled=parse_bool(record.get("enabled"), default=True),
        stackable=parse_bool(record.get("stackable"), default=True),
        priority=config.default_priority if priority is None else priority,
        min_quantity=parse_optional_int(_first(record, "minQuantity", "min_quantity"), "minQuantity"),
        scope=scope,
        schedule=schedule,
        limits=limits,
        sequence=sequence if explicit_sequence is None else explicit_sequence,
    )


# ══════════════════════════════════════════════════════════════
# DATASET LOADER
# ══════════════════════════════════════════════════════════════

def load_rules(
    records: Iterable[Any],
    config: PricingConfig = DEFAULT_PRICING_CONFIG,
) -> Tuple[PromotionRule, ...]:
    """
    Load a rule dataset, skipping anything unusable.

    Already-built PromotionRule objects pass through untouched.
    A record whose id repeats an earlier one is skipped.
    """
    rules = []
    seen_ids = set()
    for position, record in enumerate(records):
        if isinstance(record, PromotionRule):
            rule = record
        else:
            try:
                rule = parse_rule(record, sequence=position, config=config)
            except MalformedRuleError as exc:
                logger.warning(f"Skipping malformed promotion rule '{exc.rule_id}': {exc.problem}")
                continue
        if rule.rule_id in seen_ids:
            logger.warning(f"Skipping duplicate promotion rule id '{rule.rule_id}'")
            continue
        seen_ids.add(rule.rule_id)
        rules.append(rule)
    return tuple(rules)
