"""
Tally Promotion Engine — Rule Model & Rule Store Boundary Tests
=================================================================
Tests verify:
- Canonical identifier sets (one type, comma strings normalized)
- Record parsing: type aliases, legacy unit-price records,
  nested/flat limits, weekday sources, defaults
- Malformed records skipped (never raise out of load_rules)
- Transaction context parsing from checkout payloads
"""

import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from core.config.pricing import PricingConfig
from engines.promotion.errors import InvalidContextError, MalformedRuleError
from engines.promotion.models import (
    CartLine,
    Limits,
    PromotionRule,
    RuleType,
    Schedule,
    Scope,
    TransactionContext,
    id_set,
    to_decimal,
)
from engines.promotion.rules import load_rules, parse_rule, parse_rule_type, parse_weekdays


# ══════════════════════════════════════════════════════════════
# CANONICAL TYPES
# ══════════════════════════════════════════════════════════════

class TestIdSet:
    def test_comma_string(self):
        assert id_set("Beverages, Snacks,,Beverages") == ("Beverages", "Snacks")

    def test_list_keeps_first_position(self):
        assert id_set(["b", "a", "b", " c "]) == ("b", "a", "c")

    def test_none_is_empty(self):
        assert id_set(None) == ()

    def test_numbers_become_strings(self):
        assert id_set([1, 2, 2]) == ("1", "2")
        assert id_set(7) == ("7",)

    def test_scope_canonicalizes_every_dimension(self):
        scope = Scope(products="A,B", channels=["pos", "pos"])
        assert scope.products == ("A", "B")
        assert scope.channels == ("pos",)
        assert scope.restricted_dimensions() == ("products", "channels")
        assert not scope.is_unrestricted
        assert Scope().is_unrestricted


class TestToDecimal:
    def test_string_without_float_drift(self):
        assert to_decimal("0.10", "value") == Decimal("0.10")

    def test_float_goes_through_str(self):
        assert to_decimal(0.1, "value") == Decimal("0.1")

    def test_bool_rejected(self):
        with pytest.raises(ValueError, match="bool"):
            to_decimal(True, "value")

    def test_non_finite_rejected(self):
        with pytest.raises(ValueError, match="finite"):
            to_decimal("NaN", "value")


# ══════════════════════════════════════════════════════════════
# RULE MODEL VALIDATION
# ══════════════════════════════════════════════════════════════

class TestPromotionRuleValidation:
    def test_percent_over_hundred(self):
        with pytest.raises(MalformedRuleError, match="between 0 and 100"):
            PromotionRule(rule_id="r", name="r", rule_type=RuleType.PERCENT, value=Decimal("150"))

    def test_negative_value(self):
        with pytest.raises(MalformedRuleError, match="non-negative"):
            PromotionRule(rule_id="r", name="r", rule_type=RuleType.FIXED_AMOUNT, value=Decimal("-1"))

    def test_bundle_requires_products(self):
        with pytest.raises(MalformedRuleError, match="at least one product"):
            PromotionRule(
                rule_id="r", name="r", rule_type=RuleType.BUNDLE_PRICE,
                unit_price=Decimal("500"))

    def test_unit_price_required(self):
        with pytest.raises(MalformedRuleError, match="requires unit_price"):
            PromotionRule(rule_id="r", name="r", rule_type=RuleType.UNIT_PRICE_OVERRIDE)

    def test_buy_x_get_y_requires_min_quantity(self):
        with pytest.raises(MalformedRuleError, match="min_quantity"):
            PromotionRule(rule_id="r", name="r", rule_type=RuleType.BUY_X_GET_Y, value=Decimal("100"))

    def test_min_quantity_ignored_for_ungated_types(self):
        rule = PromotionRule(
            rule_id="r", name="r", rule_type=RuleType.PERCENT,
            value=Decimal("10"), min_quantity=5)
        assert rule.required_quantity == 1

    def test_required_quantity_for_gated_types(self):
        rule = PromotionRule(
            rule_id="r", name="r", rule_type=RuleType.BUY_X_GET_Y,
            value=Decimal("100"), min_quantity=3)
        assert rule.required_quantity == 3
        assert rule.applies_per_line

    def test_malformed_error_carries_rule_id(self):
        with pytest.raises(MalformedRuleError) as info:
            PromotionRule(rule_id="r-9", name="r", rule_type=RuleType.PERCENT, value=Decimal("101"))
        assert info.value.rule_id == "r-9"

    def test_limits_reject_negative(self):
        with pytest.raises(ValueError, match="non-negative integer"):
            Limits(per_order=-1)

    def test_limits_flags(self):
        assert Limits().is_unlimited
        assert not Limits(per_order=1).uses_ledger
        assert Limits(total_redemptions=3).uses_ledger

    def test_schedule_localizes_naive_bounds(self):
        schedule = Schedule(start=datetime(2026, 3, 1, 9, 0), timezone="Asia/Tokyo")
        assert schedule.start.utcoffset() == timedelta(hours=9)

    def test_schedule_rejects_inverted_window(self):
        with pytest.raises(ValueError, match="must be <="):
            Schedule(
                start=datetime(2026, 3, 2, tzinfo=timezone.utc),
                end=datetime(2026, 3, 1, tzinfo=timezone.utc),
            )


# ══════════════════════════════════════════════════════════════
# RECORD PARSING
# ══════════════════════════════════════════════════════════════

class TestParseRuleType:
    @pytest.mark.parametrize("raw,expected", [
        ("percent", RuleType.PERCENT),
        ("Percent", RuleType.PERCENT),
        ("amount", RuleType.FIXED_AMOUNT),
        ("FixedAmount", RuleType.FIXED_AMOUNT),
        ("unit", RuleType.UNIT_PRICE_OVERRIDE),
        ("bogo", RuleType.BUY_X_GET_Y),
        ("buy_x_get_y", RuleType.BUY_X_GET_Y),
        ("bundle", RuleType.BUNDLE_PRICE),
        ("shipping", RuleType.FREE_SHIPPING),
        ("free-shipping", RuleType.FREE_SHIPPING),
    ])
    def test_aliases(self, raw, expected):
        assert parse_rule_type(raw) is expected

    def test_legacy_amount_with_unit_price(self):
        assert parse_rule_type("amount", has_unit_price=True) is RuleType.UNIT_PRICE_OVERRIDE

    def test_unknown(self):
        with pytest.raises(ValueError, match="unknown rule type"):
            parse_rule_type("loyalty")


class TestParseWeekdays:
    def test_names_and_numbers(self):
        assert parse_weekdays("Sat, sunday, 0") == frozenset({5, 6, 0})

    def test_out_of_range(self):
        with pytest.raises(ValueError, match="out of range"):
            parse_weekdays([7])


class TestParseRule:
    def test_full_record(self):
        rule = parse_rule({
            "id": "bev-10",
            "name": "Beverages 10%",
            "type": "percent",
            "value": "10",
            "priority": 10,
            "stackable": "false",
            "scopes": {"categories": "Beverages, Snacks", "channels": ["pos"]},
            "schedule": {
                "startAt": "2026-03-01T00:00:00",
                "endAt": "2026-03-31T23:59:59",
                "timezone": "America/Santiago",
                "days": ["Sat", "Sun"],
            },
            "limits": {"perOrder": 1, "perCustomer": 2, "totalRedemptions": 100},
        })
        assert rule.rule_type is RuleType.PERCENT
        assert rule.value == Decimal("10")
        assert rule.priority == 10
        assert rule.stackable is False
        assert rule.scope.categories == ("Beverages", "Snacks")
        assert rule.schedule.weekdays == frozenset({5, 6})
        assert rule.schedule.start.tzinfo is not None
        assert rule.limits == Limits(per_order=1, per_customer=2, total_redemptions=100)

    def test_defaults(self):
        rule = parse_rule({"id": "r1", "type": "shipping"})
        assert rule.priority == 100
        assert rule.enabled is True
        assert rule.stackable is True
        assert rule.name == "r1"
        assert rule.scope.is_unrestricted
        assert rule.limits.is_unlimited

    def test_default_priority_from_config(self):
        rule = parse_rule({"id": "r1", "type": "shipping"}, config=PricingConfig(default_priority=50))
        assert rule.priority == 50

    def test_flat_limits(self):
        rule = parse_rule({
            "id": "r1", "type": "percent", "value": 5,
            "perOrderLimit": 1, "perCustomerLimit": "3", "totalRedemptions": 10,
        })
        assert rule.limits == Limits(per_order=1, per_customer=3, total_redemptions=10)

    def test_zero_limit_is_kept(self):
        rule = parse_rule({
            "id": "r1", "type": "percent", "value": 5,
            "limits": {"perOrder": 0}, "perOrderLimit": 4,
        })
        assert rule.limits.per_order == 0

    def test_days_under_scopes(self):
        rule = parse_rule({
            "id": "r1", "type": "percent", "value": 5,
            "scopes": {"days": "Mon,Tue"},
        })
        assert rule.schedule.weekdays == frozenset({0, 1})

    def test_legacy_unit_price_record(self):
        rule = parse_rule({"id": "u1", "type": "amount", "value": 0, "unitPrice": "2.50", "minQuantity": 3})
        assert rule.rule_type is RuleType.UNIT_PRICE_OVERRIDE
        assert rule.unit_price == Decimal("2.50")
        assert rule.min_quantity == 3

    def test_custom_fields_alias(self):
        rule = parse_rule({
            "id": "r1", "type": "percent", "value": 5,
            "scopes": {"customFields": "organic"},
        })
        assert rule.scope.custom_field_values == ("organic",)

    def test_missing_id(self):
        with pytest.raises(MalformedRuleError, match="id is required"):
            parse_rule({"type": "percent"})

    def test_unknown_timezone(self):
        with pytest.raises(MalformedRuleError, match="unknown timezone"):
            parse_rule({"id": "r1", "type": "percent", "value": 1, "schedule": {"timezone": "Nowhere/Zone"}})

    def test_fractional_limit(self):
        with pytest.raises(MalformedRuleError, match="whole number"):
            parse_rule({"id": "r1", "type": "percent", "value": 1, "limits": {"perOrder": 1.5}})

    def test_not_a_mapping(self):
        with pytest.raises(MalformedRuleError, match="must be a mapping"):
            parse_rule(["id", "r1"])


class TestLoadRules:
    def test_skips_malformed_and_duplicates(self, caplog):
        caplog.set_level(logging.WARNING, logger="tally.promotion")
        rules = load_rules([
            {"id": "ok-1", "type": "percent", "value": 10},
            {"id": "bad", "type": "percent", "value": 250},
            {"id": "ok-1", "type": "amount", "value": 5},
            {"id": "ok-2", "type": "bogo", "value": 100, "minQuantity": 2},
        ])
        assert [r.rule_id for r in rules] == ["ok-1", "ok-2"]
        assert rules[0].rule_type is RuleType.PERCENT
        assert "Skipping malformed promotion rule 'bad'" in caplog.text
        assert "Skipping duplicate promotion rule id 'ok-1'" in caplog.text

    def test_sequence_follows_dataset_position(self):
        rules = load_rules([
            {"id": "b", "type": "percent", "value": 1},
            {"id": "a", "type": "percent", "value": 1},
        ])
        assert [r.sequence for r in rules] == [0, 1]

    def test_built_rules_pass_through(self):
        rule = PromotionRule(rule_id="x", name="x", rule_type=RuleType.FREE_SHIPPING)
        assert load_rules([rule]) == (rule,)


# ══════════════════════════════════════════════════════════════
# CONTEXT PARSING
# ══════════════════════════════════════════════════════════════

class TestTransactionContext:
    def test_from_dict(self):
        ctx = TransactionContext.from_dict({
            "now": {"instant": "2026-03-07T15:00:00Z", "timezone": "America/Santiago"},
            "items": [
                {"productId": "coke", "quantity": 2, "unitPrice": "1.25", "categoryIds": "Beverages"},
            ],
            "channel": "pos",
            "customerId": "c-1",
            "shippingFee": "4.99",
        })
        assert ctx.instant == datetime(2026, 3, 7, 15, 0, tzinfo=timezone.utc)
        assert ctx.items[0].subtotal == Decimal("2.50")
        assert ctx.items[0].category_ids == ("Beverages",)
        assert ctx.customer_id == "c-1"
        assert ctx.shipping_fee == Decimal("4.99")

    def test_naive_instant_uses_till_zone(self):
        ctx = TransactionContext.from_dict({
            "now": {"instant": "2026-03-07T12:00:00", "timezone": "Asia/Tokyo"},
            "items": [],
        })
        assert ctx.instant.utcoffset() == timedelta(hours=9)

    def test_blank_customer_is_anonymous(self):
        ctx = TransactionContext.from_dict({
            "now": {"instant": "2026-03-07T12:00:00Z"},
            "items": [],
            "customerId": "  ",
        })
        assert ctx.customer_id is None

    def test_missing_instant(self):
        with pytest.raises(InvalidContextError, match="now.instant"):
            TransactionContext.from_dict({"items": []})

    def test_unknown_timezone(self):
        with pytest.raises(InvalidContextError, match="unknown timezone"):
            TransactionContext.from_dict({"now": {"instant": "2026-03-07T12:00:00Z", "timezone": "Mars/Base"}})

    def test_line_missing_product(self):
        with pytest.raises(InvalidContextError, match="productId"):
            CartLine.from_dict({"quantity": 1, "unitPrice": "1"})

    def test_negative_price(self):
        with pytest.raises(InvalidContextError, match="unit_price"):
            CartLine.from_dict({"productId": "p", "quantity": 1, "unitPrice": "-1"})
