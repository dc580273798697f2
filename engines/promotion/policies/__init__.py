"""
Tally Promotion Engine — Limit Policies
=========================================
Each policy inspects one rule and returns a RejectionReason when the
rule must be vetoed, or None when it may proceed.

Policies are independent gates: no precedence is defined between
them and failing any one excludes the rule.
"""

from __future__ import annotations

import logging
from typing import Optional

from core.policy.rejection import ReasonCode, RejectionReason
from engines.promotion.ledger import RedemptionLedger
from engines.promotion.models import PromotionRule, TransactionContext

logger = logging.getLogger("tally.promotion")


def per_order_limit_policy(
    rule: PromotionRule, applications_in_order: int,
) -> Optional[RejectionReason]:
    cap = rule.limits.per_order
    if cap is None or applications_in_order < cap:
        return None
    return RejectionReason(
        code=ReasonCode.PER_ORDER_LIMIT_REACHED,
        message=f"Rule '{rule.rule_id}' may apply at most {cap} time(s) per order.",
        policy_name="per_order_limit_policy")


def per_customer_limit_policy(
    rule: PromotionRule, context: TransactionContext, ledger: RedemptionLedger,
) -> Optional[RejectionReason]:
    cap = rule.limits.per_customer
    if cap is None:
        return None
    if context.customer_id is None:
        return RejectionReason(
            code=ReasonCode.CUSTOMER_REQUIRED,
            message=f"Rule '{rule.rule_id}' is limited per customer; checkout has no customer.",
            policy_name="per_customer_limit_policy")
    try:
        used = ledger.count(rule.rule_id, context.customer_id)
    except Exception as exc:
        return _ledger_unavailable(rule, "per_customer_limit_policy", exc)
    if used < cap:
        return None
    return RejectionReason(
        code=ReasonCode.PER_CUSTOMER_LIMIT_REACHED,
        message=(
            f"Customer '{context.customer_id}' already redeemed rule "
            f"'{rule.rule_id}' {used} of {cap} time(s)."
        ),
        policy_name="per_customer_limit_policy")


def total_redemptions_policy(
    rule: PromotionRule, ledger: RedemptionLedger,
) -> Optional[RejectionReason]:
    cap = rule.limits.total_redemptions
    if cap is None:
        return None
    try:
        used = ledger.total(rule.rule_id)
    except Exception as exc:
        return _ledger_unavailable(rule, "total_redemptions_policy", exc)
    if used < cap:
        return None
    return RejectionReason(
        code=ReasonCode.TOTAL_REDEMPTIONS_REACHED,
        message=f"Rule '{rule.rule_id}' reached its {cap} lifetime redemption(s).",
        policy_name="total_redemptions_policy")


def _ledger_unavailable(rule: PromotionRule, policy_name: str, exc: Exception) -> RejectionReason:
    logger.warning(f"Ledger read for rule '{rule.rule_id}' failed; rule excluded: {exc}")
    return RejectionReason(
        code=ReasonCode.LEDGER_UNAVAILABLE,
        message=f"Redemption ledger unavailable for rule '{rule.rule_id}'.",
        policy_name=policy_name)
