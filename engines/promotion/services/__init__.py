"""
Tally Promotion Engine — Application Service
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, List, Mapping, Optional, Tuple, Union

from core.config.pricing import PricingConfig, pricing_config_from_settings
from core.policy.rejection import ReasonCode, RejectionReason
from core.time.clock import Clock, SystemClock
from engines.promotion.aggregator import PricingResult, aggregate
from engines.promotion.candidates import Candidate, candidates
from engines.promotion.catalog import CatalogIndex, PartyDirectory
from engines.promotion.errors import PromotionError
from engines.promotion.ledger import RedemptionLedger
from engines.promotion.limits import Enforcement, RejectedRule, enforce
from engines.promotion.models import TransactionContext
from engines.promotion.rules import load_rules
from engines.promotion.scope import ScopeMatcher
from engines.promotion.stacking import resolve_order

logger = logging.getLogger("tally.promotion")

ContextInput = Union[TransactionContext, Mapping[str, Any]]


@dataclass(frozen=True)
class CommitOutcome:
    result: PricingResult
    revoked_rule_ids: Tuple[str, ...]
    committed_at: datetime

    @property
    def requires_confirmation(self) -> bool:
        """True when the committed price differs from the preview."""
        return bool(self.revoked_rule_ids)


class PromotionService:
    def __init__(
        self,
        *,
        catalog: Optional[CatalogIndex] = None,
        directory: Optional[PartyDirectory] = None,
        ledger: Optional[RedemptionLedger] = None,
        clock: Optional[Clock] = None,
        config: Optional[PricingConfig] = None,
    ):
        self._catalog = catalog
        self._directory = directory
        self._ledger = ledger
        self._clock = clock or SystemClock()
        self._config = config or pricing_config_from_settings()

    @property
    def config(self) -> PricingConfig:
        return self._config

    def _context(self, context: ContextInput) -> TransactionContext:
        if isinstance(context, TransactionContext):
            return context
        return TransactionContext.from_dict(
            context, default_timezone=self._config.default_timezone)

    def _run(self, context: TransactionContext, rules: Iterable[Any]) -> Enforcement:
        loaded = load_rules(rules, self._config)
        matcher = ScopeMatcher(catalog=self._catalog, directory=self._directory)
        eligible = candidates(loaded, context, matcher)
        accepted = resolve_order(eligible)
        enforcement = enforce(accepted, context, self._ledger)
        logger.debug(
            f"Evaluated {len(loaded)} rule(s): {len(eligible)} candidate(s), "
            f"{len(accepted)} accepted, {len(enforcement.admitted)} admitted")
        return enforcement

    # ── preview ───────────────────────────────────────────────

    def evaluate(self, context: ContextInput, rules: Iterable[Any]) -> PricingResult:
        """Price a cart without touching redemption counters."""
        ctx = self._context(context)
        enforcement = self._run(ctx, rules)
        return aggregate(enforcement.admitted, ctx, enforcement.rejected, self._config)

    # ── commit ────────────────────────────────────────────────

    def commit(self, context: ContextInput, rules: Iterable[Any]) -> CommitOutcome:
        """
        Record redemptions for every applied rule.

        A rule whose counters cannot be incremented (a concurrent
        checkout took the last redemption) is revoked and the result
        recomputed without it. Revocation never re-admits rules the
        revoked one had blocked, but it raises the subtotals later rules
        see, so a rule that had no effect in the preview may take effect
        in the recomputed result. Such a rule is redeemed in turn, and
        the loop repeats until every applied rule holds a redemption.
        """
        if self._ledger is None:
            raise PromotionError("Commit requires a redemption ledger.")
        ctx = self._context(context)
        enforcement = self._run(ctx, rules)

        admitted: List[Candidate] = list(enforcement.admitted)
        by_id = {c.rule_id: c for c in admitted}
        result = aggregate(admitted, ctx, enforcement.rejected, self._config)
        recorded = set()
        revoked: List[RejectedRule] = []

        while True:
            lost = []
            for rule_id in result.applied_rule_ids:
                if rule_id in recorded:
                    continue
                if self._record_redemption(by_id[rule_id].rule, ctx):
                    recorded.add(rule_id)
                    continue
                logger.info(f"Rule '{rule_id}' revoked at commit: redemption cap reached concurrently")
                lost.append(RejectedRule(
                    rule_id=rule_id,
                    reason=RejectionReason(
                        code=ReasonCode.REDEMPTION_CONFLICT,
                        message=f"Rule '{rule_id}' could not be redeemed at commit.",
                        policy_name="commit")))
            if not lost:
                break
            revoked.extend(lost)
            lost_ids = {r.rule_id for r in lost}
            admitted = [c for c in admitted if c.rule_id not in lost_ids]
            result = aggregate(
                admitted, ctx, list(enforcement.rejected) + revoked, self._config)

        return CommitOutcome(
            result=result,
            revoked_rule_ids=tuple(r.rule_id for r in revoked),
            committed_at=self._clock.now_utc(),
        )

    def _record_redemption(self, rule, ctx: TransactionContext) -> bool:
        try:
            return self._ledger.try_increment(
                rule.rule_id,
                ctx.customer_id,
                per_customer=rule.limits.per_customer,
                total_redemptions=rule.limits.total_redemptions,
            )
        except Exception as exc:
            logger.warning(f"Ledger increment for rule '{rule.rule_id}' failed: {exc}")
            return False


def evaluate(
    context: ContextInput,
    rules: Iterable[Any],
    *,
    catalog: Optional[CatalogIndex] = None,
    directory: Optional[PartyDirectory] = None,
    ledger: Optional[RedemptionLedger] = None,
    config: Optional[PricingConfig] = None,
) -> PricingResult:
    """One-shot preview with a throwaway service."""
    service = PromotionService(
        catalog=catalog, directory=directory, ledger=ledger, config=config)
    return service.evaluate(context, rules)
