"""
Tally Promotion Engine — Scope Matcher
========================================
Decides whether a rule's targeting criteria match one cart line
within one checkout.

RULES (NON-NEGOTIABLE):
- Empty dimension = wildcard (passes)
- Non-empty dimensions are ANDed; members within one are ORed
- Category membership is resolved against the catalog index at
  evaluation time; the line's own category ids are used only when
  no catalog index is configured
- FAIL-CLOSED: missing data or any lookup failure on a dimension
  the rule restricts on makes that dimension fail
"""

from __future__ import annotations

import logging
from typing import Dict, Optional

from engines.promotion.catalog import CatalogIndex, PartyDirectory
from engines.promotion.models import CartLine, IdSet, Scope, TransactionContext

logger = logging.getLogger("tally.promotion")

_LOOKUP_FAILED = object()


class ScopeMatcher:
    """
    Scope matcher bound to one evaluation call.

    Catalog answers are memoized for the lifetime of the matcher
    only; build a new matcher per evaluation so catalog edits are
    seen immediately.
    """

    def __init__(
        self,
        catalog: Optional[CatalogIndex] = None,
        directory: Optional[PartyDirectory] = None,
    ) -> None:
        self._catalog = catalog
        self._directory = directory
        self._category_members: Dict[str, object] = {}
        self._brands: Dict[str, object] = {}
        self._parties: Dict[tuple, bool] = {}

    def matches(self, scope: Scope, context: TransactionContext, line: CartLine) -> bool:
        if scope.is_unrestricted:
            return True
        # context-level dimensions first, they are cheap
        if scope.channels and context.channel not in scope.channels:
            return False
        if scope.customers and not self._party_in("customer", context.customer_id, scope.customers):
            return False
        if scope.employees and not self._party_in("employee", context.employee_id, scope.employees):
            return False
        if scope.products and line.product_id not in scope.products:
            return False
        if scope.custom_field_values and not _intersects(
            line.custom_field_values, scope.custom_field_values
        ):
            return False
        if scope.brands and not self._brand_in(line, scope.brands):
            return False
        if scope.categories and not self._category_in(line, scope.categories):
            return False
        return True

    # ── Categories ────────────────────────────────────────────

    def _category_in(self, line: CartLine, categories: IdSet) -> bool:
        if self._catalog is None:
            return _intersects(line.category_ids, categories)
        for category_id in categories:
            members = self._members_of(category_id)
            if members is _LOOKUP_FAILED:
                continue
            if line.product_id in members:
                return True
        return False

    def _members_of(self, category_id: str):
        if category_id not in self._category_members:
            try:
                members: object = frozenset(
                    str(p) for p in self._catalog.products_in_category(category_id)
                )
            except Exception as exc:
                logger.warning(
                    f"Catalog lookup products_in_category('{category_id}') failed; "
                    f"dimension fails closed: {exc}"
                )
                members = _LOOKUP_FAILED
            self._category_members[category_id] = members
        return self._category_members[category_id]

    # ── Brands ────────────────────────────────────────────────

    def _brand_in(self, line: CartLine, brands: IdSet) -> bool:
        if self._catalog is None:
            return line.brand_id is not None and line.brand_id in brands
        if line.product_id not in self._brands:
            try:
                brand = self._catalog.brand_of(line.product_id)
                resolved: object = None if brand is None else str(brand)
            except Exception as exc:
                logger.warning(
                    f"Catalog lookup brand_of('{line.product_id}') failed; "
                    f"dimension fails closed: {exc}"
                )
                resolved = _LOOKUP_FAILED
            self._brands[line.product_id] = resolved
        brand = self._brands[line.product_id]
        return brand is not None and brand is not _LOOKUP_FAILED and brand in brands

    # ── Customers / employees ─────────────────────────────────

    def _party_in(self, kind: str, party_id: Optional[str], allowed: IdSet) -> bool:
        if party_id is None or party_id not in allowed:
            return False
        if self._directory is None:
            return True
        key = (kind, party_id)
        if key not in self._parties:
            lookup = (
                self._directory.customer_exists
                if kind == "customer"
                else self._directory.employee_exists
            )
            try:
                self._parties[key] = bool(lookup(party_id))
            except Exception as exc:
                logger.warning(
                    f"Directory lookup for {kind} '{party_id}' failed; "
                    f"dimension fails closed: {exc}"
                )
                self._parties[key] = False
        return self._parties[key]


def _intersects(values: IdSet, allowed: IdSet) -> bool:
    return not frozenset(values).isdisjoint(allowed)


def matches(
    scope: Scope,
    context: TransactionContext,
    line: CartLine,
    catalog: Optional[CatalogIndex] = None,
    directory: Optional[PartyDirectory] = None,
) -> bool:
    """One-shot scope check (no memoization across calls)."""
    return ScopeMatcher(catalog=catalog, directory=directory).matches(scope, context, line)
