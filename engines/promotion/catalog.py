"""
Tally Promotion Engine — Catalog Collaborators
================================================
Interfaces the engine consumes to resolve catalog and party
membership at evaluation time.

Category membership is never copied into a rule. It is asked of
the catalog index on every evaluation, so catalog edits apply to
the very next checkout.

Implementations may raise anything when they cannot answer; the
scope matcher treats any failure as "does not match".
"""

from __future__ import annotations

from typing import Dict, FrozenSet, Iterable, Optional, Protocol, Set

from engines.promotion.errors import CatalogLookupError


# ══════════════════════════════════════════════════════════════
# PROTOCOLS
# ══════════════════════════════════════════════════════════════

class CatalogIndex(Protocol):
    """Product ↔ category/brand membership lookups."""

    def products_in_category(self, category_id: str) -> Iterable[str]:
        """Product ids currently filed under the category."""
        ...  # pragma: no cover

    def brand_of(self, product_id: str) -> Optional[str]:
        """Brand id of a product, or None when it has none."""
        ...  # pragma: no cover


class PartyDirectory(Protocol):
    """Customer and employee existence lookups."""

    def customer_exists(self, customer_id: str) -> bool:
        ...  # pragma: no cover

    def employee_exists(self, employee_id: str) -> bool:
        ...  # pragma: no cover


# ══════════════════════════════════════════════════════════════
# IN-MEMORY IMPLEMENTATIONS (for testing / single-till setups)
# ══════════════════════════════════════════════════════════════

class InMemoryCatalogIndex:
    """
    Simple in-memory catalog index.

    A category is known once a product has been filed under it; it
    stays known (possibly empty) after its products are unfiled.
    """

    def __init__(self) -> None:
        self._categories: Dict[str, Set[str]] = {}
        self._brands: Dict[str, str] = {}

    def file_product(self, product_id: str, *category_ids: str) -> None:
        for category_id in category_ids:
            self._categories.setdefault(category_id, set()).add(product_id)

    def unfile_product(self, product_id: str, category_id: str) -> None:
        self._categories.get(category_id, set()).discard(product_id)

    def set_brand(self, product_id: str, brand_id: Optional[str]) -> None:
        if brand_id is None:
            self._brands.pop(product_id, None)
        else:
            self._brands[product_id] = brand_id

    def products_in_category(self, category_id: str) -> FrozenSet[str]:
        if category_id not in self._categories:
            raise CatalogLookupError(
                "products_in_category", category_id, "No such category is filed.")
        return frozenset(self._categories[category_id])

    def brand_of(self, product_id: str) -> Optional[str]:
        return self._brands.get(product_id)


class InMemoryPartyDirectory:
    """Simple in-memory customer/employee directory."""

    def __init__(
        self,
        customers: Iterable[str] = (),
        employees: Iterable[str] = (),
    ) -> None:
        self._customers = set(customers)
        self._employees = set(employees)

    def customer_exists(self, customer_id: str) -> bool:
        return customer_id in self._customers

    def employee_exists(self, employee_id: str) -> bool:
        return employee_id in self._employees
