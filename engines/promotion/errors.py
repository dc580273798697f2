"""
Tally Promotion Engine — Errors
=================================
Error types raised at the engine's boundaries.

Evaluation itself never raises for bad rules or flaky collaborators:
malformed rules are skipped and lookups fail closed. These types
exist so the boundaries can say precisely what went wrong.
"""


class PromotionError(Exception):
    """Base error for promotion engine operations."""
    pass


class MalformedRuleError(PromotionError, ValueError):
    """A rule record cannot be turned into a usable rule."""

    def __init__(self, rule_id: str, problem: str):
        self.rule_id = rule_id
        self.problem = problem
        super().__init__(f"Rule '{rule_id}' is malformed: {problem}")


class CatalogLookupError(PromotionError):
    """A catalog or directory collaborator could not answer."""

    def __init__(self, lookup: str, key: str, detail: str = ""):
        self.lookup = lookup
        self.key = key
        message = f"Catalog lookup '{lookup}' failed for '{key}'."
        if detail:
            message = f"{message} {detail}"
        super().__init__(message)


class InvalidContextError(PromotionError, ValueError):
    """The transaction context payload is unusable."""
    pass
