"""
Tally Promotion Engine — Priority / Stacking Resolver
=======================================================
Orders candidates and prunes them per stacking semantics.

Ordering is deterministic: ascending priority, then authoring
sequence, then rule id.

A non-stackable rule is the last one admitted: it blocks every rule
of equal-or-lower precedence, but never evicts rules of higher
precedence that were already accepted before it.
"""

from __future__ import annotations

from typing import Iterable, List

from engines.promotion.candidates import Candidate


def resolve_order(candidates: Iterable[Candidate]) -> List[Candidate]:
    accepted: List[Candidate] = []
    for candidate in sorted(candidates, key=lambda c: c.rule.sort_key()):
        accepted.append(candidate)
        if not candidate.rule.stackable:
            break
    return accepted
