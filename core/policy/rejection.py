"""
Tally Policy Layer — Rejection Model
=======================================
Structured reasons for rules vetoed during evaluation.

This is NOT an exception. It is an explanation structure
that travels in the pricing result for diagnostics and UI.

Every rejection must be:
- Deterministic (same input → same rejection)
- Auditable (code + message + policy)
- Machine-readable (code)
- Human-readable (message)
"""

from __future__ import annotations

from dataclasses import dataclass


# ══════════════════════════════════════════════════════════════
# REJECTION REASON (frozen explanation structure)
# ══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class RejectionReason:
    """
    Structured reason for a rule rejection.

    Fields:
        code:        Machine-readable rejection code (e.g. 'PerOrderLimitReached').
        message:     Human-readable explanation.
        policy_name: Name of the policy that caused rejection.
    """

    code: str
    message: str
    policy_name: str

    def __post_init__(self):
        if not self.code or not isinstance(self.code, str):
            raise ValueError("code must be a non-empty string.")

        if not self.message or not isinstance(self.message, str):
            raise ValueError("message must be a non-empty string.")

        if not self.policy_name or not isinstance(self.policy_name, str):
            raise ValueError("policy_name must be a non-empty string.")

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "policy_name": self.policy_name,
        }


# ══════════════════════════════════════════════════════════════
# STANDARD REJECTION CODES
# ══════════════════════════════════════════════════════════════

class ReasonCode:
    """
    Known rejection codes.

    Values are the wire codes reported to checkout callers.
    """

    # ── Redemption limits ─────────────────────────────────────
    PER_ORDER_LIMIT_REACHED = "PerOrderLimitReached"
    PER_CUSTOMER_LIMIT_REACHED = "PerCustomerLimitReached"
    TOTAL_REDEMPTIONS_REACHED = "TotalRedemptionsReached"

    # ── Fail-closed outcomes ──────────────────────────────────
    CUSTOMER_REQUIRED = "CustomerRequired"
    LEDGER_UNAVAILABLE = "LedgerUnavailable"

    # ── Commit ────────────────────────────────────────────────
    REDEMPTION_CONFLICT = "RedemptionConflict"
