"""
Tally Policy Layer — Public API
=================================
Structured explanations for rules vetoed during evaluation.
"""

from core.policy.rejection import ReasonCode, RejectionReason

__all__ = [
    "ReasonCode",
    "RejectionReason",
]
