"""
Tally Ledger Store — Redemption Counter Model
===============================================
One row per (rule_id, customer_id). The rule-wide lifetime counter
is the row whose customer_id is the empty string.

RULES (NON-NEGOTIABLE):
- Rows are only ever incremented, never decremented or deleted
- Increments go through a conditional UPDATE (count < cap) so two
  tills can never both take the last redemption
"""

from django.db import models


GLOBAL_CUSTOMER = ""


class RedemptionCounter(models.Model):
    rule_id = models.CharField(max_length=255)
    customer_id = models.CharField(max_length=255, blank=True, default=GLOBAL_CUSTOMER)
    count = models.PositiveIntegerField(default=0)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "tally_redemption_counters"
        ordering = ["rule_id", "customer_id"]
        constraints = [
            models.UniqueConstraint(
                fields=("rule_id", "customer_id"),
                name="uq_redemption_rule_customer",
            ),
        ]

    def __str__(self) -> str:
        who = self.customer_id or "*"
        return f"{self.rule_id}/{who}: {self.count}"
