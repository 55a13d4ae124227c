"""Pure calculation engines."""

from reimbursement_ledger.engines.auto_match import (
    AutoMatchEngine,
    AutoMatchPlan,
    ProposedAllocation,
    build_rule_map,
    compute_allocation,
    is_in_recovery_window,
    sort_by_occurred_at,
)

__all__ = [
    "AutoMatchEngine",
    "AutoMatchPlan",
    "ProposedAllocation",
    "build_rule_map",
    "compute_allocation",
    "is_in_recovery_window",
    "sort_by_occurred_at",
]
