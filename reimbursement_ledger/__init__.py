"""
Reimbursement Ledger

Tracks money owed back on shared or work expenses:
- Partial, many-to-many allocation of inflows against reimbursable outflows
- Conservation checks on both sides of every allocation
- Status derivation (none / expected / partial / settled / written_off)
- Greedy rule-driven auto-match within a recovery window
- Two-phase, payload-bound approval for destructive operations
- Audit record for every mutation
"""

__version__ = "0.1.0"
