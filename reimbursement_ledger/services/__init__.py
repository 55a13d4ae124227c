"""
Services -- stateful orchestration over the stores.

ReimbursementLedger owns the transaction boundary; the approval gate, audit
sink and status service flush within it.
"""

from reimbursement_ledger.services.approval_service import ApprovalService
from reimbursement_ledger.services.auditor_service import AuditorService, AuditRecord
from reimbursement_ledger.services.reimbursement_ledger import (
    DELETE_CATEGORY_RULE_ACTION,
    UNLINK_ACTION,
    ReimbursementLedger,
)
from reimbursement_ledger.services.status_service import ReimbursementStatusService

__all__ = [
    "DELETE_CATEGORY_RULE_ACTION",
    "UNLINK_ACTION",
    "ApprovalService",
    "AuditRecord",
    "AuditorService",
    "ReimbursementLedger",
    "ReimbursementStatusService",
]
