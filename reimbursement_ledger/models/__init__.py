"""SQLAlchemy ORM models. Importing this package registers every table."""

from reimbursement_ledger.models.approval import OperationApprovalModel
from reimbursement_ledger.models.audit_event import AuditAction, AuditEventModel
from reimbursement_ledger.models.category import CategoryModel
from reimbursement_ledger.models.category_rule import CategoryRuleModel
from reimbursement_ledger.models.expense import ExpenseModel
from reimbursement_ledger.models.reimbursement_link import ReimbursementLinkModel

__all__ = [
    "AuditAction",
    "AuditEventModel",
    "CategoryModel",
    "CategoryRuleModel",
    "ExpenseModel",
    "OperationApprovalModel",
    "ReimbursementLinkModel",
]
