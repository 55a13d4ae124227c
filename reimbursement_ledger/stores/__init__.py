"""SQLAlchemy store adapters. They flush, never commit."""

from reimbursement_ledger.stores.base import BaseStore
from reimbursement_ledger.stores.category_rule_store import SqlCategoryRuleStore
from reimbursement_ledger.stores.expense_store import SqlCategoryStore, SqlExpenseStore
from reimbursement_ledger.stores.link_store import SqlReimbursementLinkStore

__all__ = [
    "BaseStore",
    "SqlCategoryRuleStore",
    "SqlCategoryStore",
    "SqlExpenseStore",
    "SqlReimbursementLinkStore",
]
