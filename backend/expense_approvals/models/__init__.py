from expense_approvals.models.company import Company
from expense_approvals.models.user import User
from expense_approvals.models.approval_rule import ApprovalRule, ApprovalRuleApprover
from expense_approvals.models.expense import Expense, ExpenseStatus
from expense_approvals.models.approval import ApprovalRequest, ApprovalStatus, ApprovalAction
from expense_approvals.models.audit import AuditLog

__all__ = [
    "Company",
    "User",
    "ApprovalRule", "ApprovalRuleApprover",
    "Expense", "ExpenseStatus",
    "ApprovalRequest", "ApprovalStatus", "ApprovalAction",
    "AuditLog",
]
