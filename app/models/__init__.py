"""Application data models exposed for easy imports."""
from app import db  # noqa: F401
from .company import Company  # noqa: F401
from .user import APPROVER_ROLES, User, UserRole  # noqa: F401
from .expense import (
    ApprovalAction,
    ApprovalHistoryEntry,
    Expense,
    ExpenseCategory,
    ExpenseStatus,
    TERMINAL_STATUSES,
)  # noqa: F401
from .approval import ApprovalRule, Classification, FlowType, RuleApprover  # noqa: F401
from .audit import AuditLog  # noqa: F401

__all__ = [
    "db",
    "Company",
    "User",
    "UserRole",
    "APPROVER_ROLES",
    "Expense",
    "ExpenseCategory",
    "ExpenseStatus",
    "TERMINAL_STATUSES",
    "ApprovalAction",
    "ApprovalHistoryEntry",
    "ApprovalRule",
    "RuleApprover",
    "FlowType",
    "Classification",
    "AuditLog",
]
