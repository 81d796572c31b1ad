"""Expense model definitions."""
from __future__ import annotations

import enum
from datetime import datetime

from app import db


class ExpenseStatus(enum.Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"


TERMINAL_STATUSES = frozenset({ExpenseStatus.APPROVED, ExpenseStatus.REJECTED})


class ExpenseCategory(enum.Enum):
    FOOD = "food"
    TRAVEL = "travel"
    ACCOMMODATION = "accommodation"
    TRANSPORT = "transport"
    OFFICE = "office"
    ENTERTAINMENT = "entertainment"
    OTHER = "other"


class ApprovalAction(enum.Enum):
    APPROVED = "approved"
    REJECTED = "rejected"


class Expense(db.Model):
    __tablename__ = "expenses"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    description = db.Column(db.String(500), nullable=True)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    currency = db.Column(db.String(3), nullable=False)
    amount_in_base_currency = db.Column(db.Numeric(12, 2), nullable=False)
    exchange_rate = db.Column(db.Numeric(18, 8), nullable=False)
    exchange_rate_fallback = db.Column(db.Boolean, default=False, nullable=False)
    category = db.Column(
        db.Enum(ExpenseCategory, name="expense_category"), nullable=False, default=ExpenseCategory.OTHER
    )
    expense_date = db.Column(db.Date, nullable=False)
    status = db.Column(
        db.Enum(ExpenseStatus, name="expense_status"),
        nullable=False,
        default=ExpenseStatus.DRAFT,
        index=True,
    )
    remarks = db.Column(db.String(1000), nullable=True)
    current_approver_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    approval_rule_id = db.Column(db.Integer, db.ForeignKey("approval_rules.id"), nullable=True)
    version = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime, server_default=db.func.now(), nullable=False)
    updated_at = db.Column(
        db.DateTime, server_default=db.func.now(), onupdate=db.func.now(), nullable=False
    )

    company = db.relationship("Company", back_populates="expenses", lazy="joined")
    employee = db.relationship("User", foreign_keys=[employee_id], lazy="joined")
    current_approver = db.relationship("User", foreign_keys=[current_approver_id], lazy="joined")
    approval_rule = db.relationship("ApprovalRule", lazy="select")
    approval_history = db.relationship(
        "ApprovalHistoryEntry",
        back_populates="expense",
        lazy="selectin",
        order_by="ApprovalHistoryEntry.id",
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "employee": self.employee.to_summary() if self.employee else None,
            "description": self.description,
            "amount": float(self.amount) if self.amount is not None else None,
            "currency": self.currency,
            "amount_in_base_currency": float(self.amount_in_base_currency)
            if self.amount_in_base_currency is not None
            else None,
            "exchange_rate": float(self.exchange_rate) if self.exchange_rate is not None else None,
            "exchange_rate_fallback": self.exchange_rate_fallback,
            "category": self.category.value if self.category else None,
            "expense_date": self.expense_date.isoformat() if self.expense_date else None,
            "status": self.status.value if self.status else None,
            "is_terminal": self.is_terminal,
            "remarks": self.remarks,
            "current_approver": self.current_approver.to_summary() if self.current_approver else None,
            "approval_rule_id": self.approval_rule_id,
            "approval_history": [entry.to_dict() for entry in self.approval_history],
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return f"<Expense id={self.id} status={self.status.value if self.status else None}>"


class ApprovalHistoryEntry(db.Model):
    """One recorded approve/reject decision. Rows are only ever inserted."""

    __tablename__ = "expense_approval_history"

    id = db.Column(db.Integer, primary_key=True)
    expense_id = db.Column(db.Integer, db.ForeignKey("expenses.id"), nullable=False, index=True)
    approver_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    action = db.Column(db.Enum(ApprovalAction, name="approval_action"), nullable=False)
    comment = db.Column(db.String(500), nullable=True)
    timestamp = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    expense = db.relationship("Expense", back_populates="approval_history")
    approver = db.relationship("User", lazy="joined")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "approver": self.approver.to_summary() if self.approver else None,
            "action": self.action.value if self.action else None,
            "comment": self.comment,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }

    def __repr__(self) -> str:
        return (
            f"<ApprovalHistoryEntry expense_id={self.expense_id} "
            f"action={self.action.value if self.action else None}>"
        )
