"""Approval-rule models."""
from __future__ import annotations

import enum
from decimal import Decimal
from typing import List, NamedTuple

from app import db
from app.models.expense import ExpenseCategory


class FlowType(enum.Enum):
    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"
    PERCENTAGE = "percentage"


class Classification(NamedTuple):
    """The facts about an expense that rule conditions are matched against."""

    amount_in_base_currency: Decimal
    category: ExpenseCategory


class ApprovalRule(db.Model):
    __tablename__ = "approval_rules"

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.String(500), nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False, index=True)

    # conditions
    amount_threshold = db.Column(db.Numeric(12, 2), default=0, nullable=False, index=True)
    categories = db.Column(db.JSON, nullable=False, default=list)
    departments = db.Column(db.JSON, nullable=False, default=list)

    # approval flow
    flow_type = db.Column(
        db.Enum(FlowType, name="approval_flow_type"), nullable=False, default=FlowType.SEQUENTIAL
    )
    percentage_required = db.Column(db.Integer, nullable=False, default=100)
    is_manager_approver = db.Column(db.Boolean, nullable=False, default=True)
    manager_approval_required = db.Column(db.Boolean, nullable=False, default=True)

    # escalation, stored for a future scheduler
    auto_escalate_after = db.Column(db.Integer, nullable=False, default=72)
    escalation_approver_ids = db.Column(db.JSON, nullable=False, default=list)

    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime, server_default=db.func.now(), nullable=False)
    updated_at = db.Column(
        db.DateTime, server_default=db.func.now(), onupdate=db.func.now(), nullable=False
    )

    company = db.relationship("Company", back_populates="approval_rules", lazy="joined")
    created_by = db.relationship("User", foreign_keys=[created_by_id], lazy="select")
    approvers = db.relationship(
        "RuleApprover",
        back_populates="rule",
        lazy="selectin",
        order_by="RuleApprover.id",
        cascade="all, delete-orphan",
    )

    def applies_to(self, classification: Classification) -> bool:
        """Whether this rule's conditions cover the classified expense."""
        if not self.is_active:
            return False
        if Decimal(classification.amount_in_base_currency) < Decimal(self.amount_threshold or 0):
            return False
        categories = self.categories or []
        if categories and classification.category.value not in categories:
            return False
        return True

    def sorted_approvers(self) -> List["RuleApprover"]:
        # sorted() is stable, so equal orders keep their list position
        return sorted(self.approvers, key=lambda approver: approver.order)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
            "conditions": {
                "amount_threshold": float(self.amount_threshold)
                if self.amount_threshold is not None
                else 0.0,
                "categories": list(self.categories or []),
                "departments": list(self.departments or []),
            },
            "approval_flow": {
                "type": self.flow_type.value if self.flow_type else None,
                "approvers": [approver.to_dict() for approver in self.sorted_approvers()],
                "percentage_required": self.percentage_required,
                "is_manager_approver": self.is_manager_approver,
                "manager_approval_required": self.manager_approval_required,
            },
            "escalation_rules": {
                "auto_escalate_after": self.auto_escalate_after,
                "escalation_approvers": list(self.escalation_approver_ids or []),
            },
            "created_by_id": self.created_by_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return f"<ApprovalRule id={self.id} name={self.name!r} threshold={self.amount_threshold}>"


class RuleApprover(db.Model):
    __tablename__ = "rule_approvers"

    id = db.Column(db.Integer, primary_key=True)
    rule_id = db.Column(db.Integer, db.ForeignKey("approval_rules.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    order = db.Column(db.Integer, nullable=False)
    is_required = db.Column(db.Boolean, nullable=False, default=True)

    rule = db.relationship("ApprovalRule", back_populates="approvers")
    user = db.relationship("User", lazy="joined")

    def to_dict(self) -> dict:
        return {
            "user": self.user_id,
            "order": self.order,
            "is_required": self.is_required,
        }

    def __repr__(self) -> str:
        return f"<RuleApprover rule_id={self.rule_id} user_id={self.user_id} order={self.order}>"
