"""Tenant-scoped lookups over the entity store.

Every lookup that takes a ``company_id`` treats records belonging to another
company exactly like missing ones, so callers never learn that a foreign
record exists.
"""
from __future__ import annotations

from typing import List, Optional

from app import db
from app.models import APPROVER_ROLES, ApprovalRule, Company, Expense, User
from app.errors import NotFoundError


def find_company(company_id: int) -> Optional[Company]:
    return db.session.get(Company, company_id)


def find_user(user_id: int, company_id: Optional[int] = None) -> Optional[User]:
    user = db.session.get(User, user_id)
    if user is None or (company_id is not None and user.company_id != company_id):
        return None
    return user


def find_expense(expense_id: int, company_id: int) -> Optional[Expense]:
    expense = db.session.get(Expense, expense_id)
    if expense is None or expense.company_id != company_id:
        return None
    return expense


def find_rule(rule_id: int, company_id: int) -> Optional[ApprovalRule]:
    rule = db.session.get(ApprovalRule, rule_id)
    if rule is None or rule.company_id != company_id:
        return None
    return rule


def find_active_rules_for_company(company_id: int) -> List[ApprovalRule]:
    """Active rules, highest threshold first, newest first among equals."""
    return (
        ApprovalRule.query.filter_by(company_id=company_id, is_active=True)
        .order_by(
            ApprovalRule.amount_threshold.desc(),
            ApprovalRule.created_at.desc(),
            ApprovalRule.id.desc(),
        )
        .all()
    )


def find_approvers(company_id: int) -> List[User]:
    return (
        User.query.filter(
            User.company_id == company_id,
            User.role.in_(list(APPROVER_ROLES)),
            User.is_active.is_(True),
        )
        .order_by(User.first_name.asc(), User.last_name.asc(), User.id.asc())
        .all()
    )


def get_company_or_404(company_id: int) -> Company:
    company = find_company(company_id)
    if company is None:
        raise NotFoundError("Company not found.")
    return company


def get_user_or_404(user_id: int, company_id: int) -> User:
    user = find_user(user_id, company_id)
    if user is None:
        raise NotFoundError("User not found.")
    return user


def get_expense_or_404(expense_id: int, company_id: int) -> Expense:
    expense = find_expense(expense_id, company_id)
    if expense is None:
        raise NotFoundError("Expense not found.")
    return expense


def get_rule_or_404(rule_id: int, company_id: int) -> ApprovalRule:
    rule = find_rule(rule_id, company_id)
    if rule is None:
        raise NotFoundError("Approval rule not found.")
    return rule


def find_direct_reports(manager_id: int, company_id: int) -> List[User]:
    """Active users reporting straight to ``manager_id``, by name."""
    return (
        User.query.filter(
            User.company_id == company_id,
            User.manager_id == manager_id,
            User.is_active.is_(True),
        )
        .order_by(User.first_name.asc(), User.last_name.asc(), User.id.asc())
        .all()
    )
