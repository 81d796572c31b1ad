"""Expense lifecycle: drafting, submission and the approval chain.

Every operation takes the acting user explicitly, runs as one transaction
and either commits all of its changes or none of them. State transitions::

    draft --submit--> submitted                (no approver required)
    draft --submit--> pending_approval         (a rule supplied an approver)
    pending_approval --approve--> pending_approval | approved
    pending_approval --reject--> rejected

``approved`` and ``rejected`` are terminal.
"""
from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal, InvalidOperation
from math import ceil
from typing import Any, Dict, List, Optional, Tuple

from flask import current_app
from sqlalchemy import or_, select
from sqlalchemy.orm.exc import StaleDataError

from app import db
from app.errors import (
    AuthorizationError,
    ExternalServiceError,
    InvalidStateError,
    ValidationError,
)
from app.models import (
    ApprovalAction,
    ApprovalHistoryEntry,
    Classification,
    Expense,
    ExpenseCategory,
    ExpenseStatus,
    User,
    UserRole,
)
from app.services import approver_resolver, audit_service, currency_service, repository, rule_selector
from app.services.actor import ActingUser

logger = logging.getLogger(__name__)

DESCRIPTION_MAX_LENGTH = 500
REMARKS_MAX_LENGTH = 1000
COMMENT_MAX_LENGTH = 500
MAX_AMOUNT = Decimal("10000000000")
EDITABLE_FIELDS = frozenset({"description", "amount", "currency", "category", "expense_date", "remarks"})


# Field cleaning -------------------------------------------------------------

def _clean_amount(value: Any) -> Decimal:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError("Invalid amount.") from None
    if not amount.is_finite():
        raise ValidationError("Invalid amount.")
    if amount >= MAX_AMOUNT:
        raise ValidationError("Amount is too large.")
    # Stored amounts are whole cents; anything that rounds to zero is not positive.
    amount = amount.quantize(currency_service.CENTS)
    if amount <= 0:
        raise ValidationError("Amount must be positive.")
    return amount


def _clean_currency(value: Any) -> str:
    code = str(value or "").strip().upper()
    if len(code) != 3 or not code.isalpha():
        raise ValidationError("Currency must be a 3-letter code.")
    return code


def _clean_category(value: Any) -> ExpenseCategory:
    if isinstance(value, ExpenseCategory):
        return value
    try:
        return ExpenseCategory(str(value).strip().lower())
    except ValueError:
        choices = ", ".join(category.value for category in ExpenseCategory)
        raise ValidationError(f"Invalid category. Choose one of: {choices}.") from None


def _clean_expense_date(value: Any) -> date:
    if isinstance(value, date):
        spent = value
    else:
        try:
            spent = date.fromisoformat(str(value))
        except (TypeError, ValueError):
            raise ValidationError("Invalid 'expense_date' format. Use YYYY-MM-DD.") from None
    if spent > date.today():
        raise ValidationError("Expense date cannot be in the future.")
    return spent


def _clean_text(value: Any, field: str, max_length: int) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    if len(text) > max_length:
        raise ValidationError(f"'{field}' cannot exceed {max_length} characters.")
    return text or None


# Helpers --------------------------------------------------------------------

def _exchange_rate(currency: str, base_currency: str) -> Tuple[Decimal, bool]:
    """Return ``(rate, fell_back)`` for converting into the base currency."""
    try:
        return currency_service.get_exchange_rate(currency, base_currency), False
    except ExternalServiceError as exc:
        if not current_app.config.get("EXCHANGE_RATE_FALLBACK_ENABLED", True):
            raise
        logger.warning("Using exchange rate 1 for %s->%s: %s", currency, base_currency, exc.message)
        return Decimal("1"), True


def _bind_rule(expense: Expense) -> None:
    """Attach the governing rule and the first approver it names."""
    classification = Classification(expense.amount_in_base_currency, expense.category)
    with db.session.no_autoflush:
        rule = rule_selector.select_rule(expense.company_id, classification)
    approver_id = approver_resolver.next_approver(rule) if rule is not None else None
    expense.approval_rule = rule
    expense.current_approver_id = approver_id


def _require_owner(actor: ActingUser, expense: Expense) -> None:
    if expense.employee_id != actor.id:
        raise AuthorizationError("Only the employee who created this expense can change it.")


def _require_status(expense: Expense, status: ExpenseStatus, message: str) -> None:
    if expense.status != status:
        raise InvalidStateError(message, details={"status": expense.status.value})


def _require_decision_rights(actor: ActingUser, expense: Expense) -> None:
    if not actor.can_approve:
        raise AuthorizationError("Only managers and admins can act on approvals.")
    _require_status(expense, ExpenseStatus.PENDING_APPROVAL, "Expense is not pending approval.")
    if expense.current_approver_id is not None and expense.current_approver_id != actor.id:
        raise AuthorizationError("You are not the current approver for this expense.")


def _commit(expense: Expense) -> None:
    try:
        db.session.commit()
    except StaleDataError as exc:
        db.session.rollback()
        logger.warning("Concurrent modification of expense %s rejected", expense.id)
        raise InvalidStateError(
            "Expense was modified by another request. Reload it and try again."
        ) from exc


# Lifecycle ------------------------------------------------------------------

def create_expense(
    actor: ActingUser,
    amount: Any,
    currency: Any,
    category: Any,
    expense_date: Any,
    description: Optional[str] = None,
    remarks: Optional[str] = None,
) -> Expense:
    """Draft a new expense converted into the company's base currency."""
    if actor.role != UserRole.EMPLOYEE:
        raise AuthorizationError("Only employees can create expenses.")

    company = repository.get_company_or_404(actor.company_id)
    amount = _clean_amount(amount)
    currency = _clean_currency(currency)
    if not company.allow_multi_currency and currency != company.currency_code:
        raise ValidationError(f"Expenses must be submitted in {company.currency_code}.")

    rate, fell_back = _exchange_rate(currency, company.currency_code)
    expense = Expense(
        company_id=company.id,
        employee_id=actor.id,
        description=_clean_text(description, "description", DESCRIPTION_MAX_LENGTH),
        amount=amount,
        currency=currency,
        exchange_rate=rate,
        exchange_rate_fallback=fell_back,
        amount_in_base_currency=currency_service.convert_amount(amount, rate),
        category=_clean_category(category),
        expense_date=_clean_expense_date(expense_date),
        remarks=_clean_text(remarks, "remarks", REMARKS_MAX_LENGTH),
        status=ExpenseStatus.DRAFT,
    )
    _bind_rule(expense)

    db.session.add(expense)
    db.session.flush()
    audit_service.record(
        "expense",
        expense.id,
        "created",
        actor_id=actor.id,
        company_id=company.id,
        approval_rule_id=expense.approval_rule_id,
    )
    if fell_back:
        audit_service.record(
            "expense",
            expense.id,
            "exchange_rate_fallback",
            actor_id=actor.id,
            company_id=company.id,
            currency=currency,
            base_currency=company.currency_code,
        )
    db.session.commit()

    logger.info(
        "Expense %s drafted by user %s: %s %s -> %s %s (rule %s)",
        expense.id,
        actor.id,
        expense.amount,
        expense.currency,
        expense.amount_in_base_currency,
        company.currency_code,
        expense.approval_rule_id,
    )
    return expense


def update_expense(actor: ActingUser, expense_id: int, **changes: Any) -> Expense:
    """Edit a draft. Changing amount or currency re-runs the conversion.

    All fields are cleaned before any of them is applied.
    """
    unknown = set(changes) - EDITABLE_FIELDS
    if unknown:
        raise ValidationError(f"Unknown fields: {', '.join(sorted(unknown))}")

    expense = repository.get_expense_or_404(expense_id, actor.company_id)
    _require_owner(actor, expense)
    _require_status(expense, ExpenseStatus.DRAFT, "Only draft expenses can be edited.")

    cleaners = {
        "description": lambda value: _clean_text(value, "description", DESCRIPTION_MAX_LENGTH),
        "remarks": lambda value: _clean_text(value, "remarks", REMARKS_MAX_LENGTH),
        "expense_date": _clean_expense_date,
        "category": _clean_category,
        "amount": _clean_amount,
        "currency": _clean_currency,
    }
    cleaned = {name: cleaners[name](value) for name, value in changes.items()}

    amount = cleaned.get("amount", expense.amount)
    currency = cleaned.get("currency", expense.currency)
    company = expense.company
    conversion_changed = amount != expense.amount or currency != expense.currency
    if conversion_changed:
        if not company.allow_multi_currency and currency != company.currency_code:
            raise ValidationError(f"Expenses must be submitted in {company.currency_code}.")
        rate, fell_back = _exchange_rate(currency, company.currency_code)

    classification_changed = conversion_changed or cleaned.get("category", expense.category) != expense.category
    for name in ("description", "remarks", "expense_date", "category"):
        if name in cleaned:
            setattr(expense, name, cleaned[name])

    if conversion_changed:
        expense.amount = amount
        expense.currency = currency
        expense.exchange_rate = rate
        expense.exchange_rate_fallback = fell_back
        expense.amount_in_base_currency = currency_service.convert_amount(amount, rate)
        if fell_back:
            audit_service.record(
                "expense",
                expense.id,
                "exchange_rate_fallback",
                actor_id=actor.id,
                company_id=expense.company_id,
                currency=currency,
                base_currency=company.currency_code,
            )

    if classification_changed:
        _bind_rule(expense)

    audit_service.record(
        "expense", expense.id, "updated", actor_id=actor.id, company_id=expense.company_id,
        fields=sorted(changes),
    )
    _commit(expense)
    return expense


def submit_expense(actor: ActingUser, expense_id: int) -> Expense:
    expense = repository.get_expense_or_404(expense_id, actor.company_id)
    _require_owner(actor, expense)
    _require_status(expense, ExpenseStatus.DRAFT, "Expense already submitted.")

    # The bound rule is used even if it has since been deactivated.
    rule = expense.approval_rule
    approver_id = approver_resolver.next_approver(rule) if rule is not None else None

    expense.current_approver_id = approver_id
    expense.status = ExpenseStatus.PENDING_APPROVAL if approver_id is not None else ExpenseStatus.SUBMITTED

    audit_service.record(
        "expense",
        expense.id,
        "submitted",
        actor_id=actor.id,
        company_id=expense.company_id,
        current_approver_id=expense.current_approver_id,
    )
    _commit(expense)
    logger.info(
        "Expense %s submitted by user %s; status=%s approver=%s",
        expense.id,
        actor.id,
        expense.status.value,
        expense.current_approver_id,
    )
    return expense


def approve_expense(actor: ActingUser, expense_id: int, comment: Optional[str] = None) -> Expense:
    expense = repository.get_expense_or_404(expense_id, actor.company_id)
    _require_decision_rights(actor, expense)
    comment = _clean_text(comment, "comment", COMMENT_MAX_LENGTH) or "Approved"

    rule = expense.approval_rule
    next_id = approver_resolver.next_approver(rule, actor.id) if rule is not None else None

    expense.approval_history.append(
        ApprovalHistoryEntry(approver_id=actor.id, action=ApprovalAction.APPROVED, comment=comment)
    )
    expense.current_approver_id = next_id
    expense.status = ExpenseStatus.PENDING_APPROVAL if next_id is not None else ExpenseStatus.APPROVED

    audit_service.record(
        "expense",
        expense.id,
        "approved",
        actor_id=actor.id,
        company_id=expense.company_id,
        next_approver_id=next_id,
    )
    _commit(expense)
    logger.info(
        "Expense %s approved by user %s; status=%s next=%s",
        expense.id,
        actor.id,
        expense.status.value,
        next_id,
    )
    return expense


def reject_expense(actor: ActingUser, expense_id: int, comment: Optional[str]) -> Expense:
    expense = repository.get_expense_or_404(expense_id, actor.company_id)
    _require_decision_rights(actor, expense)

    min_length = current_app.config.get("REJECTION_COMMENT_MIN_LENGTH", 5)
    comment = _clean_text(comment, "comment", COMMENT_MAX_LENGTH)
    if comment is None or len(comment) < min_length:
        raise ValidationError(f"A rejection comment of at least {min_length} characters is required.")

    expense.approval_history.append(
        ApprovalHistoryEntry(approver_id=actor.id, action=ApprovalAction.REJECTED, comment=comment)
    )
    expense.current_approver_id = None
    expense.status = ExpenseStatus.REJECTED

    audit_service.record("expense", expense.id, "rejected", actor_id=actor.id, company_id=expense.company_id)
    _commit(expense)
    logger.info("Expense %s rejected by user %s", expense.id, actor.id)
    return expense


# Reads ----------------------------------------------------------------------

def get_expense(actor: ActingUser, expense_id: int) -> Expense:
    expense = repository.get_expense_or_404(expense_id, actor.company_id)
    if actor.role == UserRole.EMPLOYEE and expense.employee_id != actor.id:
        raise AuthorizationError("Access denied.")
    return expense


def list_expenses(
    actor: ActingUser,
    status: Optional[str] = None,
    category: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    page: int = 1,
    per_page: Optional[int] = None,
) -> Tuple[List[Expense], Dict[str, Any]]:
    """Expenses visible to the actor, newest first, with pagination info."""
    query = Expense.query.filter(Expense.company_id == actor.company_id)

    if actor.role == UserRole.EMPLOYEE:
        query = query.filter(Expense.employee_id == actor.id)
    elif actor.role == UserRole.MANAGER:
        team = select(User.id).where(User.manager_id == actor.id, User.company_id == actor.company_id)
        query = query.filter(
            or_(
                Expense.employee_id == actor.id,
                Expense.employee_id.in_(team),
                Expense.current_approver_id == actor.id,
            )
        )

    if status:
        try:
            query = query.filter(Expense.status == ExpenseStatus(status))
        except ValueError:
            raise ValidationError(f"Unknown status '{status}'.") from None
    if category:
        query = query.filter(Expense.category == _clean_category(category))
    if start_date:
        query = query.filter(Expense.expense_date >= start_date)
    if end_date:
        query = query.filter(Expense.expense_date <= end_date)

    per_page = per_page or current_app.config.get("EXPENSES_PER_PAGE", 10)
    per_page = max(1, min(per_page, 50))
    page = max(1, page)

    total = query.count()
    pages = max(1, ceil(total / per_page))
    expenses = (
        query.order_by(Expense.created_at.desc(), Expense.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    pagination = {
        "page": page,
        "per_page": per_page,
        "total": total,
        "pages": pages,
        "has_prev": page > 1,
        "has_next": page < pages,
    }
    return expenses, pagination


def list_pending_approvals(actor: ActingUser) -> List[Expense]:
    """Expenses waiting on the actor, plus any pending ones with nobody assigned."""
    if not actor.can_approve:
        raise AuthorizationError("Only managers and admins have approvals.")
    return (
        Expense.query.filter(
            Expense.company_id == actor.company_id,
            Expense.status == ExpenseStatus.PENDING_APPROVAL,
            or_(Expense.current_approver_id == actor.id, Expense.current_approver_id.is_(None)),
        )
        .order_by(Expense.created_at.asc(), Expense.id.asc())
        .all()
    )


def list_applicable_approvers(company_id: int) -> List[User]:
    """Active admins and managers who may appear in a rule's approver list."""
    return repository.find_approvers(company_id)
