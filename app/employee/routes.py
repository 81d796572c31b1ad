"""Employee-facing routes."""
from __future__ import annotations

from datetime import date
from typing import Any

from flask import request
from flask_login import login_required

from app.errors import ValidationError
from app.forms import ExpenseForm, ExpenseUpdateForm, load_form
from app.models import UserRole
from app.services import approval_engine
from app.utils.helpers import acting_user, json_payload, json_response, role_required

from . import employee_bp


def _date_arg(name: str):
    raw = request.args.get(name, "").strip()
    if not raw:
        return None
    try:
        return date.fromisoformat(raw)
    except ValueError:
        raise ValidationError(f"Invalid '{name}' format. Use YYYY-MM-DD.") from None


@employee_bp.route("/expenses", methods=["GET"])
@login_required
def list_expenses() -> Any:
    """List the expenses visible to the current user."""
    expenses, pagination = approval_engine.list_expenses(
        acting_user(),
        status=request.args.get("status") or None,
        category=request.args.get("category") or None,
        start_date=_date_arg("start_date"),
        end_date=_date_arg("end_date"),
        page=request.args.get("page", type=int, default=1),
        per_page=request.args.get("per_page", type=int),
    )
    return json_response(
        {"expenses": [expense.to_dict() for expense in expenses], "pagination": pagination}
    )


@employee_bp.route("/expenses", methods=["POST"])
@login_required
@role_required(UserRole.EMPLOYEE)
def create_expense() -> Any:
    """Draft a new expense."""
    form = load_form(ExpenseForm, json_payload())
    expense = approval_engine.create_expense(
        acting_user(),
        amount=form.amount.data,
        currency=form.currency.data,
        category=form.category.data,
        expense_date=form.expense_date.data,
        description=form.description.data,
        remarks=form.remarks.data,
    )
    return json_response({"message": "Expense created.", "expense": expense.to_dict()}, status=201)


@employee_bp.route("/expenses/<int:expense_id>", methods=["GET"])
@login_required
def expense_detail(expense_id: int) -> Any:
    expense = approval_engine.get_expense(acting_user(), expense_id)
    return json_response({"expense": expense.to_dict()})


@employee_bp.route("/expenses/<int:expense_id>", methods=["PUT"])
@login_required
@role_required(UserRole.EMPLOYEE)
def update_expense(expense_id: int) -> Any:
    """Edit a draft expense."""
    payload = json_payload()
    form = load_form(ExpenseUpdateForm, payload)
    changes = {
        name: form[name].data
        for name in approval_engine.EDITABLE_FIELDS
        if name in payload
    }
    expense = approval_engine.update_expense(acting_user(), expense_id, **changes)
    return json_response({"message": "Expense updated.", "expense": expense.to_dict()})


@employee_bp.route("/expenses/<int:expense_id>/submit", methods=["POST"])
@login_required
@role_required(UserRole.EMPLOYEE)
def submit_expense(expense_id: int) -> Any:
    expense = approval_engine.submit_expense(acting_user(), expense_id)
    return json_response({"message": "Expense submitted for approval.", "expense": expense.to_dict()})
