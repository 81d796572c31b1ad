"""Manager approval routes."""
from __future__ import annotations

from typing import Any

from flask_login import login_required

from app.forms import ApproveForm, RejectForm, load_form
from app.models import UserRole
from app.services import approval_engine
from app.utils.helpers import acting_user, json_payload, json_response, role_required

from . import manager_bp


@manager_bp.route("/pending", methods=["GET"])
@login_required
@role_required(UserRole.MANAGER, UserRole.ADMIN)
def pending_approvals() -> Any:
    """Return expenses waiting on the current approver."""
    expenses = approval_engine.list_pending_approvals(acting_user())
    return json_response({"expenses": [expense.to_dict() for expense in expenses]})


@manager_bp.route("/approve/<int:expense_id>", methods=["POST"])
@login_required
@role_required(UserRole.MANAGER, UserRole.ADMIN)
def approve_expense(expense_id: int) -> Any:
    """Approve a pending expense."""
    form = load_form(ApproveForm, json_payload())
    expense = approval_engine.approve_expense(acting_user(), expense_id, comment=form.comment.data)
    return json_response({"message": "Expense approved.", "expense": expense.to_dict()})


@manager_bp.route("/reject/<int:expense_id>", methods=["POST"])
@login_required
@role_required(UserRole.MANAGER, UserRole.ADMIN)
def reject_expense(expense_id: int) -> Any:
    """Reject a pending expense."""
    form = load_form(RejectForm, json_payload())
    expense = approval_engine.reject_expense(acting_user(), expense_id, comment=form.comment.data)
    return json_response({"message": "Expense rejected.", "expense": expense.to_dict()})
