"""Administrative routes."""
from __future__ import annotations

from typing import Any

from flask import request
from flask_login import login_required

from app.models import UserRole
from app.services import approval_engine, rule_service, user_service
from app.utils.helpers import acting_user, json_payload, json_response, role_required

from . import admin_bp


@admin_bp.route("/users", methods=["GET"])
@login_required
@role_required(UserRole.ADMIN, UserRole.MANAGER)
def users() -> Any:
    """List all users in the current company."""
    users = user_service.list_users(acting_user())
    return json_response({"users": [user.to_dict() for user in users]})


@admin_bp.route("/users", methods=["POST"])
@login_required
@role_required(UserRole.ADMIN)
def create_user() -> Any:
    """Create a new employee, manager or admin."""
    payload = json_payload()
    required_fields = {"first_name", "email", "password", "role"}
    if missing := required_fields - payload.keys():
        return json_response({"error": f"Missing fields: {', '.join(sorted(missing))}"}, status=400)

    new_user = user_service.create_user(
        acting_user(),
        first_name=payload["first_name"],
        last_name=payload.get("last_name", ""),
        email=payload["email"],
        password=payload["password"],
        role=payload["role"],
        manager_id=payload.get("manager_id"),
    )
    return json_response({"message": "User created.", "user": new_user.to_dict()}, status=201)


@admin_bp.route("/users/<int:user_id>", methods=["GET"])
@login_required
def user_detail(user_id: int) -> Any:
    """A user in the current company; employees only see themselves."""
    user = user_service.get_user(acting_user(), user_id)
    manager = user.manager.to_summary() if user.manager else None
    return json_response({"user": user.to_dict(), "manager": manager})


@admin_bp.route("/users/<int:user_id>/team", methods=["GET"])
@login_required
@role_required(UserRole.ADMIN, UserRole.MANAGER)
def team(user_id: int) -> Any:
    """Active direct reports of a manager."""
    members = user_service.list_team(acting_user(), user_id)
    return json_response({"team": [member.to_dict() for member in members]})


@admin_bp.route("/users/<int:user_id>", methods=["PUT"])
@login_required
def update_user(user_id: int) -> Any:
    """Admins update any user; everyone else only their own name."""
    user = user_service.update_user(acting_user(), user_id, **json_payload())
    return json_response({"message": "User updated.", "user": user.to_dict()})


@admin_bp.route("/company", methods=["PUT"])
@login_required
@role_required(UserRole.ADMIN)
def update_company() -> Any:
    company = user_service.update_company_settings(acting_user(), **json_payload())
    return json_response({"message": "Company settings updated.", "company": company.to_dict()})


@admin_bp.route("/approvers", methods=["GET"])
@login_required
@role_required(UserRole.ADMIN)
def available_approvers() -> Any:
    """Users that may be placed on an approval rule."""
    approvers = approval_engine.list_applicable_approvers(acting_user().company_id)
    return json_response({"approvers": [approver.to_summary() for approver in approvers]})


@admin_bp.route("/approval-rules", methods=["GET"])
@login_required
@role_required(UserRole.ADMIN, UserRole.MANAGER)
def approval_rules() -> Any:
    """List approval rules, optionally filtered with ?is_active=true|false."""
    is_active_arg = request.args.get("is_active")
    is_active = None if is_active_arg is None else is_active_arg.lower() == "true"
    rules = rule_service.list_rules(acting_user(), is_active=is_active)
    return json_response({"rules": [rule.to_dict() for rule in rules]})


@admin_bp.route("/approval-rules/<int:rule_id>", methods=["GET"])
@login_required
@role_required(UserRole.ADMIN, UserRole.MANAGER)
def approval_rule_detail(rule_id: int) -> Any:
    rule = rule_service.get_rule(acting_user(), rule_id)
    return json_response({"rule": rule.to_dict()})


@admin_bp.route("/approval-rules", methods=["POST"])
@login_required
@role_required(UserRole.ADMIN)
def create_rule() -> Any:
    fields = rule_service.fields_from_payload(json_payload())
    rule = rule_service.create_rule(acting_user(), **fields)
    return json_response({"message": "Approval rule created.", "rule": rule.to_dict()}, status=201)


@admin_bp.route("/approval-rules/<int:rule_id>", methods=["PUT"])
@login_required
@role_required(UserRole.ADMIN)
def update_rule(rule_id: int) -> Any:
    fields = rule_service.fields_from_payload(json_payload())
    rule = rule_service.update_rule(acting_user(), rule_id, **fields)
    return json_response({"message": "Approval rule updated.", "rule": rule.to_dict()})


@admin_bp.route("/approval-rules/<int:rule_id>", methods=["DELETE"])
@login_required
@role_required(UserRole.ADMIN)
def deactivate_rule(rule_id: int) -> Any:
    rule_service.deactivate_rule(acting_user(), rule_id)
    return json_response({"message": "Approval rule deactivated."})
