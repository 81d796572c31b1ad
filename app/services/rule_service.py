"""Authoring of approval rules (admin only for writes)."""
from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional

from app import db
from app.errors import AuthorizationError, ValidationError
from app.models import ApprovalRule, ExpenseCategory, FlowType, RuleApprover, User
from app.services import audit_service, repository
from app.services.actor import ActingUser

logger = logging.getLogger(__name__)

RULE_FIELDS = frozenset(
    {
        "name",
        "description",
        "is_active",
        "amount_threshold",
        "categories",
        "departments",
        "flow_type",
        "approvers",
        "percentage_required",
        "is_manager_approver",
        "manager_approval_required",
        "auto_escalate_after",
        "escalation_approvers",
    }
)
BOOLEAN_FIELDS = ("is_active", "is_manager_approver", "manager_approval_required")


def fields_from_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten the nested JSON rule document into keyword fields.

    Only keys that are present end up in the result, so the same function
    serves both creation and partial updates.
    """
    fields: Dict[str, Any] = {}
    for key in ("name", "description", "is_active"):
        if key in payload:
            fields[key] = payload[key]

    conditions = payload.get("conditions") or {}
    for key in ("amount_threshold", "categories", "departments"):
        if key in conditions:
            fields[key] = conditions[key]

    flow = payload.get("approval_flow") or {}
    if "type" in flow:
        fields["flow_type"] = flow["type"]
    for key in ("approvers", "percentage_required", "is_manager_approver", "manager_approval_required"):
        if key in flow:
            fields[key] = flow[key]

    escalation = payload.get("escalation_rules") or {}
    for key in ("auto_escalate_after", "escalation_approvers"):
        if key in escalation:
            fields[key] = escalation[key]
    return fields


# Validation -----------------------------------------------------------------

def _clean_name(value: Any) -> str:
    name = str(value or "").strip()
    if not 3 <= len(name) <= 100:
        raise ValidationError("Rule name must be between 3 and 100 characters.")
    return name


def _clean_description(value: Any) -> Optional[str]:
    if value is None:
        return None
    description = str(value).strip()
    if len(description) > 500:
        raise ValidationError("Description cannot exceed 500 characters.")
    return description or None


def _clean_threshold(value: Any) -> Decimal:
    try:
        threshold = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError("Invalid amount threshold.") from None
    if not threshold.is_finite() or threshold < 0:
        raise ValidationError("Amount threshold cannot be negative.")
    return threshold


def _clean_categories(value: Any) -> List[str]:
    if value is None:
        return []
    if not isinstance(value, (list, tuple)):
        raise ValidationError("'categories' must be a list.")
    valid = {category.value for category in ExpenseCategory}
    cleaned: List[str] = []
    for item in value:
        category = str(item).strip().lower()
        if category not in valid:
            raise ValidationError(f"Invalid category '{item}'.")
        if category not in cleaned:
            cleaned.append(category)
    return cleaned


def _clean_departments(value: Any) -> List[str]:
    if value is None:
        return []
    if not isinstance(value, (list, tuple)):
        raise ValidationError("'departments' must be a list.")
    return [str(item).strip() for item in value if str(item).strip()]


def _clean_flow_type(value: Any) -> FlowType:
    if isinstance(value, FlowType):
        return value
    try:
        return FlowType(str(value).strip().lower())
    except ValueError:
        raise ValidationError(f"Invalid approval flow type '{value}'.") from None


def _clean_int(value: Any, field: str, minimum: int, maximum: Optional[int] = None) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"'{field}' must be an integer.")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"'{field}' must be an integer.") from None
    if number != value and not isinstance(value, str):
        raise ValidationError(f"'{field}' must be an integer.")
    if number < minimum or (maximum is not None and number > maximum):
        bounds = f"between {minimum} and {maximum}" if maximum is not None else f"at least {minimum}"
        raise ValidationError(f"'{field}' must be {bounds}.")
    return number


def _clean_bool(value: Any, field: str) -> bool:
    if not isinstance(value, bool):
        raise ValidationError(f"'{field}' must be true or false.")
    return value


def _eligible_approvers(company_id: int, user_ids: Iterable[int]) -> Dict[int, User]:
    ids = list(user_ids)
    if not ids:
        return {}
    found = {user.id: user for user in repository.find_approvers(company_id) if user.id in ids}
    if len(found) != len(set(ids)):
        raise ValidationError("One or more approvers not found or invalid role.")
    return found


def _clean_approvers(company_id: int, value: Any) -> List[Dict[str, Any]]:
    if not isinstance(value, (list, tuple)) or not value:
        raise ValidationError("At least one approver is required.")

    cleaned: List[Dict[str, Any]] = []
    for entry in value:
        if not isinstance(entry, dict) or "user" not in entry or "order" not in entry:
            raise ValidationError("Each approver needs a 'user' and an 'order'.")
        cleaned.append(
            {
                "user_id": _clean_int(entry["user"], "user", 1),
                "order": _clean_int(entry["order"], "order", 1),
                "is_required": _clean_bool(entry.get("is_required", True), "is_required"),
            }
        )

    orders = [entry["order"] for entry in cleaned]
    if len(set(orders)) != len(orders):
        raise ValidationError("Approver 'order' values must be unique.")
    user_ids = [entry["user_id"] for entry in cleaned]
    if len(set(user_ids)) != len(user_ids):
        raise ValidationError("An approver can appear only once per rule.")

    _eligible_approvers(company_id, user_ids)
    return cleaned


def _clean_escalation_approvers(company_id: int, value: Any) -> List[int]:
    if value is None:
        return []
    if not isinstance(value, (list, tuple)):
        raise ValidationError("'escalation_approvers' must be a list.")
    ids = [_clean_int(item, "escalation_approvers", 1) for item in value]
    _eligible_approvers(company_id, ids)
    return list(dict.fromkeys(ids))


def _apply(rule: ApprovalRule, company_id: int, fields: Dict[str, Any]) -> None:
    unknown = set(fields) - RULE_FIELDS
    if unknown:
        raise ValidationError(f"Unknown fields: {', '.join(sorted(unknown))}")

    if "name" in fields:
        rule.name = _clean_name(fields["name"])
    if "description" in fields:
        rule.description = _clean_description(fields["description"])
    for key in BOOLEAN_FIELDS:
        if key in fields:
            setattr(rule, key, _clean_bool(fields[key], key))
    if "amount_threshold" in fields:
        rule.amount_threshold = _clean_threshold(fields["amount_threshold"])
    if "categories" in fields:
        rule.categories = _clean_categories(fields["categories"])
    if "departments" in fields:
        rule.departments = _clean_departments(fields["departments"])
    if "flow_type" in fields:
        rule.flow_type = _clean_flow_type(fields["flow_type"])
    if "percentage_required" in fields:
        rule.percentage_required = _clean_int(fields["percentage_required"], "percentage_required", 0, 100)
    if "auto_escalate_after" in fields:
        rule.auto_escalate_after = _clean_int(fields["auto_escalate_after"], "auto_escalate_after", 1)
    if "escalation_approvers" in fields:
        rule.escalation_approver_ids = _clean_escalation_approvers(company_id, fields["escalation_approvers"])
    if "approvers" in fields:
        rule.approvers = [
            RuleApprover(user_id=entry["user_id"], order=entry["order"], is_required=entry["is_required"])
            for entry in _clean_approvers(company_id, fields["approvers"])
        ]


def _require_admin(actor: ActingUser) -> None:
    if not actor.is_admin:
        raise AuthorizationError("Only admins can manage approval rules.")


def _require_reader(actor: ActingUser) -> None:
    if not actor.can_approve:
        raise AuthorizationError("Only admins and managers can view approval rules.")


# Operations -----------------------------------------------------------------

def create_rule(actor: ActingUser, **fields: Any) -> ApprovalRule:
    _require_admin(actor)
    for required in ("name", "approvers"):
        if required not in fields:
            raise ValidationError(f"'{required}' is required.")

    rule = ApprovalRule(
        company_id=actor.company_id,
        created_by_id=actor.id,
        is_active=True,
        amount_threshold=Decimal("0"),
        categories=[],
        departments=[],
        flow_type=FlowType.SEQUENTIAL,
        percentage_required=100,
        is_manager_approver=True,
        manager_approval_required=True,
        auto_escalate_after=72,
        escalation_approver_ids=[],
    )
    with db.session.no_autoflush:
        _apply(rule, actor.company_id, fields)
    db.session.add(rule)
    db.session.flush()
    audit_service.record("approval_rule", rule.id, "created", actor_id=actor.id, company_id=actor.company_id)
    db.session.commit()
    logger.info("Approval rule %s created by user %s", rule.id, actor.id)
    return rule


def update_rule(actor: ActingUser, rule_id: int, **fields: Any) -> ApprovalRule:
    _require_admin(actor)
    rule = repository.get_rule_or_404(rule_id, actor.company_id)
    with db.session.no_autoflush:
        _apply(rule, actor.company_id, fields)
    audit_service.record(
        "approval_rule",
        rule.id,
        "updated",
        actor_id=actor.id,
        company_id=actor.company_id,
        fields=sorted(fields),
    )
    db.session.commit()
    logger.info("Approval rule %s updated by user %s", rule.id, actor.id)
    return rule


def deactivate_rule(actor: ActingUser, rule_id: int) -> ApprovalRule:
    """Soft delete. Expenses already bound to the rule keep using it."""
    _require_admin(actor)
    rule = repository.get_rule_or_404(rule_id, actor.company_id)
    rule.is_active = False
    audit_service.record("approval_rule", rule.id, "deactivated", actor_id=actor.id, company_id=actor.company_id)
    db.session.commit()
    logger.info("Approval rule %s deactivated by user %s", rule.id, actor.id)
    return rule


def get_rule(actor: ActingUser, rule_id: int) -> ApprovalRule:
    _require_reader(actor)
    return repository.get_rule_or_404(rule_id, actor.company_id)


def list_rules(actor: ActingUser, is_active: Optional[bool] = None) -> List[ApprovalRule]:
    _require_reader(actor)
    query = ApprovalRule.query.filter_by(company_id=actor.company_id)
    if is_active is not None:
        query = query.filter_by(is_active=is_active)
    return query.order_by(ApprovalRule.created_at.desc(), ApprovalRule.id.desc()).all()
