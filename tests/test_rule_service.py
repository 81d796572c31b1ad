from decimal import Decimal

import pytest

from app.errors import AuthorizationError, NotFoundError, ValidationError
from app.models import FlowType, UserRole
from app.services import audit_service, rule_service
from tests.conftest import actor, make_rule, make_user


def rule_payload(*approvers, **overrides):
    payload = {
        "name": "Travel over 1000",
        "description": "Large trips need two signatures",
        "conditions": {"amount_threshold": 1000, "categories": ["Travel", "accommodation"]},
        "approval_flow": {
            "type": "sequential",
            "approvers": [{"user": user.id, "order": order} for user, order in approvers],
        },
        "escalation_rules": {"auto_escalate_after": 48},
    }
    payload.update(overrides)
    return payload


def test_fields_from_payload_flattens_only_present_keys():
    fields = rule_service.fields_from_payload(
        {"name": "Rule", "conditions": {"categories": []}, "approval_flow": {"type": "parallel"}}
    )

    assert fields == {"name": "Rule", "categories": [], "flow_type": "parallel"}


def test_create_rule_from_nested_document(admin, mgr1, mgr2):
    fields = rule_service.fields_from_payload(rule_payload((mgr2, 2), (admin, 1)))

    rule = rule_service.create_rule(actor(admin), **fields)

    assert rule.amount_threshold == Decimal("1000")
    assert rule.categories == ["travel", "accommodation"]
    assert rule.flow_type == FlowType.SEQUENTIAL
    assert rule.auto_escalate_after == 48
    assert rule.created_by_id == admin.id
    assert [approver.user_id for approver in rule.sorted_approvers()] == [admin.id, mgr2.id]
    assert rule.to_dict()["approval_flow"]["approvers"][0]["order"] == 1
    assert [entry.action for entry in audit_service.entries_for("approval_rule", rule.id)] == ["created"]


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"name": "ab"}, "between 3 and 100"),
        ({"conditions": {"amount_threshold": -1}}, "negative"),
        ({"conditions": {"categories": ["yacht"]}}, "Invalid category"),
        ({"approval_flow": {"type": "sequential", "approvers": []}}, "At least one approver"),
        ({"approval_flow": {"type": "round-robin", "approvers": []}}, "flow type"),
        ({"escalation_rules": {"auto_escalate_after": 0}}, "at least 1"),
        ({"approval_flow": {"type": "percentage", "percentage_required": 120}}, "between 0 and 100"),
    ],
)
def test_create_rule_validation(admin, mgr1, overrides, message):
    payload = rule_payload((mgr1, 1))
    payload.update(overrides)
    if "approvers" not in payload["approval_flow"]:
        payload["approval_flow"]["approvers"] = [{"user": mgr1.id, "order": 1}]

    with pytest.raises(ValidationError, match=message):
        rule_service.create_rule(actor(admin), **rule_service.fields_from_payload(payload))


def test_approver_list_must_be_unambiguous(admin, mgr1, mgr2):
    duplicate_orders = rule_payload((mgr1, 1), (mgr2, 1))
    duplicate_users = rule_payload((mgr1, 1), (mgr1, 2))

    with pytest.raises(ValidationError, match="unique"):
        rule_service.create_rule(actor(admin), **rule_service.fields_from_payload(duplicate_orders))
    with pytest.raises(ValidationError, match="only once"):
        rule_service.create_rule(actor(admin), **rule_service.fields_from_payload(duplicate_users))


def test_approvers_must_be_active_approvers_of_the_company(company, admin, employee, outsider):
    retired = make_user(company, "Rex", UserRole.MANAGER, is_active=False)

    for user in (employee, outsider, retired):
        with pytest.raises(ValidationError, match="not found or invalid role"):
            rule_service.create_rule(actor(admin), **rule_service.fields_from_payload(rule_payload((user, 1))))


def test_only_admins_write_rules(mgr1, company):
    rule = make_rule(company, [(mgr1, 1)])

    with pytest.raises(AuthorizationError):
        rule_service.create_rule(actor(mgr1), **rule_service.fields_from_payload(rule_payload((mgr1, 1))))
    with pytest.raises(AuthorizationError):
        rule_service.deactivate_rule(actor(mgr1), rule.id)


def test_update_replaces_approvers_and_keeps_other_fields(company, admin, mgr1, mgr2):
    rule = make_rule(company, [(mgr1, 1)], threshold="250", categories=["food"])

    rule = rule_service.update_rule(
        actor(admin), rule.id, approvers=[{"user": mgr2.id, "order": 1}, {"user": mgr1.id, "order": 2}]
    )

    assert [approver.user_id for approver in rule.sorted_approvers()] == [mgr2.id, mgr1.id]
    assert rule.amount_threshold == Decimal("250")
    assert rule.categories == ["food"]


def test_deactivate_and_list(company, admin, mgr1):
    rule = make_rule(company, [(mgr1, 1)], name="Old")
    make_rule(company, [(mgr1, 1)], name="Current")

    rule_service.deactivate_rule(actor(admin), rule.id)

    assert rule.is_active is False
    assert [r.name for r in rule_service.list_rules(actor(mgr1), is_active=True)] == ["Current"]
    assert {r.name for r in rule_service.list_rules(actor(admin))} == {"Old", "Current"}


def test_rules_are_tenant_scoped(company, admin, employee, outsider, other_company):
    foreign = make_rule(other_company, [(outsider, 1)])

    with pytest.raises(NotFoundError):
        rule_service.get_rule(actor(admin), foreign.id)
    with pytest.raises(AuthorizationError):
        rule_service.list_rules(actor(employee))
