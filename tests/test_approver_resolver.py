import pytest

from app.errors import UnsupportedFlowTypeError
from app.models import ApprovalRule, FlowType, RuleApprover
from app.services.approver_resolver import Outcome, next_approver, resolve

A, B, C = 11, 12, 13


def build_rule(approvers, flow_type=FlowType.SEQUENTIAL) -> ApprovalRule:
    return ApprovalRule(
        id=1,
        name="Chain",
        flow_type=flow_type,
        is_active=True,
        approvers=[RuleApprover(user_id=user_id, order=order) for user_id, order in approvers],
    )


def test_sequential_chain_follows_order_not_list_position():
    rule = build_rule([(A, 2), (B, 1), (C, 3)])

    assert next_approver(rule) == B
    assert next_approver(rule, B) == A
    assert next_approver(rule, A) == C
    assert next_approver(rule, C) is None


def test_outcomes_distinguish_exhausted_from_unknown_approver():
    rule = build_rule([(A, 1), (B, 2)])

    assert resolve(rule) == (A, Outcome.FIRST)
    assert resolve(rule, A) == (B, Outcome.NEXT)
    assert resolve(rule, B) == (None, Outcome.EXHAUSTED)
    assert resolve(rule, 999) == (None, Outcome.NOT_IN_CHAIN)
    assert resolve(rule, 999).is_done


def test_empty_chain_has_no_approver():
    rule = build_rule([])

    assert resolve(rule) == (None, Outcome.EMPTY)
    assert next_approver(rule, A) is None


def test_equal_orders_keep_list_position():
    rule = build_rule([(C, 1), (A, 1), (B, 0)])

    assert next_approver(rule) == B
    assert next_approver(rule, B) == C
    assert next_approver(rule, C) == A


def test_resolution_is_repeatable():
    rule = build_rule([(A, 3), (B, 1), (C, 2)])

    assert [next_approver(rule, B) for _ in range(3)] == [C, C, C]


@pytest.mark.parametrize("flow_type", [FlowType.PARALLEL, FlowType.PERCENTAGE])
def test_unimplemented_flow_types_fail_fast(flow_type):
    rule = build_rule([(A, 1), (B, 2)], flow_type=flow_type)

    with pytest.raises(UnsupportedFlowTypeError, match=flow_type.value):
        next_approver(rule)
