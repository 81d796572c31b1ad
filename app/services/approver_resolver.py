"""Work out who has to act next on an approval chain."""
from __future__ import annotations

import enum
from typing import Dict, NamedTuple, Optional

from app.errors import UnsupportedFlowTypeError
from app.models import ApprovalRule, FlowType


class Outcome(enum.Enum):
    FIRST = "first"
    NEXT = "next"
    EXHAUSTED = "exhausted"
    NOT_IN_CHAIN = "not_in_chain"
    EMPTY = "empty"


class Resolution(NamedTuple):
    approver_id: Optional[int]
    outcome: Outcome

    @property
    def is_done(self) -> bool:
        return self.approver_id is None


class SequentialResolver:
    """Approvers act one at a time in ascending ``order``."""

    def resolve(self, rule: ApprovalRule, completed_approver_id: Optional[int] = None) -> Resolution:
        chain = rule.sorted_approvers()
        if not chain:
            return Resolution(None, Outcome.EMPTY)

        if completed_approver_id is None:
            return Resolution(chain[0].user_id, Outcome.FIRST)

        for index, approver in enumerate(chain):
            if approver.user_id == completed_approver_id:
                if index + 1 < len(chain):
                    return Resolution(chain[index + 1].user_id, Outcome.NEXT)
                return Resolution(None, Outcome.EXHAUSTED)
        return Resolution(None, Outcome.NOT_IN_CHAIN)


class UnsupportedResolver:
    def __init__(self, flow_type: FlowType):
        self.flow_type = flow_type

    def resolve(self, rule: ApprovalRule, completed_approver_id: Optional[int] = None) -> Resolution:
        raise UnsupportedFlowTypeError(
            f"Approval flow type '{self.flow_type.value}' is not supported yet "
            f"(rule {rule.id}). Use a sequential flow."
        )


RESOLVERS: Dict[FlowType, object] = {
    FlowType.SEQUENTIAL: SequentialResolver(),
    FlowType.PARALLEL: UnsupportedResolver(FlowType.PARALLEL),
    FlowType.PERCENTAGE: UnsupportedResolver(FlowType.PERCENTAGE),
}


def resolve(rule: ApprovalRule, completed_approver_id: Optional[int] = None) -> Resolution:
    resolver = RESOLVERS.get(rule.flow_type)
    if resolver is None:
        raise UnsupportedFlowTypeError(f"Unknown approval flow type {rule.flow_type!r}.")
    return resolver.resolve(rule, completed_approver_id)


def next_approver(rule: ApprovalRule, completed_approver_id: Optional[int] = None) -> Optional[int]:
    """User id of the next approver, or None once the chain has nobody left."""
    return resolve(rule, completed_approver_id).approver_id
