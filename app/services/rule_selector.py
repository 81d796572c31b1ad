"""Pick the approval rule that governs an expense."""
from __future__ import annotations

import logging
from typing import Optional

from app.models import ApprovalRule, Classification
from app.services import repository

logger = logging.getLogger(__name__)


def select_rule(company_id: int, classification: Classification) -> Optional[ApprovalRule]:
    """Return the company's governing rule for ``classification``, or None.

    Only the active rule with the highest amount threshold is considered. If
    that rule does not apply, no rule applies: lower tiers are never tried.
    """
    candidates = repository.find_active_rules_for_company(company_id)
    if not candidates:
        return None

    rule = candidates[0]
    if not rule.applies_to(classification):
        logger.debug(
            "Rule %s (threshold %s) does not apply to %s %s",
            rule.id,
            rule.amount_threshold,
            classification.amount_in_base_currency,
            classification.category.value,
        )
        return None
    return rule
