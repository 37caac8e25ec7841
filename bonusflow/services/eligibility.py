"""Read-only answer to "may this actor decide this level right now?"."""
from __future__ import annotations

import enum
from typing import Any, Dict, List, Optional

from bonusflow import db
from bonusflow.errors import ErrorCode, NotFoundError
from bonusflow.models import APPROVAL_LEVELS, Employee
from bonusflow.services import approval_engine


class EligibilityReason(enum.Enum):
    INVALID_LEVEL = "INVALID_LEVEL"
    BONUS_MISSING = "BONUS_MISSING"
    NOT_AUTHORIZED = "NOT_AUTHORIZED"
    ALREADY_PROCESSED = "ALREADY_PROCESSED"
    PREV_LEVEL_PENDING = "PREV_LEVEL_PENDING"


REASON_BY_CODE = {
    ErrorCode.VALIDATION: EligibilityReason.INVALID_LEVEL,
    ErrorCode.BONUS_NOT_ENTERED: EligibilityReason.BONUS_MISSING,
    ErrorCode.NOT_AUTHORIZED: EligibilityReason.NOT_AUTHORIZED,
    ErrorCode.ALREADY_PROCESSED: EligibilityReason.ALREADY_PROCESSED,
    ErrorCode.PREVIOUS_LEVEL_PENDING: EligibilityReason.PREV_LEVEL_PENDING,
}


def can_act(employee: Employee, level: Any, actor_id: Optional[int]) -> Dict[str, Any]:
    """Evaluate the same preconditions as a transition, without mutating anything."""
    failure = approval_engine.check_preconditions(employee, level, actor_id)
    if failure is None:
        return {"can": True, "reason": None, "message": None, "blocking_level": None}
    return {
        "can": False,
        "reason": REASON_BY_CODE[failure["code"]].value,
        "message": failure["message"],
        "blocking_level": failure["blocking_level"],
    }


def evaluate_eligibility(employee_pk: int, level: Any, actor_id: Optional[int]) -> Dict[str, Any]:
    employee = db.session.get(Employee, employee_pk)
    if employee is None:
        raise NotFoundError("Employee not found")
    return can_act(employee, level, actor_id)


def actionable_levels(employee: Employee, actor_id: Optional[int]) -> List[int]:
    return [level for level in APPROVAL_LEVELS if can_act(employee, level, actor_id)["can"]]
