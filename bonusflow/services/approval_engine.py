"""Multi-level bonus approval state machine.

Each employee carries one row per approval level (1-5). Bonus entry sets a
level to ``pending`` when an approver is assigned there and ``not_required``
otherwise, and undecided levels follow later approver changes. Levels are
cleared strictly in order: a pending level can only be decided once every
earlier level with an assigned approver is approved, and an approved or
rejected level is final until the bonus is entered again.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import update

from bonusflow import db
from bonusflow.errors import (
    ERRORS_BY_CODE,
    ErrorCode,
    NotFoundError,
    PreviousLevelPendingError,
    ValidationError,
)
from bonusflow.models import (
    APPROVAL_LEVELS,
    ApprovalAction,
    AuditLog,
    BonusLevelApproval,
    Employee,
    LevelStatus,
)
from bonusflow.utils.helpers import utcnow

logger = logging.getLogger(__name__)

DECIDED_STATUSES = {LevelStatus.APPROVED, LevelStatus.REJECTED}


def bonus_entered(employee: Employee) -> bool:
    """Whether the approval chain has started for ``employee``.

    ``entered_by`` is the primary signal; a decided level also counts so that
    records imported without entry metadata can still be worked.
    """
    if employee.entered_by_id is not None:
        return True
    return any(row.status in DECIDED_STATUSES for row in employee.level_approvals)


def level_status(employee: Employee, level: int) -> LevelStatus:
    row = employee.approval_for(level)
    return row.status if row is not None else LevelStatus.NOT_REQUIRED


def level_statuses(employee: Employee) -> Dict[int, LevelStatus]:
    return {level: level_status(employee, level) for level in APPROVAL_LEVELS}


def check_preconditions(employee: Employee, level: Any, actor_id: Optional[int]) -> Optional[Dict[str, Any]]:
    """First failed precondition for ``actor_id`` deciding ``level``, or ``None``.

    Shared by :func:`transition` and the eligibility evaluator.
    """
    if level not in APPROVAL_LEVELS:
        return {"code": ErrorCode.VALIDATION, "message": "Level must be between 1 and 5", "blocking_level": None}

    if not bonus_entered(employee):
        return {
            "code": ErrorCode.BONUS_NOT_ENTERED,
            "message": "No bonus has been entered for this employee",
            "blocking_level": None,
        }

    approver_id = employee.approver_id_for(level)
    if approver_id is None or actor_id is None or approver_id != actor_id:
        return {
            "code": ErrorCode.NOT_AUTHORIZED,
            "message": f"You are not authorized to approve/reject at level {level} for this employee",
            "blocking_level": None,
        }

    current = level_status(employee, level)
    if current is not LevelStatus.PENDING:
        return {
            "code": ErrorCode.ALREADY_PROCESSED,
            "message": f"This bonus is already {current.value} at level {level}",
            "blocking_level": None,
        }

    for previous in range(1, level):
        if employee.approver_id_for(previous) is None:
            continue
        if level_status(employee, previous) is not LevelStatus.APPROVED:
            return {
                "code": ErrorCode.PREVIOUS_LEVEL_PENDING,
                "message": f"Level {previous} must be approved before level {level} can be processed",
                "blocking_level": previous,
            }

    return None


def initialize_for_bonus_entry(employee: Employee, actor_id: int) -> List[Dict[str, Any]]:
    """(Re)start the approval chain; returns the decisions that were discarded.

    The caller owns the transaction.
    """
    discarded = [row.to_dict() for row in employee.level_approvals if row.status in DECIDED_STATUSES]

    for level in APPROVAL_LEVELS:
        row = employee.approval_for(level)
        if row is None:
            row = BonusLevelApproval(level=level)
            employee.level_approvals.append(row)
        row.status = LevelStatus.PENDING if employee.approver_id_for(level) else LevelStatus.NOT_REQUIRED
        row.approved_by_id = None
        row.approved_at = None
        row.comments = None

    employee.entered_by_id = actor_id
    employee.entered_at = utcnow()

    if discarded:
        logger.warning(
            f"Bonus re-entry for employee {employee.employee_id} discarded {len(discarded)} prior decision(s)"
        )
    return discarded


def sync_level_rows(employee: Employee) -> List[int]:
    """Bring undecided levels in line with the current approver links.

    Runs after links change on an employee whose bonus is already entered:
    a newly assigned level becomes ``pending`` and a pending level that lost
    its approver becomes ``not_required``. Decided levels are left as they
    are. Returns the levels that changed; the caller owns the transaction.
    """
    if not bonus_entered(employee):
        return []

    changed = []
    for level in APPROVAL_LEVELS:
        assigned = employee.approver_id_for(level) is not None
        row = employee.approval_for(level)
        if row is None:
            row = BonusLevelApproval(level=level, status=LevelStatus.NOT_REQUIRED)
            employee.level_approvals.append(row)
        if assigned and row.status is LevelStatus.NOT_REQUIRED:
            row.status = LevelStatus.PENDING
            changed.append(level)
        elif not assigned and row.status is LevelStatus.PENDING:
            row.status = LevelStatus.NOT_REQUIRED
            changed.append(level)

    if changed:
        logger.info(f"Approver changes reopened or closed levels {changed} for employee {employee.employee_id}")
    return changed


def parse_action(action: Union[str, ApprovalAction, None]) -> ApprovalAction:
    if isinstance(action, ApprovalAction):
        return action
    try:
        return ApprovalAction((action or "").lower())
    except ValueError:
        raise ValidationError("Action must be either approve or reject") from None


def transition(
    employee: Employee,
    level: int,
    action: Union[str, ApprovalAction],
    actor_id: int,
    comments: Optional[str] = None,
) -> Dict[str, Any]:
    """Approve or reject ``level`` on behalf of ``actor_id``.

    The row is only updated while it is still pending, checked in the same
    UPDATE statement, so two concurrent decisions cannot both succeed.
    """
    decision = parse_action(action)

    failure = check_preconditions(employee, level, actor_id)
    if failure is not None:
        if failure["code"] is ErrorCode.PREVIOUS_LEVEL_PENDING:
            raise PreviousLevelPendingError(failure["message"], failure["blocking_level"])
        raise ERRORS_BY_CODE[failure["code"]](failure["message"])

    result = db.session.execute(
        update(BonusLevelApproval)
        .where(
            BonusLevelApproval.employee_id == employee.id,
            BonusLevelApproval.level == level,
            BonusLevelApproval.status == LevelStatus.PENDING,
        )
        .values(
            status=decision.resulting_status,
            approved_by_id=actor_id,
            approved_at=utcnow(),
            comments=comments or None,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.session.rollback()
        raise ERRORS_BY_CODE[ErrorCode.ALREADY_PROCESSED](f"This bonus was already processed at level {level}")

    AuditLog.record(
        "employee",
        employee.id,
        f"bonus_{decision.resulting_status.value}",
        user_id=actor_id,
        extra_data={"level": level, "comments": comments},
    )
    db.session.commit()

    logger.info(
        f"Bonus for employee {employee.employee_id} {decision.resulting_status.value} at level {level} by {actor_id}"
    )
    return employee.approval_status_dict()


def process_approval(
    employee_pk: int,
    level: int,
    action: Union[str, ApprovalAction],
    actor_id: int,
    comments: Optional[str] = None,
) -> Employee:
    """Load the employee and apply :func:`transition`."""
    employee = db.session.get(Employee, employee_pk)
    if employee is None:
        raise NotFoundError("Employee not found")
    transition(employee, level, action, actor_id, comments)
    return employee


def next_pending_level(employee: Employee) -> Optional[int]:
    """The level waiting for a decision, or ``None`` when finished, rejected or not started."""
    if not bonus_entered(employee):
        return None
    for level in APPROVAL_LEVELS:
        status = level_status(employee, level)
        if status is LevelStatus.PENDING:
            return level
        if status is LevelStatus.REJECTED:
            return None
    return None


def overall_status(employee: Employee) -> Dict[str, Any]:
    """Summarize the chain as ``not_entered``, ``pending``, ``approved``, ``rejected`` or ``not_required``."""
    if not bonus_entered(employee):
        return {"status": "not_entered", "approved": 0, "required": 0, "current_level": None}

    approved = required = 0
    current_level = None
    for level, status in level_statuses(employee).items():
        if status is LevelStatus.NOT_REQUIRED:
            continue
        required += 1
        if status is LevelStatus.REJECTED:
            return {"status": "rejected", "approved": approved, "required": required, "current_level": level}
        if status is LevelStatus.APPROVED:
            approved += 1
        elif current_level is None:
            current_level = level

    if required == 0:
        state = "not_required"
    elif approved == required:
        state = "approved"
    else:
        state = "pending"
    return {"status": state, "approved": approved, "required": required, "current_level": current_level}


def pending_bonus_approvals(actor_id: int) -> List[Employee]:
    """Active employees whose next pending level is assigned to ``actor_id``."""
    candidates = (
        Employee.query.filter(Employee.is_active.is_(True), Employee.entered_by_id.isnot(None))
        .order_by(Employee.employee_id)
        .all()
    )
    waiting = []
    for employee in candidates:
        level = next_pending_level(employee)
        if level is not None and employee.approver_id_for(level) == actor_id:
            waiting.append(employee)
    return waiting
