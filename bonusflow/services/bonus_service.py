"""Bonus entry by an employee's supervisor."""
from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, List

from flask import current_app

from bonusflow import db
from bonusflow.errors import NotAuthorizedError, NotFoundError, ValidationError
from bonusflow.models import AuditLog, Employee
from bonusflow.services import approval_engine

logger = logging.getLogger(__name__)


def parse_amount(amount: Any) -> Decimal:
    if amount is None or amount == "":
        raise ValidationError("Bonus amount is required")
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError("Bonus amount must be a number") from None
    if not value.is_finite():
        raise ValidationError("Bonus amount must be a number")
    if value < 0:
        raise ValidationError("Bonus amount cannot be negative")
    max_amount = Decimal(str(current_app.config.get("BONUS_MAX_AMOUNT", 1_000_000)))
    if value > max_amount:
        raise ValidationError(f"Bonus amount cannot exceed {max_amount}")
    return value.quantize(Decimal("0.01"))


def enter_bonus(employee_pk: int, amount: Any, actor: Employee) -> Employee:
    """Set the 2025 bonus and (re)start the approval chain.

    Only the employee's linked supervisor may enter the bonus. Entering it
    again restarts every assigned level at ``pending``; the discarded
    decisions are kept in the audit log.
    """
    value = parse_amount(amount)

    employee = db.session.get(Employee, employee_pk)
    if employee is None:
        raise NotFoundError("Employee not found")

    if employee.supervisor_id is None or employee.supervisor_id != actor.id:
        raise NotAuthorizedError("You are not authorized to set bonus for this employee")

    previous_amount = employee.bonus_2025
    employee.bonus_2025 = value
    discarded = approval_engine.initialize_for_bonus_entry(employee, actor.id)

    AuditLog.record(
        "employee",
        employee.id,
        "bonus_entered",
        user_id=actor.id,
        extra_data={
            "amount": str(value),
            "previous_amount": str(previous_amount) if previous_amount is not None else None,
            "discarded_decisions": discarded,
        },
    )
    db.session.commit()

    logger.info(f"Bonus {value} entered for employee {employee.employee_id} by {actor.employee_id}")
    return employee


def supervised_employees(supervisor_id: int) -> List[Employee]:
    return (
        Employee.query.filter(
            Employee.supervisor_id == supervisor_id,
            Employee.is_active.is_(True),
            Employee.id != supervisor_id,
        )
        .order_by(Employee.employee_id)
        .all()
    )
