"""Bulk employee creation from parsed spreadsheet rows."""
from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from flask import current_app

from bonusflow import db
from bonusflow.errors import ConflictError, ValidationError
from bonusflow.models import APPROVAL_LEVELS, AuditLog, Branch, Employee, Role
from bonusflow.services import reconciler

logger = logging.getLogger(__name__)

# Spreadsheet column carrying the raw approver name for each level.
REPORTING_COLUMNS = {
    1: "reporting_1st",
    2: "reporting_2nd",
    3: "reporting_3rd",
    4: "reporting_4th",
    5: "reporting_5th",
}

PROFILE_FIELDS = ("last_name", "position", "department", "supervisor_name")


def default_password() -> str:
    return current_app.config.get("DEFAULT_IMPORT_PASSWORD", "password123")


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _row_name(row: Dict[str, Any]) -> str:
    name = f"{_text(row.get('first_name')) or ''} {_text(row.get('last_name')) or ''}".strip()
    return name or "N/A"


def _optional_amount(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    amount = Decimal(str(value))
    if not amount.is_finite() or amount < 0:
        raise InvalidOperation(value)
    return amount.quantize(Decimal("0.01"))


def _skip(row: Dict[str, Any], reason: str) -> Dict[str, Any]:
    return {
        "employee_id": _text(row.get("employee_id")) or "N/A",
        "employee_name": _row_name(row),
        "email": _text(row.get("email")) or "N/A",
        "reason": reason,
    }


def validate_rows(rows: Any) -> None:
    """Reject the whole batch when it is not a list or any row lacks the required fields."""
    if not isinstance(rows, list) or not rows:
        raise ValidationError("Please provide an array of employees")

    invalid = []
    for position, row in enumerate(rows, start=1):
        if not isinstance(row, dict) or not _text(row.get("employee_id")) or not _text(row.get("first_name")):
            row = row if isinstance(row, dict) else {}
            invalid.append(
                {
                    "index": position,
                    "employee_id": _text(row.get("employee_id")) or "N/A",
                    "employee_name": _row_name(row),
                    "reason": "Missing required fields (Employee Number, First Name)",
                }
            )
    if invalid:
        raise ValidationError("Some employees have validation errors", {"errors": invalid})


def _build_employee(row: Dict[str, Any], branches: Dict[str, Branch], default_password: str) -> Employee:
    role_value = (_text(row.get("role")) or Role.EMPLOYEE.value).lower()
    try:
        role = Role(role_value)
    except ValueError:
        raise ValueError(f"Unknown role '{role_value}'") from None

    branch = None
    branch_code = _text(row.get("branch_code"))
    if branch_code:
        branch = branches.get(branch_code)
        if branch is None:
            raise ValueError(f"Unknown branch code '{branch_code}'")

    try:
        bonus_2024 = _optional_amount(row.get("bonus_2024"))
        bonus_2025 = _optional_amount(row.get("bonus_2025"))
    except (InvalidOperation, ValueError):
        raise ValueError("Invalid bonus amount") from None

    email = _text(row.get("email"))
    employee = Employee(
        employee_id=_text(row["employee_id"]),
        first_name=_text(row["first_name"]),
        email=email.lower() if email else None,
        role=role,
        branch=branch,
        bonus_2024=bonus_2024,
        bonus_2025=bonus_2025,
    )
    for field in PROFILE_FIELDS:
        setattr(employee, field, _text(row.get(field)) or ("" if field == "last_name" else None))
    for level in APPROVAL_LEVELS:
        setattr(employee, f"level{level}_approver_name", _text(row.get(REPORTING_COLUMNS[level])))
    employee.set_password(_text(row.get("password")) or default_password)
    return employee


def bulk_create_employees(rows: Any, actor_id: Optional[int] = None) -> Dict[str, Any]:
    """Create employees, skipping duplicates, then link approvers by name.

    Rows repeating an employee number or email (within the batch or against
    existing employees) are reported in ``skipped`` rather than inserted.
    When another sync holds the lock, ``sync`` comes back with
    ``deferred`` set instead of failing the committed import.
    """
    validate_rows(rows)

    employee_ids = {_text(row["employee_id"]) for row in rows}
    emails = {_text(row.get("email")).lower() for row in rows if _text(row.get("email"))}
    taken_ids = {
        value for (value,) in db.session.query(Employee.employee_id).filter(Employee.employee_id.in_(employee_ids))
    }
    taken_emails = {
        value for (value,) in db.session.query(Employee.email).filter(Employee.email.in_(emails))
    } if emails else set()
    branches = {branch.branch_code: branch for branch in Branch.query.all()}
    password = default_password()

    created: List[Employee] = []
    skipped: List[Dict[str, Any]] = []
    for row in rows:
        employee_id = _text(row["employee_id"])
        email = (_text(row.get("email")) or "").lower()
        if employee_id in taken_ids:
            skipped.append(_skip(row, "Duplicate entry (already exists)"))
            continue
        if email and email in taken_emails:
            skipped.append(_skip(row, "Duplicate email (already exists)"))
            continue
        try:
            employee = _build_employee(row, branches, password)
        except ValueError as exc:
            skipped.append(_skip(row, str(exc)))
            continue

        taken_ids.add(employee_id)
        if email:
            taken_emails.add(email)
        db.session.add(employee)
        created.append(employee)

    AuditLog.record(
        "employee_directory",
        None,
        "employees_imported",
        user_id=actor_id,
        extra_data={"created": len(created), "skipped": len(skipped)},
    )
    db.session.commit()
    logger.info(f"Bulk import created {len(created)} employee(s), skipped {len(skipped)}")

    try:
        sync = reconciler.reconcile_all(actor_id=actor_id)
    except ConflictError:
        # Rows are already committed; a later sync links them.
        logger.warning("Approver sync skipped after import: another sync is running")
        sync = {"updated": 0, "total": 0, "errors": [], "deferred": True}
    return {"created": created, "skipped": skipped, "sync": sync}
