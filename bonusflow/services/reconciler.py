"""Bulk reconciliation of raw approver names to canonical employee links."""
from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import or_, update
from sqlalchemy.exc import SQLAlchemyError

from bonusflow import db
from bonusflow.errors import ConflictError
from bonusflow.models import APPROVAL_LEVELS, REFERENCE_FIELDS, AuditLog, Employee, Role
from bonusflow.services import approval_engine
from bonusflow.services.approver_resolver import EMPTY_REFERENCES, ApproverIndex

logger = logging.getLogger(__name__)

NOT_FOUND_REASON = "Person not found"

# Two overlapping runs could stage conflicting links for the same rows.
_sync_lock = threading.Lock()


def _acquire_sync_lock() -> None:
    if not _sync_lock.acquire(blocking=False):
        raise ConflictError("An approver synchronization is already running.")


def _load_directory() -> List[Employee]:
    return Employee.query.order_by(Employee.employee_id).all()


def _is_blank(approver_name: Optional[str]) -> bool:
    return approver_name is None or approver_name.strip() in EMPTY_REFERENCES


def _stage_links(employee: Employee, index: ApproverIndex, errors: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Link columns whose resolved value differs from what is stored."""
    updates: Dict[str, Any] = {}
    for label, name_field, id_field in REFERENCE_FIELDS:
        approver_name = getattr(employee, name_field)
        if _is_blank(approver_name):
            continue

        approver = index.resolve(approver_name)
        if approver is None:
            errors.append(
                {
                    "employee_id": employee.employee_id,
                    "employee_name": employee.full_name,
                    "level": label,
                    "approver_name": approver_name,
                    "reason": NOT_FOUND_REASON,
                }
            )
            continue

        if getattr(employee, id_field) != approver.id:
            updates[id_field] = approver.id
    return updates


def _resync_entered_chains(employees: Iterable[Employee]) -> None:
    """Re-read links written by a bulk UPDATE and update their open levels."""
    for employee in employees:
        if employee.entered_by_id is None and not employee.level_approvals:
            continue
        db.session.expire(employee)
        approval_engine.sync_level_rows(employee)


def _reconcile(directory: List[Employee], resync_all: bool = False) -> Dict[str, Any]:
    index = ApproverIndex(directory)
    errors: List[Dict[str, Any]] = []
    bulk_updates: List[Dict[str, Any]] = []

    for employee in directory:
        updates = _stage_links(employee, index, errors)
        if updates:
            bulk_updates.append({"id": employee.id, **updates})

    if bulk_updates:
        db.session.execute(update(Employee), bulk_updates)
    changed_ids = {row["id"] for row in bulk_updates}
    _resync_entered_chains(
        directory if resync_all else [employee for employee in directory if employee.id in changed_ids]
    )

    if errors:
        logger.warning(f"Approver sync left {len(errors)} reference(s) unresolved")
    logger.info(f"Approver sync updated {len(bulk_updates)} of {len(directory)} employees")

    return {"updated": len(bulk_updates), "total": len(directory), "errors": errors}


def reconcile_all(directory: Optional[Iterable[Employee]] = None, actor_id: Optional[int] = None) -> Dict[str, Any]:
    """Resolve every stored approver/supervisor name and link it in one batched write.

    Unresolved names are reported in ``errors`` and never abort the run.
    Storage failures roll back and propagate.
    """
    _acquire_sync_lock()
    try:
        members = list(directory) if directory is not None else _load_directory()
        result = _reconcile(members)
        AuditLog.record(
            "employee_directory",
            None,
            "approvers_synced",
            user_id=actor_id,
            extra_data={"updated": result["updated"], "unresolved": len(result["errors"])},
        )
        db.session.commit()
        return result
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error(f"Approver sync failed: {exc}")
        raise
    finally:
        _sync_lock.release()


def reset_and_sync(directory: Optional[Iterable[Employee]] = None, actor_id: Optional[int] = None) -> Dict[str, Any]:
    """Clear every canonical link (raw names are kept) and rebuild them."""
    link_columns = [getattr(Employee, id_field) for _, _, id_field in REFERENCE_FIELDS]

    _acquire_sync_lock()
    try:
        cleared = db.session.execute(
            update(Employee)
            .where(or_(*[column.isnot(None) for column in link_columns]))
            .values({column.key: None for column in link_columns})
            .execution_options(synchronize_session=False)
        ).rowcount
        db.session.expire_all()

        members = list(directory) if directory is not None else _load_directory()
        result = _reconcile(members, resync_all=True)
        AuditLog.record(
            "employee_directory",
            None,
            "approvers_reset",
            user_id=actor_id,
            extra_data={"cleared": cleared, "synced": result["updated"], "unresolved": len(result["errors"])},
        )
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error(f"Approver reset failed: {exc}")
        raise
    finally:
        _sync_lock.release()

    return {"cleared": cleared, "synced": result["updated"], "total": result["total"], "errors": result["errors"]}


def link_employee(employee: Employee) -> List[Dict[str, Any]]:
    """Resolve one employee's names in place; returns the unresolved ones.

    A blank name clears its link. Names that no longer resolve leave their
    existing link untouched, as in the bulk run. Open levels of an entered
    bonus follow the new links. The caller owns the transaction.
    """
    errors: List[Dict[str, Any]] = []
    updates = _stage_links(employee, ApproverIndex(_load_directory()), errors)
    for _, name_field, id_field in REFERENCE_FIELDS:
        if _is_blank(getattr(employee, name_field)) and getattr(employee, id_field) is not None:
            updates[id_field] = None

    for id_field, approver_id in updates.items():
        setattr(employee, id_field, approver_id)
    approval_engine.sync_level_rows(employee)
    return errors


def promote_approvers() -> int:
    """Give the approver role to every plain employee referenced as a level approver."""
    approver_ids = set()
    for level in APPROVAL_LEVELS:
        column = getattr(Employee, f"level{level}_approver_id")
        approver_ids.update(row[0] for row in db.session.query(column).filter(column.isnot(None)).distinct())

    if not approver_ids:
        return 0

    promoted = (
        Employee.query.filter(Employee.id.in_(approver_ids), Employee.role == Role.EMPLOYEE)
        .update({Employee.role: Role.APPROVER}, synchronize_session=False)
    )
    db.session.commit()
    logger.info(f"Promoted {promoted} employee(s) to approver")
    return promoted


def approver_assignment_summary(approver: Employee) -> Dict[str, int]:
    """Active employees per level, counted at the first level ``approver`` holds for them."""
    counts: Dict[str, int] = {}
    for level in APPROVAL_LEVELS:
        filters = [
            getattr(Employee, f"level{level}_approver_id") == approver.id,
            Employee.is_active.is_(True),
            Employee.id != approver.id,
        ]
        for earlier in range(1, level):
            column = getattr(Employee, f"level{earlier}_approver_id")
            filters.append(or_(column.is_(None), column != approver.id))
        counts[f"level{level}"] = Employee.query.filter(*filters).count()
    return counts
