"""Employee directory, bonus entry and approval routes."""
from __future__ import annotations

import logging
from typing import Any, Dict

from flask import request
from flask_login import current_user, login_required

from bonusflow import db
from bonusflow.errors import ConflictError, NotAuthorizedError, NotFoundError, ValidationError
from bonusflow.forms import ApprovalActionForm, EmployeeForm, EmployeeUpdateForm, form_from_json
from bonusflow.models import APPROVAL_LEVELS, REFERENCE_FIELDS, AuditLog, Branch, Employee, Role
from bonusflow.services import approval_engine, bonus_service, eligibility, employee_import, reconciler
from bonusflow.services.approver_resolver import resolve_approver
from bonusflow.utils.helpers import json_response, role_required

from . import employees_bp

logger = logging.getLogger(__name__)

APPROVER_ROLES = (Role.APPROVER, Role.HR, Role.ADMIN)
EDITABLE_FIELDS = (
    "employee_id",
    "first_name",
    "last_name",
    "email",
    "position",
    "department",
    "branch_id",
    "bonus_2024",
    "is_active",
    "supervisor_name",
    *(f"level{level}_approver_name" for level in APPROVAL_LEVELS),
)
LINKED_NAME_FIELDS = {name_field for _, name_field, _ in REFERENCE_FIELDS}


def _get_employee(employee_pk: int) -> Employee:
    employee = db.session.get(Employee, employee_pk)
    if employee is None:
        raise NotFoundError("Employee not found")
    return employee


def _employee_payload(employee: Employee) -> Dict[str, Any]:
    data = employee.to_dict()
    data["overall_status"] = approval_engine.overall_status(employee)
    data["next_level"] = approval_engine.next_pending_level(employee)
    return data


def _apply_form(employee: Employee, form: EmployeeForm, submitted: set) -> None:
    for field in EDITABLE_FIELDS:
        if field not in submitted:
            continue
        value = getattr(form, field).data
        if isinstance(value, str):
            value = value.strip() or None
        if field == "email" and value:
            value = value.lower()
        if field == "last_name":
            value = value or ""
        if field == "branch_id" and value is not None and db.session.get(Branch, value) is None:
            raise ValidationError("Branch not found")
        setattr(employee, field, value)

    if "role" in submitted:
        employee.role = Role(form.role.data)
    if form.password.data:
        employee.set_password(form.password.data)


def _ensure_unique(employee: Employee) -> None:
    # A new employee has no id yet; comparing against NULL would match nothing.
    others = Employee.query if employee.id is None else Employee.query.filter(Employee.id != employee.id)
    with db.session.no_autoflush:
        if others.filter(Employee.employee_id == employee.employee_id).first() is not None:
            raise ConflictError("employee_id already exists")
        if employee.email and others.filter(Employee.email == employee.email).first() is not None:
            raise ConflictError("email already exists")


@employees_bp.route("", methods=["GET"])
@login_required
@role_required(Role.HR, Role.ADMIN)
def list_employees() -> Any:
    """List employees, optionally filtered by active flag, branch or role."""
    query = Employee.query
    if "is_active" in request.args:
        query = query.filter(Employee.is_active.is_(request.args["is_active"].lower() == "true"))
    if request.args.get("branch_id"):
        query = query.filter(Employee.branch_id == request.args.get("branch_id", type=int))
    if request.args.get("role"):
        try:
            query = query.filter(Employee.role == Role(request.args["role"].lower()))
        except ValueError:
            raise ValidationError(f"Unknown role '{request.args['role']}'") from None

    employees = query.order_by(Employee.employee_id).all()
    return json_response({"count": len(employees), "employees": [employee.to_dict() for employee in employees]})


@employees_bp.route("", methods=["POST"])
@login_required
@role_required(Role.HR, Role.ADMIN)
def create_employee() -> Any:
    """Create a single employee and link any approver names it carries."""
    form = form_from_json(EmployeeForm)
    submitted = set((request.get_json(silent=True) or {}).keys())

    employee = Employee(role=Role.EMPLOYEE, is_active=True, last_name="")
    _apply_form(employee, form, submitted)
    if not form.password.data:
        employee.set_password(employee_import.default_password())
    _ensure_unique(employee)

    db.session.add(employee)
    db.session.flush()
    unresolved = reconciler.link_employee(employee)
    db.session.commit()

    return json_response(
        {"message": "Employee created successfully", "employee": employee.to_dict(), "unresolved": unresolved},
        status=201,
    )


@employees_bp.route("/bulk", methods=["POST"])
@login_required
@role_required(Role.HR, Role.ADMIN)
def bulk_create_employees() -> Any:
    """Create employees from parsed spreadsheet rows, then sync approver links."""
    payload: Dict[str, Any] = request.get_json(silent=True) or {}
    result = employee_import.bulk_create_employees(payload.get("employees"), actor_id=current_user.id)

    created, skipped, sync = result["created"], result["skipped"], result["sync"]
    deferred = sync.get("deferred", False)
    if deferred:
        message = (
            f"Created {len(created)} employees, skipped {len(skipped)}. "
            "Approver sync deferred: another sync is running."
        )
    elif skipped:
        message = (
            f"Partially successful: {len(created)} employees created, {len(skipped)} skipped. "
            f"Synced {sync['updated']} approver relationships."
        )
    else:
        message = f"Successfully created {len(created)} employees. Synced {sync['updated']} approver relationships."

    return json_response(
        {
            "message": message,
            "count": len(created),
            "approvers_synced": sync["updated"],
            "sync_errors": sync["errors"],
            "sync_deferred": deferred,
            "skipped_duplicates": skipped,
            "employees": [employee.to_dict() for employee in created],
        },
        status=207 if skipped else 201,
    )


@employees_bp.route("/sync-approvers", methods=["POST"])
@login_required
@role_required(Role.ADMIN)
def sync_approvers() -> Any:
    result = reconciler.reconcile_all(actor_id=current_user.id)
    return json_response({"message": "Successfully synced supervisor and approver IDs", **result})


@employees_bp.route("/set-approver-roles", methods=["POST"])
@login_required
@role_required(Role.ADMIN)
def set_approver_roles() -> Any:
    promoted = reconciler.promote_approvers()
    return json_response({"message": f"{promoted} employee(s) promoted to approver", "promoted": promoted})


@employees_bp.route("/resolve", methods=["GET"])
@login_required
@role_required(Role.HR, Role.ADMIN)
def resolve_reference() -> Any:
    """Preview which employee a free-text approver reference points at."""
    reference = request.args.get("reference", "")
    if not reference.strip():
        raise ValidationError("reference is required")
    approver = resolve_approver(reference, Employee.query.all())
    if approver is None:
        raise NotFoundError(f"No employee matches '{reference}'")
    return json_response({"reference": reference, "employee": approver.to_dict()})


@employees_bp.route("/supervisor/my-team", methods=["GET"])
@login_required
def my_team() -> Any:
    employees = bonus_service.supervised_employees(current_user.id)
    return json_response({"count": len(employees), "employees": [_employee_payload(emp) for emp in employees]})


@employees_bp.route("/approvals/my-approvals", methods=["GET"])
@login_required
@role_required(*APPROVER_ROLES)
def my_approvals() -> Any:
    """Employees whose next pending level is assigned to the current user."""
    employees = approval_engine.pending_bonus_approvals(current_user.id)
    return json_response({"count": len(employees), "employees": [_employee_payload(emp) for emp in employees]})


@employees_bp.route("/approvals/reset-and-sync", methods=["POST"])
@login_required
@role_required(Role.ADMIN)
def reset_and_sync_approvers() -> Any:
    result = reconciler.reset_and_sync(actor_id=current_user.id)
    return json_response(
        {"message": "Successfully cleared and re-synced all supervisor and approver assignments", **result}
    )


@employees_bp.route("/approvals/debug/<string:employee_id>", methods=["GET"])
@login_required
@role_required(Role.ADMIN)
def debug_approver_assignments(employee_id: str) -> Any:
    approver = Employee.query.filter_by(employee_id=employee_id).first()
    if approver is None:
        raise NotFoundError("Approver not found")
    return json_response(
        {
            "approver": {"id": approver.id, "employee_id": approver.employee_id, "name": approver.full_name},
            "counts": reconciler.approver_assignment_summary(approver),
        }
    )


@employees_bp.route("/approvals/<int:employee_pk>", methods=["POST"])
@login_required
@role_required(*APPROVER_ROLES)
def process_approval(employee_pk: int) -> Any:
    """Approve or reject one level of an employee's bonus."""
    form = form_from_json(ApprovalActionForm)
    employee = approval_engine.process_approval(
        employee_pk,
        form.level.data,
        form.action.data,
        current_user.id,
        form.comments.data,
    )
    verb = "approved" if form.action.data == "approve" else "rejected"
    return json_response(
        {
            "message": f"Bonus {verb} successfully at level {form.level.data}",
            "employee": _employee_payload(employee),
        }
    )


@employees_bp.route("/branch/<int:branch_id>", methods=["GET"])
@login_required
@role_required(Role.HR, Role.ADMIN)
def employees_by_branch(branch_id: int) -> Any:
    employees = Employee.query.filter_by(branch_id=branch_id).order_by(Employee.employee_id).all()
    return json_response({"count": len(employees), "employees": [employee.to_dict() for employee in employees]})


@employees_bp.route("/<int:employee_pk>", methods=["GET"])
@login_required
@role_required(Role.HR, Role.ADMIN)
def get_employee(employee_pk: int) -> Any:
    return json_response({"employee": _employee_payload(_get_employee(employee_pk))})


@employees_bp.route("/<int:employee_pk>", methods=["PUT"])
@login_required
@role_required(Role.HR, Role.ADMIN)
def update_employee(employee_pk: int) -> Any:
    employee = _get_employee(employee_pk)
    form = form_from_json(EmployeeUpdateForm)
    submitted = set((request.get_json(silent=True) or {}).keys())

    _apply_form(employee, form, submitted)
    if not employee.employee_id or not employee.first_name:
        raise ValidationError("employee_id and first_name cannot be blank")
    _ensure_unique(employee)

    unresolved = []
    if submitted & LINKED_NAME_FIELDS:
        unresolved = reconciler.link_employee(employee)
    db.session.commit()
    return json_response(
        {"message": "Employee updated successfully", "employee": employee.to_dict(), "unresolved": unresolved}
    )


@employees_bp.route("/<int:employee_pk>", methods=["DELETE"])
@login_required
@role_required(Role.ADMIN)
def delete_employee(employee_pk: int) -> Any:
    """Deactivate the employee; rows other employees link to are never removed."""
    employee = _get_employee(employee_pk)
    employee.is_active = False
    AuditLog.record("employee", employee.id, "employee_deactivated", user_id=current_user.id)
    db.session.commit()
    return json_response({"message": "Employee deactivated successfully", "employee": employee.to_dict()})


@employees_bp.route("/<int:employee_pk>/toggle-status", methods=["PATCH"])
@login_required
@role_required(Role.HR, Role.ADMIN)
def toggle_employee_status(employee_pk: int) -> Any:
    employee = _get_employee(employee_pk)
    employee.is_active = not employee.is_active
    db.session.commit()
    state = "activated" if employee.is_active else "deactivated"
    return json_response({"message": f"Employee {state} successfully", "employee": employee.to_dict()})


@employees_bp.route("/<int:employee_pk>/bonus", methods=["PUT"])
@login_required
def enter_bonus(employee_pk: int) -> Any:
    """Supervisor enters the bonus, which (re)starts the approval chain."""
    payload: Dict[str, Any] = request.get_json(silent=True) or {}
    employee = bonus_service.enter_bonus(employee_pk, payload.get("bonus_2025"), current_user)
    return json_response(
        {"message": "Bonus updated successfully and sent for approval", "employee": _employee_payload(employee)}
    )


@employees_bp.route("/<int:employee_pk>/eligibility", methods=["GET"])
@login_required
def check_eligibility(employee_pk: int) -> Any:
    level = request.args.get("level", type=int)
    if level is None:
        employee = _get_employee(employee_pk)
        return json_response({"levels": eligibility.actionable_levels(employee, current_user.id)})
    return json_response(eligibility.evaluate_eligibility(employee_pk, level, current_user.id))


@employees_bp.route("/<int:employee_pk>/approval-status", methods=["GET"])
@login_required
def approval_status(employee_pk: int) -> Any:
    employee = _get_employee(employee_pk)
    involved = {employee.supervisor_id, *(employee.approver_id_for(level) for level in APPROVAL_LEVELS)}
    if current_user.role not in (Role.HR, Role.ADMIN) and current_user.id not in involved:
        raise NotAuthorizedError("You are not involved in this employee's bonus approval")
    return json_response(
        {
            "approval_status": employee.approval_status_dict(),
            "overall_status": approval_engine.overall_status(employee),
            "next_level": approval_engine.next_pending_level(employee),
        }
    )
