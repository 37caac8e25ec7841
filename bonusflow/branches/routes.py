"""Branch routes."""
from __future__ import annotations

from typing import Any

from flask import request
from flask_login import login_required

from bonusflow import db
from bonusflow.errors import ConflictError, NotFoundError
from bonusflow.forms import BranchForm, form_from_json
from bonusflow.models import Branch, Employee, Role
from bonusflow.utils.helpers import json_response, role_required

from . import branches_bp


def _get_branch(branch_id: int) -> Branch:
    branch = db.session.get(Branch, branch_id)
    if branch is None:
        raise NotFoundError("Branch not found")
    return branch


def _ensure_unique_code(branch_code: str, branch_id: int | None = None) -> None:
    existing = Branch.query.filter_by(branch_code=branch_code).first()
    if existing is not None and existing.id != branch_id:
        raise ConflictError("branch_code already exists")


@branches_bp.route("", methods=["GET"])
@login_required
def list_branches() -> Any:
    query = Branch.query
    if "is_active" in request.args:
        query = query.filter_by(is_active=request.args["is_active"].lower() == "true")
    branches = query.order_by(Branch.branch_code).all()
    return json_response({"count": len(branches), "branches": [branch.to_dict() for branch in branches]})


@branches_bp.route("", methods=["POST"])
@login_required
@role_required(Role.HR, Role.ADMIN)
def create_branch() -> Any:
    form = form_from_json(BranchForm)
    _ensure_unique_code(form.branch_code.data)

    payload = request.get_json(silent=True) or {}
    branch = Branch(
        branch_code=form.branch_code.data,
        branch_name=form.branch_name.data,
        location=form.location.data or None,
        is_active=form.is_active.data if "is_active" in payload else True,
    )
    db.session.add(branch)
    db.session.commit()
    return json_response({"message": "Branch created.", "branch": branch.to_dict()}, status=201)


@branches_bp.route("/<int:branch_id>", methods=["GET"])
@login_required
def get_branch(branch_id: int) -> Any:
    return json_response({"branch": _get_branch(branch_id).to_dict()})


@branches_bp.route("/<int:branch_id>", methods=["PUT"])
@login_required
@role_required(Role.HR, Role.ADMIN)
def update_branch(branch_id: int) -> Any:
    branch = _get_branch(branch_id)
    form = form_from_json(BranchForm)
    _ensure_unique_code(form.branch_code.data, branch.id)

    payload = request.get_json(silent=True) or {}
    branch.branch_code = form.branch_code.data
    branch.branch_name = form.branch_name.data
    branch.location = form.location.data or None
    if "is_active" in payload:
        branch.is_active = form.is_active.data
    db.session.commit()
    return json_response({"message": "Branch updated.", "branch": branch.to_dict()})


@branches_bp.route("/<int:branch_id>", methods=["DELETE"])
@login_required
@role_required(Role.ADMIN)
def delete_branch(branch_id: int) -> Any:
    branch = _get_branch(branch_id)
    if Employee.query.filter_by(branch_id=branch.id).count():
        raise ConflictError("Branch still has employees assigned")
    db.session.delete(branch)
    db.session.commit()
    return json_response({"message": "Branch deleted."})
