"""Authentication routes."""
from __future__ import annotations

import logging
from typing import Any, Dict

from flask import request
from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf.csrf import generate_csrf

from bonusflow.models import Employee
from bonusflow.utils.helpers import json_response

from . import auth_bp

logger = logging.getLogger(__name__)


@auth_bp.route("/login", methods=["POST"])
def login() -> Any:
    """Authenticate an employee using employee number (or email) and password."""
    payload: Dict[str, Any] = request.get_json(silent=True) or {}

    identifier = str(payload.get("employee_id") or payload.get("email") or "").strip()
    password = payload.get("password") or ""
    if not identifier or not password:
        return json_response({"error": "Employee number and password are required."}, status=400)

    employee = Employee.query.filter(
        (Employee.employee_id == identifier) | (Employee.email == identifier.lower())
    ).first()
    if employee is None or not employee.check_password(password):
        logger.info(f"Failed login for {identifier}")
        return json_response({"error": "Invalid credentials."}, status=401)

    if not employee.is_active:
        return json_response({"error": "Account is deactivated."}, status=403)

    login_user(employee)
    return json_response({"message": "Logged in.", "user": employee.to_dict()})


@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout() -> Any:
    logout_user()
    return json_response({"message": "Logged out."})


@auth_bp.route("/me", methods=["GET"])
@login_required
def me() -> Any:
    return json_response({"user": current_user.to_dict()})


@auth_bp.route("/csrf-token", methods=["GET"])
def csrf_token() -> Any:
    """Token for the ``X-CSRFToken`` header on state-changing requests."""
    return json_response({"csrf_token": generate_csrf()})
