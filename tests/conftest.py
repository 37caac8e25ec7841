"""
BonusFlow - Test Configuration

Pytest fixtures: an application bound to in-memory SQLite, a test client,
an employee factory and a session-login helper.
"""

from decimal import Decimal
from typing import Callable, Optional

import pytest
from flask import g

from bonusflow import create_app, db
from bonusflow.models import Employee, Role


@pytest.fixture()
def app():
    """Fresh application and schema for each test."""
    app = create_app("testing")
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def make_employee(app) -> Callable[..., Employee]:
    """Create and commit an employee; keyword arguments override columns."""

    def factory(
        employee_id: str,
        first_name: str = "Test",
        last_name: str = "User",
        role: Role = Role.EMPLOYEE,
        password: Optional[str] = None,
        **columns,
    ) -> Employee:
        employee = Employee(
            employee_id=employee_id,
            first_name=first_name,
            last_name=last_name,
            role=role,
            is_active=columns.pop("is_active", True),
            **columns,
        )
        if password:
            employee.set_password(password)
        db.session.add(employee)
        db.session.commit()
        return employee

    return factory


@pytest.fixture()
def login(client) -> Callable[[Employee], None]:
    """Put ``employee`` in the client's Flask-Login session.

    Requests share the fixture's app context, so the user cached on ``g``
    by an earlier request is dropped as well.
    """

    def do_login(employee: Employee) -> None:
        g.pop("_login_user", None)
        with client.session_transaction() as session:
            session["_user_id"] = str(employee.id)
            session["_fresh"] = True

    return do_login


@pytest.fixture()
def chain(make_employee):
    """Supervisor S, approvers A (level 1) and B (level 2), and employee E."""
    supervisor = make_employee("S001", "Sam", "Super", role=Role.APPROVER)
    approver_a = make_employee("A001", "Alice", "Adams", role=Role.APPROVER)
    approver_b = make_employee("B001", "Bob", "Brown", role=Role.APPROVER)
    employee = make_employee(
        "E001",
        "Eve",
        "Evans",
        supervisor_id=supervisor.id,
        supervisor_name="Super, Sam",
        level1_approver_id=approver_a.id,
        level1_approver_name="Adams, Alice",
        level2_approver_id=approver_b.id,
        level2_approver_name="Brown, Bob",
        bonus_2024=Decimal("500.00"),
    )
    return {"supervisor": supervisor, "a": approver_a, "b": approver_b, "employee": employee}
