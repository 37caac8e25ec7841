"""Employee-related models."""
from __future__ import annotations

import enum
from typing import Optional

from flask_login import UserMixin
from werkzeug.security import check_password_hash, generate_password_hash

from bonusflow import db

APPROVAL_LEVELS = (1, 2, 3, 4, 5)


class Role(enum.Enum):
    EMPLOYEE = "employee"
    APPROVER = "approver"
    HR = "hr"
    ADMIN = "admin"


# (level label, raw name column, canonical link column) reconciled by the bulk sync.
REFERENCE_FIELDS = (
    ("supervisor", "supervisor_name", "supervisor_id"),
    *((f"level{level}", f"level{level}_approver_name", f"level{level}_approver_id") for level in APPROVAL_LEVELS),
)


class Employee(UserMixin, db.Model):
    __tablename__ = "employees"

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.String(50), unique=True, nullable=False, index=True)
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False, default="")
    email = db.Column(db.String(255), unique=True, nullable=True, index=True)
    password_hash = db.Column(db.String(255), nullable=True)
    role = db.Column(db.Enum(Role, name="employee_role"), nullable=False, default=Role.EMPLOYEE)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    position = db.Column(db.String(120), nullable=True)
    department = db.Column(db.String(120), nullable=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)

    bonus_2024 = db.Column(db.Numeric(12, 2), nullable=True)
    bonus_2025 = db.Column(db.Numeric(12, 2), nullable=True)
    entered_by_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=True)
    entered_at = db.Column(db.DateTime, nullable=True)

    supervisor_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=True, index=True)
    supervisor_name = db.Column(db.String(255), nullable=True)
    level1_approver_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=True, index=True)
    level1_approver_name = db.Column(db.String(255), nullable=True)
    level2_approver_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=True, index=True)
    level2_approver_name = db.Column(db.String(255), nullable=True)
    level3_approver_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=True, index=True)
    level3_approver_name = db.Column(db.String(255), nullable=True)
    level4_approver_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=True, index=True)
    level4_approver_name = db.Column(db.String(255), nullable=True)
    level5_approver_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=True, index=True)
    level5_approver_name = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime, server_default=db.func.now(), nullable=False)

    branch = db.relationship("Branch", back_populates="employees", lazy="joined")
    level_approvals = db.relationship(
        "BonusLevelApproval",
        foreign_keys="BonusLevelApproval.employee_id",
        back_populates="employee",
        order_by="BonusLevelApproval.level",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    def set_password(self, password: str) -> None:
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        if not self.password_hash:
            return False
        return check_password_hash(self.password_hash, password)

    def get_id(self) -> str:
        return str(self.id)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def approver_id_for(self, level: int) -> Optional[int]:
        """Canonical approver assigned at ``level`` (1-5)."""
        return getattr(self, f"level{level}_approver_id")

    def approval_for(self, level: int):
        """The ``BonusLevelApproval`` row for ``level``, if the bonus was ever entered."""
        return next((row for row in self.level_approvals if row.level == level), None)

    def approval_status_dict(self) -> dict:
        return {
            "entered_by": self.entered_by_id,
            "entered_at": self.entered_at.isoformat() if self.entered_at else None,
            **{f"level{row.level}": row.to_dict() for row in self.level_approvals},
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "employee_id": self.employee_id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "full_name": self.full_name,
            "email": self.email,
            "role": self.role.value if self.role else None,
            "is_active": self.is_active,
            "position": self.position,
            "department": self.department,
            "branch_id": self.branch_id,
            "bonus_2024": float(self.bonus_2024) if self.bonus_2024 is not None else None,
            "bonus_2025": float(self.bonus_2025) if self.bonus_2025 is not None else None,
            "supervisor_id": self.supervisor_id,
            "supervisor_name": self.supervisor_name,
            **{
                key: getattr(self, key)
                for level in APPROVAL_LEVELS
                for key in (f"level{level}_approver_id", f"level{level}_approver_name")
            },
            "approval_status": self.approval_status_dict(),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self) -> str:
        return f"<Employee {self.employee_id}>"
