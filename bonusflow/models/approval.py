"""Approval-related models."""
from __future__ import annotations

import enum

from bonusflow import db


class LevelStatus(enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    NOT_REQUIRED = "not_required"


class ApprovalAction(enum.Enum):
    APPROVE = "approve"
    REJECT = "reject"

    @property
    def resulting_status(self) -> LevelStatus:
        return LevelStatus.APPROVED if self is ApprovalAction.APPROVE else LevelStatus.REJECTED


class BonusLevelApproval(db.Model):
    __tablename__ = "bonus_level_approvals"
    __table_args__ = (db.UniqueConstraint("employee_id", "level", name="uq_bonus_level_approvals_employee_level"),)

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=False, index=True)
    level = db.Column(db.Integer, nullable=False)
    status = db.Column(
        db.Enum(LevelStatus, name="bonus_level_status"),
        nullable=False,
        default=LevelStatus.NOT_REQUIRED,
    )
    approved_by_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=True, index=True)
    approved_at = db.Column(db.DateTime, nullable=True)
    comments = db.Column(db.Text, nullable=True)

    employee = db.relationship("Employee", foreign_keys=[employee_id], back_populates="level_approvals")

    def to_dict(self) -> dict:
        return {
            "level": self.level,
            "status": self.status.value if self.status else None,
            "approved_by": self.approved_by_id,
            "approved_at": self.approved_at.isoformat() if self.approved_at else None,
            "comments": self.comments,
        }

    def __repr__(self) -> str:
        return (
            f"<BonusLevelApproval employee_id={self.employee_id} level={self.level} "
            f"status={self.status.value if self.status else None}>"
        )
