"""Branch model."""
from __future__ import annotations

from bonusflow import db


class Branch(db.Model):
    __tablename__ = "branches"

    id = db.Column(db.Integer, primary_key=True)
    branch_code = db.Column(db.String(50), unique=True, nullable=False, index=True)
    branch_name = db.Column(db.String(255), nullable=False)
    location = db.Column(db.String(255), nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, server_default=db.func.now(), nullable=False)

    employees = db.relationship("Employee", back_populates="branch", lazy="selectin")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_code": self.branch_code,
            "branch_name": self.branch_name,
            "location": self.location,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self) -> str:
        return f"<Branch {self.branch_code}>"
