"""Audit logging model."""
from __future__ import annotations

from typing import Any, Dict, Optional

from bonusflow import db


class AuditLog(db.Model):
    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)
    entity_type = db.Column(db.String(120), nullable=False)
    entity_id = db.Column(db.Integer, nullable=True)
    user_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=True)
    action = db.Column(db.String(120), nullable=False)
    timestamp = db.Column(db.DateTime, server_default=db.func.now(), nullable=False)
    extra_data = db.Column(db.JSON, nullable=True)

    @classmethod
    def record(
        cls,
        entity_type: str,
        entity_id: Optional[int],
        action: str,
        user_id: Optional[int] = None,
        extra_data: Optional[Dict[str, Any]] = None,
    ) -> "AuditLog":
        """Add an audit entry to the current session; the caller commits."""
        entry = cls(
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=user_id,
            action=action,
            extra_data=extra_data,
        )
        db.session.add(entry)
        return entry

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "user_id": self.user_id,
            "action": self.action,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "extra_data": self.extra_data,
        }

    def __repr__(self) -> str:
        return f"<AuditLog {self.entity_type}#{self.entity_id} action={self.action}>"
