"""Application data models exposed for easy imports."""
from bonusflow import db  # noqa: F401
from .branch import Branch  # noqa: F401
from .employee import APPROVAL_LEVELS, REFERENCE_FIELDS, Employee, Role  # noqa: F401
from .approval import ApprovalAction, BonusLevelApproval, LevelStatus  # noqa: F401
from .audit import AuditLog  # noqa: F401

__all__ = [
    "db",
    "APPROVAL_LEVELS",
    "REFERENCE_FIELDS",
    "ApprovalAction",
    "AuditLog",
    "BonusLevelApproval",
    "Branch",
    "Employee",
    "LevelStatus",
    "Role",
]
