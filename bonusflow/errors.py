"""Error taxonomy for bonus workflow rule violations."""
from __future__ import annotations

import enum
import logging
from typing import Any, Dict, Optional

from flask import Flask
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class ErrorCode(enum.Enum):
    VALIDATION = "VALIDATION"
    NOT_FOUND = "NOT_FOUND"
    NOT_AUTHORIZED = "NOT_AUTHORIZED"
    ALREADY_PROCESSED = "ALREADY_PROCESSED"
    PREVIOUS_LEVEL_PENDING = "PREVIOUS_LEVEL_PENDING"
    BONUS_NOT_ENTERED = "BONUS_NOT_ENTERED"
    RESOLUTION_FAILURE = "RESOLUTION_FAILURE"
    STORAGE_FAILURE = "STORAGE_FAILURE"
    CONFLICT = "CONFLICT"


class BonusFlowError(Exception):
    """Base class for rule violations surfaced to API callers."""

    code = ErrorCode.VALIDATION
    status = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        payload: Dict[str, Any] = {"error": self.message, "code": self.code.value}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(BonusFlowError):
    code = ErrorCode.VALIDATION
    status = 400


class NotFoundError(BonusFlowError):
    code = ErrorCode.NOT_FOUND
    status = 404


class NotAuthorizedError(BonusFlowError):
    code = ErrorCode.NOT_AUTHORIZED
    status = 403


class AlreadyProcessedError(BonusFlowError):
    code = ErrorCode.ALREADY_PROCESSED
    status = 400


class PreviousLevelPendingError(BonusFlowError):
    code = ErrorCode.PREVIOUS_LEVEL_PENDING
    status = 400

    def __init__(self, message: str, blocking_level: int):
        super().__init__(message, {"blocking_level": blocking_level})
        self.blocking_level = blocking_level


class BonusNotEnteredError(BonusFlowError):
    code = ErrorCode.BONUS_NOT_ENTERED
    status = 400


class ConflictError(BonusFlowError):
    code = ErrorCode.CONFLICT
    status = 409


class StorageError(BonusFlowError):
    code = ErrorCode.STORAGE_FAILURE
    status = 500


ERRORS_BY_CODE = {
    cls.code: cls
    for cls in (
        ValidationError,
        NotFoundError,
        NotAuthorizedError,
        AlreadyProcessedError,
        BonusNotEnteredError,
        ConflictError,
        StorageError,
    )
}


def register_error_handlers(app: Flask) -> None:
    """Render workflow errors and storage failures as JSON."""
    from bonusflow import db
    from bonusflow.utils.helpers import json_response

    @app.errorhandler(BonusFlowError)
    def handle_bonusflow_error(error: BonusFlowError):
        return json_response(error.to_dict(), status=error.status)

    @app.errorhandler(SQLAlchemyError)
    def handle_storage_error(error: SQLAlchemyError):
        db.session.rollback()
        logger.error(f"Storage failure: {error}")
        failure = StorageError("A storage error occurred.")
        return json_response(failure.to_dict(), status=failure.status)
