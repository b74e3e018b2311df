"""
Error Handling Module for FilingDesk

This module provides centralized error handling with:
- Custom exception hierarchy for the workflow engine
- Standardized error payloads for the API collaborator
- Helpers for mapping storage failures onto workflow error codes
"""

from datetime import datetime, timezone
from enum import Enum
from http import HTTPStatus
from typing import Any, Dict, Optional
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

logger = logging.getLogger("filingdesk.errors")


class ErrorCode(str, Enum):
    """Standardized error codes for the workflow engine"""

    # Validation Errors (recoverable by the caller)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_DATE_RANGE = "INVALID_DATE_RANGE"
    WORKFLOW_LOCKED = "WORKFLOW_LOCKED"
    INVALID_STAGE = "INVALID_STAGE"

    # Resource Errors
    NOT_FOUND = "NOT_FOUND"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    USER_INACTIVE = "USER_INACTIVE"

    # Deadline calculation (rendered as "pending", never as a failure)
    INSUFFICIENT_DATA = "INSUFFICIENT_DATA"

    # Store-level Errors
    STALE_VERSION = "STALE_VERSION"
    HISTORY_WRITE_FAILED = "HISTORY_WRITE_FAILED"
    HISTORY_IMMUTABLE = "HISTORY_IMMUTABLE"


class AppException(Exception):
    """Base exception for all application exceptions"""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        status_code: int = HTTPStatus.INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None,
        field: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        self.code = code
        self.message = message
        self.status_code = int(status_code)
        self.details = details or {}
        self.field = field
        self.original_error = original_error
        self.timestamp = datetime.now(timezone.utc)
        super().__init__(self.message)

    @property
    def is_recoverable(self) -> bool:
        """4xx-equivalent errors can be presented to the user as-is."""
        return self.status_code < 500

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON response"""
        result = {
            "code": self.code.value,
            "message": self.message,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.field:
            result["field"] = self.field
        if self.details:
            result["details"] = self.details
        return result


# ============================================================================
# Validation Exceptions
# ============================================================================

class ValidationException(AppException):
    """Base validation exception"""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        code: ErrorCode = ErrorCode.VALIDATION_ERROR,
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=HTTPStatus.UNPROCESSABLE_ENTITY,
            details=details,
            field=field,
        )


class InvalidDateRangeException(ValidationException):
    """Period start must be before period end"""

    def __init__(self, start_date: Any, end_date: Any):
        super().__init__(
            message=f"Period start {start_date} must be before period end {end_date}",
            field="period_start",
            code=ErrorCode.INVALID_DATE_RANGE,
            details={"period_start": str(start_date), "period_end": str(end_date)},
        )


class WorkflowLockedException(ValidationException):
    """Transition attempted on a completed workflow"""

    def __init__(self, record_id: Any, current_stage: Any):
        super().__init__(
            message="Workflow is completed and can no longer change stage",
            code=ErrorCode.WORKFLOW_LOCKED,
            details={"workflow_id": str(record_id), "current_stage": str(current_stage)},
        )


class InvalidStageException(ValidationException):
    """Target stage not legal for this workflow type or context"""

    def __init__(self, stage: Any, workflow_type: Any, reason: str):
        super().__init__(
            message=f"Stage {stage} is not allowed for {workflow_type}: {reason}",
            field="stage",
            code=ErrorCode.INVALID_STAGE,
            details={"stage": str(stage), "workflow_type": str(workflow_type)},
        )


# ============================================================================
# Resource Exceptions
# ============================================================================

class NotFoundException(AppException):
    """Resource not found"""

    def __init__(
        self,
        resource_type: str,
        resource_id: Any,
        code: ErrorCode = ErrorCode.NOT_FOUND,
    ):
        super().__init__(
            code=code,
            message=f"{resource_type} not found: {resource_id}",
            status_code=HTTPStatus.NOT_FOUND,
            details={"resource_type": resource_type, "resource_id": str(resource_id)},
        )


class UserNotFoundException(NotFoundException):
    """Assignee does not exist"""

    def __init__(self, user_id: Any):
        super().__init__("User", user_id, code=ErrorCode.USER_NOT_FOUND)


class UserInactiveException(ValidationException):
    """Assignee exists but is deactivated"""

    def __init__(self, user_id: Any):
        super().__init__(
            message=f"User {user_id} is inactive and cannot be assigned work",
            field="user_id",
            code=ErrorCode.USER_INACTIVE,
            details={"user_id": str(user_id)},
        )


# ============================================================================
# Store-level Exceptions
# ============================================================================

class StaleVersionException(AppException):
    """Concurrent modification of the same workflow record"""

    def __init__(self, record_id: Any, original_error: Optional[Exception] = None):
        super().__init__(
            code=ErrorCode.STALE_VERSION,
            message=f"Workflow {record_id} was modified concurrently; reload and retry",
            status_code=HTTPStatus.CONFLICT,
            details={"workflow_id": str(record_id)},
            original_error=original_error,
        )

    @property
    def is_recoverable(self) -> bool:
        return False


class HistoryWriteFailedException(AppException):
    """History append failed; the owning transition is void"""

    def __init__(self, record_id: Any, original_error: Optional[Exception] = None):
        super().__init__(
            code=ErrorCode.HISTORY_WRITE_FAILED,
            message=f"Could not record history for workflow {record_id}",
            status_code=HTTPStatus.INTERNAL_SERVER_ERROR,
            details={"workflow_id": str(record_id)},
            original_error=original_error,
        )


class HistoryImmutableException(AppException):
    """Attempt to update or delete a persisted history entry"""

    def __init__(self, entry_id: Any, operation: str):
        super().__init__(
            code=ErrorCode.HISTORY_IMMUTABLE,
            message=f"Workflow history entries are append-only ({operation} refused)",
            status_code=HTTPStatus.CONFLICT,
            details={"entry_id": str(entry_id), "operation": operation},
        )


# ============================================================================
# Helpers
# ============================================================================

def translate_flush_error(record_id: Any, exc: SQLAlchemyError) -> AppException:
    """Map a failed flush of a transition onto the workflow error taxonomy."""
    if isinstance(exc, StaleDataError):
        logger.warning(f"Stale version on workflow {record_id}: {exc}")
        return StaleVersionException(record_id, original_error=exc)

    logger.error(
        f"Write failed for workflow {record_id}: {exc}",
        exc_info=exc,
    )
    return HistoryWriteFailedException(record_id, original_error=exc)
