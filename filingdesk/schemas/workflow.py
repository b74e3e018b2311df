"""
FilingDesk - Workflow Schemas

Pydantic schemas exchanged with the API collaborator: the actor
descriptor it supplies, and the read models and typed results the engine
returns.
"""

from datetime import date, datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from filingdesk.models import (
    DeadlineSource,
    DeadlineStatus,
    HistoryEntryKind,
    Obligation,
    UserRole,
    WorkflowStage,
    WorkflowType,
)
from filingdesk.utils.error_handling import AppException, ErrorCode


# ===========================================
# INPUT SCHEMAS
# ===========================================

class Actor(BaseModel):
    """Identity of the person performing an action, from the auth layer."""
    model_config = ConfigDict(frozen=True)

    id: Optional[UUID] = None
    name: str = Field(..., min_length=1, max_length=255)
    role: Optional[UserRole] = None


# ===========================================
# RESPONSE SCHEMAS
# ===========================================

class WorkflowRecordRead(BaseModel):
    """Snapshot of a workflow record."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    filing_period_id: UUID
    workflow_type: WorkflowType
    current_stage: WorkflowStage
    is_completed: bool
    completed_at: Optional[datetime] = None
    assigned_user_id: Optional[UUID] = None
    milestones: Dict[str, Any] = Field(default_factory=dict)
    version: int
    created_at: datetime
    updated_at: datetime


class HistoryEntryRead(BaseModel):
    """One audit-trail row."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    workflow_record_id: UUID
    sequence: int
    from_stage: Optional[WorkflowStage] = None
    to_stage: WorkflowStage
    changed_at: datetime
    actor_id: Optional[UUID] = None
    actor_name: str
    actor_role: Optional[UserRole] = None
    days_in_previous_stage: Optional[int] = None
    note: Optional[str] = None
    entry_kind: HistoryEntryKind
    is_backward: bool = False


class StageDuration(BaseModel):
    """Days spent in a stage before it was left."""
    stage: WorkflowStage
    days: Optional[int] = None
    left_at: datetime


class ProgressSummary(BaseModel):
    """Progress and duration figures for one record."""
    record_id: UUID
    workflow_type: WorkflowType
    current_stage: WorkflowStage
    current_stage_label: str
    is_completed: bool
    progress_percentage: int
    total_elapsed_days: Optional[int] = None
    stage_durations: List[StageDuration] = Field(default_factory=list)


class DeadlineInfo(BaseModel):
    """
    Due date of one obligation.

    ``due_date`` is None while the date cannot be determined; ``status`` is
    then PENDING and ``reason`` says what is missing.
    """
    obligation: Obligation
    due_date: Optional[date] = None
    computed_date: Optional[date] = None
    source: DeadlineSource = DeadlineSource.AUTO
    status: DeadlineStatus
    days_until: Optional[int] = None
    reason: Optional[str] = None
    overridden_by_name: Optional[str] = None
    overridden_at: Optional[datetime] = None


class FilingPeriodRead(BaseModel):
    """A filing period with the due dates it generates."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    client_id: UUID
    workflow_type: WorkflowType
    period_start: date
    period_end: date
    quarter_group: Optional[str] = None
    deadlines: Dict[Obligation, DeadlineInfo] = Field(default_factory=dict)


class BottleneckRead(BaseModel):
    """Average dwell time of a stage across all records of a type."""
    workflow_type: WorkflowType
    stage: WorkflowStage
    stage_label: str
    average_days: float
    sample_size: int
    severity: str


class StuckRecordRead(BaseModel):
    """In-progress record that has sat in its stage too long."""
    record_id: UUID
    current_stage: WorkflowStage
    days_in_stage: int
    assigned_user_id: Optional[UUID] = None


# ===========================================
# OPERATION RESULTS
# ===========================================

class ErrorDetail(BaseModel):
    """User-presentable failure."""
    code: ErrorCode
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class WorkflowOperationResult(BaseModel):
    """Either the updated record or a typed error, never both."""
    ok: bool
    record: Optional[WorkflowRecordRead] = None
    error: Optional[ErrorDetail] = None

    @classmethod
    def success(cls, record) -> "WorkflowOperationResult":
        return cls(ok=True, record=WorkflowRecordRead.model_validate(record))

    @classmethod
    def failure(cls, exc: AppException) -> "WorkflowOperationResult":
        return cls(
            ok=False,
            error=ErrorDetail(code=exc.code, message=exc.message, details=exc.details),
        )
