"""
FilingDesk - Schemas Package

Pydantic schemas for the engine's inputs and outputs.
"""

from filingdesk.schemas.workflow import (
    # Input
    Actor,
    # Read models
    WorkflowRecordRead,
    HistoryEntryRead,
    StageDuration,
    ProgressSummary,
    DeadlineInfo,
    FilingPeriodRead,
    BottleneckRead,
    StuckRecordRead,
    # Results
    ErrorDetail,
    WorkflowOperationResult,
)

__all__ = [
    "Actor",
    "WorkflowRecordRead",
    "HistoryEntryRead",
    "StageDuration",
    "ProgressSummary",
    "DeadlineInfo",
    "FilingPeriodRead",
    "BottleneckRead",
    "StuckRecordRead",
    "ErrorDetail",
    "WorkflowOperationResult",
]
