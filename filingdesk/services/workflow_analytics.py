"""
FilingDesk - Progress & Duration Analytics

Derived figures over a workflow record and its history: progress, elapsed
time, time spent per stage, and the cross-record reports used for
operational review (bottleneck stages and records stuck in a stage).

Missing data gives None, never an exception.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from filingdesk.config import settings
from filingdesk.models import (
    WorkflowHistoryEntry,
    WorkflowRecord,
    WorkflowStage,
    WorkflowType,
)
from filingdesk.schemas import (
    BottleneckRead,
    ProgressSummary,
    StageDuration,
    StuckRecordRead,
)
from filingdesk.services import stage_registry
from filingdesk.utils.clock import Clock, SystemClock, as_utc, calendar_days_between

logger = logging.getLogger(__name__)


class BottleneckSeverity(str, Enum):
    MILD = "mild"
    SEVERE = "severe"


# ===========================================
# PURE DERIVATIONS
# ===========================================

def progress_percentage(
    workflow_type: WorkflowType,
    current_stage: WorkflowStage,
    is_completed: bool,
) -> int:
    """Position of the current stage as a whole percentage; 100 once completed."""
    if is_completed:
        return 100
    if not stage_registry.contains(workflow_type, current_stage):
        return 0
    count = len(stage_registry.stages_for(workflow_type))
    if count < 2:
        return 0
    index = stage_registry.index_of(workflow_type, current_stage)
    return min(100, round(index / (count - 1) * 100))


def total_elapsed_days(
    history: Sequence[WorkflowHistoryEntry],
    is_completed: bool,
    now: datetime,
    completed_at: Optional[datetime] = None,
) -> Optional[int]:
    """Days from the creation entry to completion, or to now while in progress."""
    if not history:
        return None
    ordered = sorted(history, key=lambda entry: entry.sequence)
    started_at = ordered[0].changed_at
    if is_completed:
        ended_at = completed_at or ordered[-1].changed_at
    else:
        ended_at = now
    return calendar_days_between(started_at, ended_at)


def stage_durations(
    history: Sequence[WorkflowHistoryEntry],
    newest_first: bool = False,
) -> List[StageDuration]:
    """``(stage, days)`` for every entry that left a stage."""
    ordered = sorted(history, key=lambda entry: entry.sequence, reverse=newest_first)
    return [
        StageDuration(
            stage=entry.from_stage,
            days=entry.days_in_previous_stage,
            left_at=as_utc(entry.changed_at),
        )
        for entry in ordered
        if entry.from_stage is not None
    ]


def classify_bottleneck(
    average_days: Optional[float],
    mild_days: int,
    severe_days: int,
) -> Optional[BottleneckSeverity]:
    if average_days is None:
        return None
    if average_days > severe_days:
        return BottleneckSeverity.SEVERE
    if average_days > mild_days:
        return BottleneckSeverity.MILD
    return None


def summarize(
    record: WorkflowRecord,
    history: Sequence[WorkflowHistoryEntry],
    now: datetime,
    newest_first: bool = False,
) -> ProgressSummary:
    return ProgressSummary(
        record_id=record.id,
        workflow_type=record.workflow_type,
        current_stage=record.current_stage,
        current_stage_label=stage_registry.display_name(record.current_stage),
        is_completed=record.is_completed,
        progress_percentage=progress_percentage(
            record.workflow_type, record.current_stage, record.is_completed
        ),
        total_elapsed_days=total_elapsed_days(
            history, record.is_completed, now, completed_at=record.completed_at
        ),
        stage_durations=stage_durations(history, newest_first=newest_first),
    )


# ===========================================
# CROSS-RECORD REPORTS
# ===========================================

class WorkflowAnalytics:
    """Aggregate reports across all records of a workflow type."""

    def __init__(self, db: AsyncSession, clock: Optional[Clock] = None):
        self.db = db
        self.clock = clock or SystemClock()

    async def bottlenecks(
        self,
        workflow_type: WorkflowType,
        mild_days: Optional[int] = None,
        severe_days: Optional[int] = None,
    ) -> List[BottleneckRead]:
        """
        Stages whose average dwell time exceeds the mild threshold.

        Averages use the frozen ``days_in_previous_stage`` of every entry
        that left the stage. Worst first.
        """
        mild_days = settings.bottleneck_mild_days if mild_days is None else mild_days
        severe_days = settings.bottleneck_severe_days if severe_days is None else severe_days

        result = await self.db.execute(
            select(
                WorkflowHistoryEntry.from_stage,
                func.avg(WorkflowHistoryEntry.days_in_previous_stage),
                func.count(WorkflowHistoryEntry.id),
            )
            .join(WorkflowRecord, WorkflowRecord.id == WorkflowHistoryEntry.workflow_record_id)
            .where(
                WorkflowRecord.workflow_type == workflow_type,
                WorkflowHistoryEntry.from_stage.is_not(None),
                WorkflowHistoryEntry.days_in_previous_stage.is_not(None),
            )
            .group_by(WorkflowHistoryEntry.from_stage)
        )

        report = []
        for stage, average, sample_size in result.all():
            average_days = float(average) if average is not None else None
            severity = classify_bottleneck(average_days, mild_days, severe_days)
            if severity is None:
                continue
            report.append(
                BottleneckRead(
                    workflow_type=workflow_type,
                    stage=stage,
                    stage_label=stage_registry.display_name(stage),
                    average_days=round(average_days, 1),
                    sample_size=sample_size,
                    severity=severity.value,
                )
            )

        report.sort(key=lambda item: item.average_days, reverse=True)
        logger.debug(f"Bottlenecks for {workflow_type.value}: {len(report)} stage(s) flagged")
        return report

    async def stuck_records(
        self,
        workflow_type: WorkflowType,
        threshold_days: Optional[int] = None,
    ) -> List[StuckRecordRead]:
        """Open records that have been in their current stage longer than the threshold."""
        threshold_days = settings.stuck_record_days if threshold_days is None else threshold_days
        now = self.clock.now()

        result = await self.db.execute(
            select(WorkflowRecord, func.max(WorkflowHistoryEntry.changed_at))
            .join(WorkflowHistoryEntry, WorkflowHistoryEntry.workflow_record_id == WorkflowRecord.id)
            .where(
                WorkflowRecord.workflow_type == workflow_type,
                WorkflowRecord.is_completed.is_(False),
            )
            .group_by(WorkflowRecord.id)
        )

        stuck = []
        for record, entered_at in result.all():
            days = calendar_days_between(entered_at, now)
            if days is not None and days > threshold_days:
                stuck.append(
                    StuckRecordRead(
                        record_id=record.id,
                        current_stage=record.current_stage,
                        days_in_stage=days,
                        assigned_user_id=record.assigned_user_id,
                    )
                )

        stuck.sort(key=lambda item: item.days_in_stage, reverse=True)
        return stuck
