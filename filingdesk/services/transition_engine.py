"""
FilingDesk - Transition Engine

Moves workflow records between stages. Every successful move:
1. checks the terminal lock, then the target stage
2. measures days spent in the stage being left
3. stamps the target's milestone on first entry only
4. updates the current stage (and completion on the final stage)
5. appends exactly one history entry in the same flush

Nothing here commits. The caller owns the transaction and rolls back on
any exception, so a failed step leaves no visible change.
"""

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from filingdesk.models import (
    FilingPeriod,
    HistoryEntryKind,
    WorkflowHistoryEntry,
    WorkflowRecord,
    WorkflowStage,
)
from filingdesk.schemas import Actor
from filingdesk.services import stage_registry
from filingdesk.services.history_log import HistoryLog
from filingdesk.utils.clock import Clock, SystemClock, calendar_days_between
from filingdesk.utils.error_handling import (
    InvalidStageException,
    NotFoundException,
    WorkflowLockedException,
)

logger = logging.getLogger(__name__)

SELF_FILING_NOTE = "Marked as client self-filing - client handles own filing"
CREATED_NOTE = "Workflow created"


def milestone_stamp(at: datetime, actor: Actor) -> Dict[str, Any]:
    return {
        "at": at.isoformat(),
        "actor_id": str(actor.id) if actor.id else None,
        "actor_name": actor.name,
    }


def coerce_stage(value: Any, workflow_type: Any) -> WorkflowStage:
    """Accept a WorkflowStage or its value/name; unknown input is INVALID_STAGE."""
    if isinstance(value, WorkflowStage):
        return value
    try:
        return WorkflowStage(value)
    except ValueError:
        pass
    try:
        return WorkflowStage[str(value)]
    except KeyError:
        raise InvalidStageException(value, workflow_type, "unknown stage") from None


class TransitionEngine:
    """Stage state machine for workflow records."""

    def __init__(
        self,
        db: AsyncSession,
        clock: Optional[Clock] = None,
        history: Optional[HistoryLog] = None,
    ):
        self.db = db
        self.clock = clock or SystemClock()
        self.history = history or HistoryLog(db)

    # ===========================================
    # LOADING
    # ===========================================

    async def get_record(self, record_id: uuid.UUID, for_update: bool = False) -> WorkflowRecord:
        query = select(WorkflowRecord).where(WorkflowRecord.id == record_id)
        if for_update:
            # Ignored by backends without row locks; version_id_col still guards
            query = query.with_for_update()
        result = await self.db.execute(query.execution_options(populate_existing=True))
        record = result.scalar_one_or_none()
        if record is None:
            raise NotFoundException("WorkflowRecord", record_id)
        return record

    # ===========================================
    # CREATION
    # ===========================================

    async def start_workflow(
        self,
        period: FilingPeriod,
        actor: Actor,
        assigned_user_id: Optional[uuid.UUID] = None,
    ) -> WorkflowRecord:
        """Create the record at its type's first stage with the creation entry."""
        now = self.clock.now()
        stage = stage_registry.first_stage(period.workflow_type)

        record = WorkflowRecord(
            id=uuid.uuid4(),
            filing_period_id=period.id,
            workflow_type=period.workflow_type,
            current_stage=stage,
            is_completed=False,
            completed_at=None,
            assigned_user_id=assigned_user_id,
            milestones={stage_registry.milestone_key(stage): milestone_stamp(now, actor)},
        )
        self.db.add(record)
        # The record row must exist before its first history row
        await self.db.flush()

        await self.history.append(
            record,
            to_stage=stage,
            actor=actor,
            changed_at=now,
            note=CREATED_NOTE,
            entry_kind=HistoryEntryKind.CREATED,
        )
        logger.info(
            f"Workflow {record.id} created ({period.workflow_type.value}) "
            f"for period {period.id} at {stage.value} by {actor.name}"
        )
        return record

    # ===========================================
    # TRANSITIONS
    # ===========================================

    async def transition(
        self,
        record: WorkflowRecord,
        target_stage: Any,
        actor: Actor,
        note: Optional[str] = None,
    ) -> WorkflowHistoryEntry:
        """
        Move ``record`` to any selectable stage of its type.

        Backward moves are allowed (correcting a mis-click) and are flagged
        on the history entry.

        Raises:
            WorkflowLockedException: the record is completed
            InvalidStageException: the target is unknown, belongs to another
                workflow type, or is only reachable through a dedicated action
        """
        if record.is_completed:
            raise WorkflowLockedException(record.id, record.current_stage)

        workflow_type = record.workflow_type
        target = coerce_stage(target_stage, workflow_type)
        if not stage_registry.contains(workflow_type, target):
            raise InvalidStageException(target.value, workflow_type.value, "not a stage of this workflow")
        if not stage_registry.is_selectable(workflow_type, target):
            raise InvalidStageException(target.value, workflow_type.value, "reached automatically, not selectable")

        return await self._move(record, target, actor, note, HistoryEntryKind.TRANSITION)

    async def complete_review(
        self,
        record: WorkflowRecord,
        actor: Actor,
        note: Optional[str] = None,
    ) -> WorkflowHistoryEntry:
        """Advance a review-pending stage to its automatic "reviewed" stage."""
        if record.is_completed:
            raise WorkflowLockedException(record.id, record.current_stage)

        target = stage_registry.auto_stage_after(record.workflow_type, record.current_stage)
        if target is None:
            raise InvalidStageException(
                record.current_stage.value,
                record.workflow_type.value,
                "no review is pending at this stage",
            )
        return await self._move(record, target, actor, note, HistoryEntryKind.AUTO_STAGE)

    async def exit_as_self_filing(
        self,
        record: WorkflowRecord,
        actor: Actor,
        note: Optional[str] = None,
    ) -> WorkflowHistoryEntry:
        """
        Close a record because the client files it themselves.

        Only valid while the record is still open; sets the terminal marker
        stage and the synthetic self-filing milestone.
        """
        if record.is_completed:
            raise WorkflowLockedException(record.id, record.current_stage)

        now = self.clock.now()
        from_stage = record.current_stage
        days = await self._days_in_current_stage(record, now)

        milestones = dict(record.milestones or {})
        milestones.setdefault(stage_registry.SELF_FILING_MILESTONE, milestone_stamp(now, actor))
        record.milestones = milestones
        record.current_stage = WorkflowStage.CLIENT_SELF_FILING
        record.is_completed = True
        record.completed_at = now

        entry = await self.history.append(
            record,
            from_stage=from_stage,
            to_stage=WorkflowStage.CLIENT_SELF_FILING,
            actor=actor,
            changed_at=now,
            days_in_previous_stage=days,
            note=note or SELF_FILING_NOTE,
            entry_kind=HistoryEntryKind.SELF_FILING,
        )
        logger.info(
            f"Workflow {record.id} exited as client self-filing from "
            f"{from_stage.value} by {actor.name}"
        )
        return entry

    # ===========================================
    # INTERNALS
    # ===========================================

    async def _days_in_current_stage(self, record: WorkflowRecord, now: datetime) -> Optional[int]:
        previous = await self.history.latest_for(record.id)
        if previous is not None:
            return calendar_days_between(previous.changed_at, now)
        # No entries yet: fall back to the row's creation time
        await self.db.refresh(record, attribute_names=["created_at"])
        return calendar_days_between(record.created_at, now)

    async def _move(
        self,
        record: WorkflowRecord,
        target: WorkflowStage,
        actor: Actor,
        note: Optional[str],
        entry_kind: HistoryEntryKind,
    ) -> WorkflowHistoryEntry:
        workflow_type = record.workflow_type
        now = self.clock.now()
        from_stage = record.current_stage
        days = await self._days_in_current_stage(record, now)

        is_backward = (
            stage_registry.contains(workflow_type, from_stage)
            and stage_registry.is_past_stage(workflow_type, from_stage, target)
        )

        milestones = dict(record.milestones or {})
        if is_backward:
            # Later stages will be re-stamped when they are reached again
            for later in stage_registry.stages_after(workflow_type, target):
                milestones.pop(stage_registry.milestone_key(later), None)
        milestones.setdefault(stage_registry.milestone_key(target), milestone_stamp(now, actor))
        record.milestones = milestones

        record.current_stage = target
        if target == stage_registry.final_stage(workflow_type):
            record.is_completed = True
            record.completed_at = now

        entry = await self.history.append(
            record,
            from_stage=from_stage,
            to_stage=target,
            actor=actor,
            changed_at=now,
            days_in_previous_stage=days,
            note=note,
            entry_kind=entry_kind,
            is_backward=is_backward,
        )

        logger.info(
            f"Workflow {record.id}: {from_stage.value} -> {target.value} "
            f"by {actor.name} after {days} day(s)"
            + (" [backward]" if is_backward else "")
            + (" [completed]" if record.is_completed else "")
        )
        return entry
