"""
FilingDesk - Workflow History Log

Append-only audit trail of stage changes. There is deliberately no update or
delete method here; persisted rows are also guarded by ORM listeners on the
model.

The append is flushed together with the owning record's pending changes, so
a failed append fails the whole transition.
"""

import logging
import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from filingdesk.models import (
    HistoryEntryKind,
    WorkflowHistoryEntry,
    WorkflowRecord,
    WorkflowStage,
)
from filingdesk.schemas import Actor
from filingdesk.utils.error_handling import translate_flush_error

logger = logging.getLogger(__name__)


class HistoryLog:
    """Append and read workflow history entries."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def next_sequence(self, record_id: uuid.UUID) -> int:
        result = await self.db.execute(
            select(func.max(WorkflowHistoryEntry.sequence)).where(
                WorkflowHistoryEntry.workflow_record_id == record_id
            )
        )
        return (result.scalar() or 0) + 1

    async def append(
        self,
        record: WorkflowRecord,
        *,
        to_stage: WorkflowStage,
        actor: Actor,
        changed_at: datetime,
        from_stage: Optional[WorkflowStage] = None,
        days_in_previous_stage: Optional[int] = None,
        note: Optional[str] = None,
        entry_kind: HistoryEntryKind = HistoryEntryKind.TRANSITION,
        is_backward: bool = False,
    ) -> WorkflowHistoryEntry:
        """
        Append one entry for ``record`` and flush it with the record.

        Raises:
            StaleVersionException: the record was changed by someone else
            HistoryWriteFailedException: any other storage failure
        """
        # A failed flush expires the record, so its id is read up front
        record_id = record.id
        entry = WorkflowHistoryEntry(
            workflow_record_id=record_id,
            sequence=await self.next_sequence(record_id),
            from_stage=from_stage,
            to_stage=to_stage,
            changed_at=changed_at,
            actor_id=actor.id,
            actor_name=actor.name,
            actor_role=actor.role,
            days_in_previous_stage=days_in_previous_stage,
            note=note,
            entry_kind=entry_kind,
            is_backward=is_backward,
        )
        self.db.add(entry)

        try:
            await self.db.flush()
        except SQLAlchemyError as e:
            raise translate_flush_error(record_id, e) from e

        logger.debug(
            f"History #{entry.sequence} for workflow {record_id}: "
            f"{from_stage} -> {to_stage} ({entry_kind.value})"
        )
        return entry

    async def list_for(
        self,
        record_id: uuid.UUID,
        newest_first: bool = False,
    ) -> List[WorkflowHistoryEntry]:
        """Entries of one record in sequence order."""
        order = WorkflowHistoryEntry.sequence.desc() if newest_first else WorkflowHistoryEntry.sequence
        result = await self.db.execute(
            select(WorkflowHistoryEntry)
            .where(WorkflowHistoryEntry.workflow_record_id == record_id)
            .order_by(order)
        )
        return list(result.scalars().all())

    async def latest_for(self, record_id: uuid.UUID) -> Optional[WorkflowHistoryEntry]:
        result = await self.db.execute(
            select(WorkflowHistoryEntry)
            .where(WorkflowHistoryEntry.workflow_record_id == record_id)
            .order_by(WorkflowHistoryEntry.sequence.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def count_for(self, record_id: uuid.UUID) -> int:
        result = await self.db.execute(
            select(func.count(WorkflowHistoryEntry.id)).where(
                WorkflowHistoryEntry.workflow_record_id == record_id
            )
        )
        return result.scalar() or 0
