"""
FilingDesk - History Log Tests

Tests for sequencing, ordering and the append-only guard.
"""

from uuid import uuid4

import pytest
import pytest_asyncio

from filingdesk.models import HistoryEntryKind, WorkflowStage
from filingdesk.services.history_log import HistoryLog
from filingdesk.services.transition_engine import TransitionEngine
from filingdesk.utils.error_handling import ErrorCode, HistoryImmutableException


@pytest_asyncio.fixture
async def record(db_session, clock, vat_period, actor):
    engine = TransitionEngine(db_session, clock=clock)
    record = await engine.start_workflow(vat_period, actor)
    for stage in (WorkflowStage.PAPERWORK_CHASED, WorkflowStage.PAPERWORK_RECEIVED):
        clock.advance(days=1)
        await engine.transition(record, stage, actor)
    await db_session.commit()
    return record


# =============================================================================
# APPEND AND READ
# =============================================================================

class TestAppendAndRead:
    """Sequencing and ordering of entries."""

    @pytest.mark.asyncio
    async def test_sequence_starts_at_one(self, db_session):
        assert await HistoryLog(db_session).next_sequence(uuid4()) == 1

    @pytest.mark.asyncio
    async def test_sequences_are_contiguous(self, db_session, record):
        entries = await HistoryLog(db_session).list_for(record.id)
        assert [entry.sequence for entry in entries] == [1, 2, 3]
        assert [entry.to_stage for entry in entries] == [
            WorkflowStage.PAPERWORK_PENDING_CHASE,
            WorkflowStage.PAPERWORK_CHASED,
            WorkflowStage.PAPERWORK_RECEIVED,
        ]

    @pytest.mark.asyncio
    async def test_newest_first(self, db_session, record):
        entries = await HistoryLog(db_session).list_for(record.id, newest_first=True)
        assert [entry.sequence for entry in entries] == [3, 2, 1]

    @pytest.mark.asyncio
    async def test_latest_and_count(self, db_session, record):
        history = HistoryLog(db_session)
        latest = await history.latest_for(record.id)
        assert latest.to_stage == WorkflowStage.PAPERWORK_RECEIVED
        assert latest.from_stage == WorkflowStage.PAPERWORK_CHASED
        assert await history.count_for(record.id) == 3

    @pytest.mark.asyncio
    async def test_append_directly(self, db_session, record, actor, clock):
        history = HistoryLog(db_session)
        entry = await history.append(
            record,
            from_stage=WorkflowStage.PAPERWORK_RECEIVED,
            to_stage=WorkflowStage.WORK_IN_PROGRESS,
            actor=actor,
            changed_at=clock.now(),
            days_in_previous_stage=0,
            note="Imported",
        )
        assert entry.sequence == 4
        assert entry.entry_kind == HistoryEntryKind.TRANSITION
        assert entry.is_backward is False

    @pytest.mark.asyncio
    async def test_unknown_record_has_no_entries(self, db_session):
        history = HistoryLog(db_session)
        assert await history.list_for(uuid4()) == []
        assert await history.latest_for(uuid4()) is None
        assert await history.count_for(uuid4()) == 0


# =============================================================================
# APPEND-ONLY GUARD
# =============================================================================

class TestImmutability:
    """Persisted entries cannot be rewritten through the session."""

    @pytest.mark.asyncio
    async def test_update_refused(self, db_session, record):
        entry = await HistoryLog(db_session).latest_for(record.id)
        entry.note = "Rewritten after the fact"

        with pytest.raises(HistoryImmutableException) as exc_info:
            await db_session.flush()

        assert exc_info.value.code == ErrorCode.HISTORY_IMMUTABLE
        assert exc_info.value.details["operation"] == "update"

    @pytest.mark.asyncio
    async def test_delete_refused(self, db_session, record):
        entry = await HistoryLog(db_session).latest_for(record.id)
        await db_session.delete(entry)

        with pytest.raises(HistoryImmutableException) as exc_info:
            await db_session.flush()

        assert exc_info.value.details["operation"] == "delete"
