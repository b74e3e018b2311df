"""
FilingDesk - Workflow Engine

The single entry point the API collaborator calls. Each public method is
one unit of work on the session it was given: it commits on success and
rolls back on any failure, so callers never observe a partial change.

Error policy:
- Validation problems (locked record, illegal stage, bad assignee, missing
  record) come back as a failed WorkflowOperationResult.
- A concurrent modification (STALE_VERSION) or a failed history write is
  retried with freshly loaded state; if it fails again it is raised.
- Deadlines that cannot be determined yet are values (status PENDING),
  never errors.
"""

import logging
import uuid
from datetime import date
from typing import Any, Awaitable, Callable, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from filingdesk.config import settings
from filingdesk.models import (
    Client,
    FilingPeriod,
    Obligation,
    WorkflowRecord,
    WorkflowType,
)
from filingdesk.schemas import (
    Actor,
    DeadlineInfo,
    FilingPeriodRead,
    HistoryEntryRead,
    ProgressSummary,
    WorkflowOperationResult,
    WorkflowRecordRead,
)
from filingdesk.services import deadline_calculator, workflow_analytics
from filingdesk.services.assignment_service import (
    AssignmentService,
    effective_assignee,
    service_for,
)
from filingdesk.services.deadline_service import DeadlineService
from filingdesk.services.history_log import HistoryLog
from filingdesk.services.transition_engine import TransitionEngine
from filingdesk.utils.clock import Clock, SystemClock
from filingdesk.utils.error_handling import (
    AppException,
    HistoryWriteFailedException,
    InvalidDateRangeException,
    NotFoundException,
    StaleVersionException,
    ValidationException,
)

logger = logging.getLogger(__name__)

RecordAction = Callable[[WorkflowRecord], Awaitable[Any]]


class WorkflowEngine:
    """Facade over the transition engine, history, analytics, deadlines and assignment."""

    def __init__(self, db: AsyncSession, clock: Optional[Clock] = None):
        self.db = db
        self.clock = clock or SystemClock()
        self.history = HistoryLog(db)
        self.transitions = TransitionEngine(db, clock=self.clock, history=self.history)
        self.assignments = AssignmentService(db)
        self.deadlines = DeadlineService(db, clock=self.clock)

    # ===========================================
    # UNIT OF WORK
    # ===========================================

    async def _commit_and_read(self, record: WorkflowRecord) -> WorkflowRecord:
        await self.db.commit()
        # Server-side timestamps are expired by the flush
        await self.db.refresh(record)
        return record

    async def _run_on_record(
        self,
        record_id: uuid.UUID,
        operation: str,
        action: RecordAction,
    ) -> WorkflowOperationResult:
        """
        Load the record for update, apply ``action`` and commit.

        Store-level failures are retried with fresh state up to the
        configured number of times.
        """
        attempts = 1 + max(0, settings.transition_conflict_retries)
        for attempt in range(1, attempts + 1):
            try:
                record = await self.transitions.get_record(record_id, for_update=True)
                await action(record)
                await self._commit_and_read(record)
                return WorkflowOperationResult.success(record)

            except (StaleVersionException, HistoryWriteFailedException) as e:
                await self.db.rollback()
                if attempt >= attempts:
                    logger.error(
                        f"{operation} on workflow {record_id} failed after {attempt} attempt(s): {e.code.value}"
                    )
                    raise
                logger.warning(
                    f"{operation} on workflow {record_id} hit {e.code.value}; retrying with fresh state"
                )

            except AppException as e:
                await self.db.rollback()
                if not e.is_recoverable:
                    raise
                logger.info(f"{operation} on workflow {record_id} rejected: {e.code.value} - {e.message}")
                return WorkflowOperationResult.failure(e)

            except SQLAlchemyError as e:
                await self.db.rollback()
                if attempt >= attempts:
                    logger.error(f"{operation} on workflow {record_id} failed after {attempt} attempt(s): {e}")
                    raise HistoryWriteFailedException(record_id, original_error=e) from e
                logger.warning(f"{operation} on workflow {record_id} hit a storage error; retrying with fresh state")

        raise AssertionError("unreachable")

    # ===========================================
    # WORKFLOW LIFECYCLE
    # ===========================================

    async def create_workflow(self, filing_period_id: uuid.UUID, actor: Actor) -> WorkflowRecordRead:
        """
        Open the workflow of a filing period at its type's first stage.

        The assignee is resolved from the client's per-service override or
        default; an inactive resolved assignee leaves the record unassigned.
        """
        try:
            period = await self.deadlines.get_period(filing_period_id)
            existing = await self.db.execute(
                select(WorkflowRecord.id).where(WorkflowRecord.filing_period_id == period.id)
            )
            if existing.scalar_one_or_none() is not None:
                raise ValidationException(
                    "Filing period already has a workflow",
                    field="filing_period_id",
                    details={"filing_period_id": str(period.id)},
                )

            assignee = None
            client = await self.db.get(Client, period.client_id)
            if client is not None:
                assignee = effective_assignee(client, service_for(period.workflow_type))
                if assignee is not None:
                    try:
                        await self.assignments.get_assignable_user(assignee)
                    except AppException as e:
                        logger.warning(
                            f"Default assignee {assignee} for client {client.id} not usable "
                            f"({e.code.value}); creating unassigned"
                        )
                        assignee = None

            record = await self.transitions.start_workflow(period, actor, assigned_user_id=assignee)
            await self._commit_and_read(record)
            return WorkflowRecordRead.model_validate(record)
        except Exception:
            await self.db.rollback()
            raise

    async def transition(
        self,
        record_id: uuid.UUID,
        target_stage: Any,
        actor: Actor,
        note: Optional[str] = None,
    ) -> WorkflowOperationResult:
        async def action(record: WorkflowRecord):
            await self.transitions.transition(record, target_stage, actor, note)

        return await self._run_on_record(record_id, "transition", action)

    async def exit_as_self_filing(
        self,
        record_id: uuid.UUID,
        actor: Actor,
        note: Optional[str] = None,
    ) -> WorkflowOperationResult:
        async def action(record: WorkflowRecord):
            await self.transitions.exit_as_self_filing(record, actor, note)

        return await self._run_on_record(record_id, "self-filing exit", action)

    async def complete_review(
        self,
        record_id: uuid.UUID,
        actor: Actor,
        note: Optional[str] = None,
    ) -> WorkflowOperationResult:
        async def action(record: WorkflowRecord):
            await self.transitions.complete_review(record, actor, note)

        return await self._run_on_record(record_id, "review completion", action)

    async def reassign(
        self,
        record_id: uuid.UUID,
        user_id: Optional[uuid.UUID],
        actor: Actor,
    ) -> WorkflowOperationResult:
        async def action(record: WorkflowRecord):
            await self.assignments.reassign(record, user_id, actor)

        return await self._run_on_record(record_id, "reassignment", action)

    # ===========================================
    # READS
    # ===========================================

    async def get_record(self, record_id: uuid.UUID) -> WorkflowRecordRead:
        record = await self.transitions.get_record(record_id)
        return WorkflowRecordRead.model_validate(record)

    async def get_history(
        self,
        record_id: uuid.UUID,
        newest_first: bool = False,
    ) -> List[HistoryEntryRead]:
        await self.transitions.get_record(record_id)
        entries = await self.history.list_for(record_id, newest_first=newest_first)
        return [HistoryEntryRead.model_validate(entry) for entry in entries]

    async def get_progress_summary(
        self,
        record_id: uuid.UUID,
        newest_first: bool = False,
    ) -> ProgressSummary:
        record = await self.transitions.get_record(record_id)
        entries = await self.history.list_for(record_id)
        return workflow_analytics.summarize(
            record, entries, self.clock.now(), newest_first=newest_first
        )

    # ===========================================
    # DEADLINES
    # ===========================================

    async def compute_deadlines(self, filing_period_id: uuid.UUID) -> Dict[Obligation, DeadlineInfo]:
        try:
            deadlines = await self.deadlines.compute_deadlines(filing_period_id)
            await self.db.commit()
            return deadlines
        except Exception:
            await self.db.rollback()
            raise

    async def set_manual_deadline_override(
        self,
        filing_period_id: uuid.UUID,
        obligation: Obligation,
        due_date: Any,
        actor: Actor,
    ) -> DeadlineInfo:
        try:
            info = await self.deadlines.set_manual_override(filing_period_id, obligation, due_date, actor)
            await self.db.commit()
            return info
        except Exception:
            await self.db.rollback()
            raise

    async def reset_to_auto(
        self,
        filing_period_id: uuid.UUID,
        obligation: Obligation,
        actor: Actor,
    ) -> DeadlineInfo:
        try:
            info = await self.deadlines.reset_to_auto(filing_period_id, obligation, actor)
            await self.db.commit()
            return info
        except Exception:
            await self.db.rollback()
            raise

    # ===========================================
    # FILING PERIODS
    # ===========================================

    async def open_filing_period(
        self,
        client_id: uuid.UUID,
        workflow_type: WorkflowType,
        period_start: date,
        period_end: date,
        quarter_group: Optional[str] = None,
    ) -> FilingPeriodRead:
        """Create a filing period and compute its deadlines."""
        try:
            if period_start is None or period_end is None or period_start >= period_end:
                raise InvalidDateRangeException(period_start, period_end)
            client = await self.db.get(Client, client_id)
            if client is None:
                raise NotFoundException("Client", client_id)

            period = FilingPeriod(
                id=uuid.uuid4(),
                client_id=client.id,
                workflow_type=workflow_type,
                period_start=period_start,
                period_end=period_end,
                quarter_group=quarter_group,
            )
            self.db.add(period)
            await self.db.flush()

            refreshed = await self.deadlines.refresh(period)
            await self.db.commit()

            logger.info(
                f"Opened {workflow_type.value} period {period.label} for client {client.id}"
            )
            return FilingPeriodRead(
                id=period.id,
                client_id=period.client_id,
                workflow_type=period.workflow_type,
                period_start=period.period_start,
                period_end=period.period_end,
                quarter_group=period.quarter_group,
                deadlines={
                    obligation: self.deadlines.to_info(row, computed)
                    for obligation, (row, computed) in refreshed.items()
                },
            )
        except Exception:
            await self.db.rollback()
            raise

    async def open_vat_quarter(
        self,
        client_id: uuid.UUID,
        quarter_group: str,
        reference_date: Optional[date] = None,
    ) -> FilingPeriodRead:
        """Open the VAT quarter of a stagger group that contains ``reference_date``."""
        try:
            quarter = deadline_calculator.vat_quarter_for(
                quarter_group, reference_date or self.clock.today()
            )
        except ValueError as e:
            raise ValidationException(str(e), field="quarter_group") from e

        return await self.open_filing_period(
            client_id,
            WorkflowType.VAT_QUARTER,
            quarter.period_start,
            quarter.period_end,
            quarter_group=quarter.quarter_group,
        )

    async def open_next_ltd_period(self, client_id: uuid.UUID) -> FilingPeriodRead:
        """
        Open the accounting period after the client's last one.

        The latest LTD period on file wins; a client with none starts from
        the accounting reference date recorded on the client.
        """
        client = await self.db.get(Client, client_id)
        if client is None:
            raise NotFoundException("Client", client_id)

        result = await self.db.execute(
            select(func.max(FilingPeriod.period_end)).where(
                FilingPeriod.client_id == client.id,
                FilingPeriod.workflow_type == WorkflowType.LTD_ACCOUNTS,
            )
        )
        made_up_to = result.scalar_one_or_none() or client.accounting_reference_date
        if made_up_to is None:
            raise ValidationException(
                "Client has no accounting reference date and no previous accounts period",
                field="accounting_reference_date",
                details={"client_id": str(client.id)},
            )

        period_start, period_end = deadline_calculator.ltd_period_after(made_up_to)
        return await self.open_filing_period(
            client.id, WorkflowType.LTD_ACCOUNTS, period_start, period_end
        )
