"""
FilingDesk - Deadline Service

Persists the calculator's due dates per filing period and obligation, and
the manual overrides staff enter on top of them.

A manual date always wins while set (source MANUAL). Resetting to auto
discards the override and recomputes from the period's boundaries.
"""

import logging
import uuid
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from filingdesk.models import (
    Client,
    DeadlineSource,
    FilingDeadline,
    FilingPeriod,
    Obligation,
    WorkflowRecord,
)
from filingdesk.schemas import Actor, DeadlineInfo
from filingdesk.services import deadline_calculator
from filingdesk.services.deadline_calculator import ComputedDeadline, PeriodBoundaries
from filingdesk.utils.clock import Clock, SystemClock
from filingdesk.utils.error_handling import NotFoundException, ValidationException

logger = logging.getLogger(__name__)


def boundaries_for(period: FilingPeriod, client: Optional[Client]) -> PeriodBoundaries:
    anchor = None
    if client is not None:
        anchor = client.last_confirmation_statement_date or client.incorporation_date
    return PeriodBoundaries(
        period_start=period.period_start,
        period_end=period.period_end,
        confirmation_anchor=anchor,
    )


class DeadlineService:
    """Computed and overridden due dates of filing periods."""

    def __init__(self, db: AsyncSession, clock: Optional[Clock] = None):
        self.db = db
        self.clock = clock or SystemClock()

    # ===========================================
    # LOOKUPS
    # ===========================================

    async def get_period(self, period_id: uuid.UUID) -> FilingPeriod:
        period = await self.db.get(FilingPeriod, period_id)
        if period is None:
            raise NotFoundException("FilingPeriod", period_id)
        return period

    async def _rows_for(self, period_id: uuid.UUID) -> Dict[Obligation, FilingDeadline]:
        result = await self.db.execute(
            select(FilingDeadline).where(FilingDeadline.filing_period_id == period_id)
        )
        return {row.obligation: row for row in result.scalars().all()}

    async def _computed_for(self, period: FilingPeriod) -> Dict[Obligation, ComputedDeadline]:
        client = await self.db.get(Client, period.client_id)
        return deadline_calculator.compute_obligations(
            period.workflow_type,
            boundaries_for(period, client),
        )

    def to_info(self, row: FilingDeadline, computed: Optional[ComputedDeadline] = None) -> DeadlineInfo:
        today = self.clock.today()
        due = row.effective_date
        reason = None
        if due is None:
            reason = computed.reason if computed is not None else "due date not yet determinable"
        return DeadlineInfo(
            obligation=row.obligation,
            due_date=due,
            computed_date=row.computed_date,
            source=row.source,
            status=deadline_calculator.deadline_status(due, today),
            days_until=deadline_calculator.days_until(due, today),
            reason=reason,
            overridden_by_name=row.overridden_by_name if row.source == DeadlineSource.MANUAL else None,
            overridden_at=row.overridden_at if row.source == DeadlineSource.MANUAL else None,
        )

    def _check_obligation(self, period: FilingPeriod, obligation: Obligation) -> None:
        allowed = deadline_calculator.OBLIGATIONS_BY_TYPE[period.workflow_type]
        if obligation not in allowed:
            raise ValidationException(
                f"{obligation.value} does not apply to {period.workflow_type.value} periods",
                field="obligation",
                details={"allowed": [o.value for o in allowed]},
            )

    # ===========================================
    # OPERATIONS
    # ===========================================

    async def refresh(self, period: FilingPeriod) -> Dict[Obligation, Tuple[FilingDeadline, ComputedDeadline]]:
        """Recompute every obligation of a period; manual dates are left alone."""
        computed = await self._computed_for(period)
        rows = await self._rows_for(period.id)

        for obligation, result in computed.items():
            row = rows.get(obligation)
            if row is None:
                row = FilingDeadline(
                    filing_period_id=period.id,
                    obligation=obligation,
                    manual_date=None,
                    source=DeadlineSource.AUTO,
                    overridden_by_id=None,
                    overridden_by_name=None,
                    overridden_at=None,
                )
                self.db.add(row)
                rows[obligation] = row
            row.computed_date = result.due_date

        await self.db.flush()
        return {obligation: (rows[obligation], computed[obligation]) for obligation in computed}

    async def compute_deadlines(self, period_id: uuid.UUID) -> Dict[Obligation, DeadlineInfo]:
        """Obligation -> due date, source and status for one filing period."""
        period = await self.get_period(period_id)
        refreshed = await self.refresh(period)
        return {
            obligation: self.to_info(row, computed)
            for obligation, (row, computed) in refreshed.items()
        }

    async def set_manual_override(
        self,
        period_id: uuid.UUID,
        obligation: Obligation,
        due_date: Any,
        actor: Actor,
    ) -> DeadlineInfo:
        period = await self.get_period(period_id)
        self._check_obligation(period, obligation)

        manual = deadline_calculator.coerce_date(due_date)
        if manual is None:
            raise ValidationException(
                f"Manual due date is not a valid date: {due_date!r}",
                field="due_date",
            )

        refreshed = await self.refresh(period)
        row, computed = refreshed[obligation]
        row.manual_date = manual
        row.source = DeadlineSource.MANUAL
        row.overridden_by_id = actor.id
        row.overridden_by_name = actor.name
        row.overridden_at = self.clock.now()
        await self.db.flush()

        logger.info(
            f"Manual {obligation.value} due date {manual.isoformat()} set for period "
            f"{period.id} by {actor.name} (computed: {row.computed_date})"
        )
        return self.to_info(row, computed)

    async def reset_to_auto(
        self,
        period_id: uuid.UUID,
        obligation: Obligation,
        actor: Actor,
    ) -> DeadlineInfo:
        period = await self.get_period(period_id)
        self._check_obligation(period, obligation)

        refreshed = await self.refresh(period)
        row, computed = refreshed[obligation]
        discarded = row.manual_date
        row.manual_date = None
        row.source = DeadlineSource.AUTO
        row.overridden_by_id = None
        row.overridden_by_name = None
        row.overridden_at = None
        await self.db.flush()

        logger.info(
            f"{obligation.value} for period {period.id} reset to automatic "
            f"({row.computed_date}) by {actor.name}; discarded manual {discarded}"
        )
        return self.to_info(row, computed)

    async def overdue(self, today: Optional[date] = None) -> List[Tuple[FilingPeriod, FilingDeadline]]:
        """Deadlines past due whose workflow has not been completed."""
        today = today or self.clock.today()
        result = await self.db.execute(
            select(FilingPeriod, FilingDeadline)
            .join(FilingDeadline, FilingDeadline.filing_period_id == FilingPeriod.id)
            .outerjoin(WorkflowRecord, WorkflowRecord.filing_period_id == FilingPeriod.id)
            .where(
                (WorkflowRecord.id.is_(None)) | (WorkflowRecord.is_completed.is_(False))
            )
        )
        return [
            (period, row)
            for period, row in result.all()
            if row.effective_date is not None and row.effective_date < today
        ]
