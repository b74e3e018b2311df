"""
FilingDesk - Workflow Reporting Tasks

Scheduled, read-only reports over all workflow records. They run on the
Celery worker with their own sessions and never block a transition.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from celery import shared_task

from filingdesk.database import async_session_factory
from filingdesk.models import WorkflowType
from filingdesk.services.deadline_service import DeadlineService
from filingdesk.services.workflow_analytics import WorkflowAnalytics
from filingdesk.utils.clock import Clock

logger = logging.getLogger(__name__)


def run_async(coro):
    """Helper to run async functions in Celery tasks."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _types(workflow_type: Optional[str]) -> List[WorkflowType]:
    if workflow_type:
        return [WorkflowType(workflow_type)]
    return list(WorkflowType)


# ===========================================
# BOTTLENECKS
# ===========================================

@shared_task(name='filingdesk.tasks.workflow_tasks.bottleneck_report_task')
def bottleneck_report_task(workflow_type: Optional[str] = None) -> Dict[str, Any]:
    """Average dwell time per stage, flagged mild/severe."""
    return run_async(build_bottleneck_report(workflow_type))


async def build_bottleneck_report(
    workflow_type: Optional[str] = None,
    session_factory=None,
    clock: Optional[Clock] = None,
) -> Dict[str, Any]:
    factory = session_factory or async_session_factory()
    report: Dict[str, Any] = {}

    async with factory() as db:
        analytics = WorkflowAnalytics(db, clock)
        for wf_type in _types(workflow_type):
            flagged = await analytics.bottlenecks(wf_type)
            report[wf_type.value] = [item.model_dump(mode='json') for item in flagged]
            for item in flagged:
                logger.warning(
                    f"Bottleneck ({item.severity}) in {wf_type.value}: "
                    f"{item.stage_label} averages {item.average_days} days over {item.sample_size} move(s)"
                )

    logger.info(f"Bottleneck report complete: {sum(len(v) for v in report.values())} stage(s) flagged")
    return report


# ===========================================
# STUCK RECORDS
# ===========================================

@shared_task(name='filingdesk.tasks.workflow_tasks.stuck_records_task')
def stuck_records_task(threshold_days: Optional[int] = None) -> Dict[str, Any]:
    return run_async(find_stuck_records(threshold_days))


async def find_stuck_records(
    threshold_days: Optional[int] = None,
    session_factory=None,
    clock: Optional[Clock] = None,
) -> Dict[str, Any]:
    factory = session_factory or async_session_factory()
    found: Dict[str, Any] = {}

    async with factory() as db:
        analytics = WorkflowAnalytics(db, clock)
        for wf_type in WorkflowType:
            stuck = await analytics.stuck_records(wf_type, threshold_days)
            found[wf_type.value] = [item.model_dump(mode='json') for item in stuck]

    logger.info(f"Stuck record scan complete: {sum(len(v) for v in found.values())} record(s)")
    return found


# ===========================================
# OVERDUE DEADLINES
# ===========================================

@shared_task(name='filingdesk.tasks.workflow_tasks.overdue_deadlines_task')
def overdue_deadlines_task() -> Dict[str, Any]:
    """List deadlines past due on open filing periods for the reminder collaborator."""
    return run_async(sweep_overdue_deadlines())


async def sweep_overdue_deadlines(session_factory=None, clock: Optional[Clock] = None) -> Dict[str, Any]:
    factory = session_factory or async_session_factory()
    overdue = []

    async with factory() as db:
        service = DeadlineService(db, clock=clock)
        today = service.clock.today()
        for period, deadline in await service.overdue(today):
            overdue.append({
                'filing_period_id': str(period.id),
                'client_id': str(period.client_id),
                'workflow_type': period.workflow_type.value,
                'obligation': deadline.obligation.value,
                'due_date': deadline.effective_date.isoformat(),
                'source': deadline.source.value,
                'days_overdue': (today - deadline.effective_date).days,
            })

    if overdue:
        logger.warning(f"{len(overdue)} overdue deadline(s) on open filing periods")
    else:
        logger.info("No overdue deadlines")
    return {'date': today.isoformat(), 'overdue': overdue}
