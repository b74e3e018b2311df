"""
FilingDesk - Reporting Task Tests

Runs the coroutines behind the scheduled Celery tasks against the test
database.
"""

from datetime import datetime, timezone

import pytest

from filingdesk.celery_app import celery_app
from filingdesk.models import Obligation, WorkflowStage
from filingdesk.tasks.workflow_tasks import (
    build_bottleneck_report,
    find_stuck_records,
    sweep_overdue_deadlines,
)


class TestOverdueSweep:
    """Deadlines past due on open filing periods."""

    @pytest.mark.asyncio
    async def test_lists_overdue_open_periods(self, workflow_engine, session_factory, vat_period, actor, clock):
        period_id = vat_period.id
        await workflow_engine.compute_deadlines(period_id)
        await workflow_engine.create_workflow(period_id, actor)
        clock.set_time(datetime(2024, 11, 10, 9, 0, tzinfo=timezone.utc))

        result = await sweep_overdue_deadlines(session_factory=session_factory, clock=clock)

        assert result["date"] == "2024-11-10"
        assert result["overdue"] == [{
            "filing_period_id": str(period_id),
            "client_id": str(vat_period.client_id),
            "workflow_type": "vat_quarter",
            "obligation": Obligation.VAT_RETURN.value,
            "due_date": "2024-11-07",
            "source": "auto",
            "days_overdue": 3,
        }]

    @pytest.mark.asyncio
    async def test_completed_workflow_not_reported(self, workflow_engine, session_factory, vat_period, actor, clock):
        period_id = vat_period.id
        await workflow_engine.compute_deadlines(period_id)
        record = await workflow_engine.create_workflow(period_id, actor)
        await workflow_engine.exit_as_self_filing(record.id, actor)
        clock.set_time(datetime(2024, 11, 10, 9, 0, tzinfo=timezone.utc))

        result = await sweep_overdue_deadlines(session_factory=session_factory, clock=clock)
        assert result["overdue"] == []

    @pytest.mark.asyncio
    async def test_nothing_due_yet(self, workflow_engine, session_factory, vat_period, clock):
        await workflow_engine.compute_deadlines(vat_period.id)

        result = await sweep_overdue_deadlines(session_factory=session_factory, clock=clock)
        assert result["overdue"] == []


class TestReports:
    """Bottleneck and stuck-record scans."""

    @pytest.mark.asyncio
    async def test_stuck_records_scan(self, workflow_engine, session_factory, vat_period, actor, clock):
        record = await workflow_engine.create_workflow(vat_period.id, actor)
        clock.advance(days=20)

        found = await find_stuck_records(session_factory=session_factory, clock=clock)

        assert set(found) == {"vat_quarter", "ltd_accounts", "non_ltd_accounts"}
        assert [item["record_id"] for item in found["vat_quarter"]] == [str(record.id)]
        assert found["vat_quarter"][0]["days_in_stage"] == 20
        assert found["ltd_accounts"] == []

    @pytest.mark.asyncio
    async def test_bottleneck_report_for_one_type(self, workflow_engine, session_factory, vat_period, actor, clock):
        record = await workflow_engine.create_workflow(vat_period.id, actor)
        clock.advance(days=9)
        await workflow_engine.transition(record.id, WorkflowStage.PAPERWORK_RECEIVED, actor)

        report = await build_bottleneck_report("vat_quarter", session_factory=session_factory, clock=clock)

        assert list(report) == ["vat_quarter"]
        assert report["vat_quarter"][0]["stage"] == WorkflowStage.PAPERWORK_PENDING_CHASE.value
        assert report["vat_quarter"][0]["severity"] == "mild"
        assert report["vat_quarter"][0]["average_days"] == 9.0


class TestCeleryConfiguration:
    """Beat schedule and routing."""

    def test_beat_schedule_points_at_registered_tasks(self):
        schedule = celery_app.conf.beat_schedule
        assert set(schedule) == {
            'nightly-bottleneck-report',
            'daily-stuck-records',
            'daily-overdue-deadlines',
        }
        for entry in schedule.values():
            assert entry['task'].startswith('filingdesk.tasks.workflow_tasks.')
        assert celery_app.conf.task_routes['filingdesk.tasks.workflow_tasks.*'] == {'queue': 'reports'}
