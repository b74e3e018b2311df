"""
FilingDesk - Assignment Resolver Tests

Tests for assignee precedence, record reassignment and per-service
client overrides.
"""

from uuid import uuid4

import pytest
import pytest_asyncio

from filingdesk.models import Client, ServiceType, User, UserRole
from filingdesk.services.assignment_service import AssignmentService, effective_assignee
from filingdesk.utils.error_handling import (
    ErrorCode,
    UserInactiveException,
    UserNotFoundException,
)


@pytest_asyncio.fixture
async def manager_user(db_session) -> User:
    user = User(
        id=uuid4(),
        name="Tom Okafor",
        email="tom@example.co.uk",
        role=UserRole.MANAGER,
        is_active=True,
    )
    db_session.add(user)
    await db_session.commit()
    return user


@pytest_asyncio.fixture
async def record_id(workflow_engine, vat_period, actor):
    record = await workflow_engine.create_workflow(vat_period.id, actor)
    return record.id


# =============================================================================
# PRECEDENCE
# =============================================================================

class TestEffectiveAssignee:
    """Per-service override, then client default, then nobody."""

    def make_client(self, **assignees):
        return Client(company_name="Brook & Sons", **assignees)

    def test_override_wins(self):
        default_id, vat_id = uuid4(), uuid4()
        client = self.make_client(assigned_user_id=default_id, vat_assigned_user_id=vat_id)
        assert effective_assignee(client, ServiceType.VAT) == vat_id

    def test_falls_back_to_default(self):
        default_id = uuid4()
        client = self.make_client(assigned_user_id=default_id, vat_assigned_user_id=uuid4())
        assert effective_assignee(client, ServiceType.LTD_ACCOUNTS) == default_id

    def test_unassigned(self):
        client = self.make_client()
        assert effective_assignee(client, ServiceType.NON_LTD_ACCOUNTS) is None


# =============================================================================
# RECORD REASSIGNMENT
# =============================================================================

class TestReassign:
    """Reassignment through the workflow engine."""

    @pytest.mark.asyncio
    async def test_reassign_to_active_user(self, workflow_engine, record_id, manager_user, actor):
        manager_id = manager_user.id

        result = await workflow_engine.reassign(record_id, manager_id, actor)

        assert result.ok is True
        assert result.record.assigned_user_id == manager_id

    @pytest.mark.asyncio
    async def test_reassign_writes_no_history(self, workflow_engine, record_id, manager_user, actor):
        before = len(await workflow_engine.get_history(record_id))
        await workflow_engine.reassign(record_id, manager_user.id, actor)
        assert len(await workflow_engine.get_history(record_id)) == before

    @pytest.mark.asyncio
    async def test_reassign_to_nobody(self, workflow_engine, record_id, actor):
        result = await workflow_engine.reassign(record_id, None, actor)
        assert result.ok is True
        assert result.record.assigned_user_id is None

    @pytest.mark.asyncio
    async def test_unknown_user(self, workflow_engine, record_id, staff_user, actor):
        staff_id = staff_user.id

        result = await workflow_engine.reassign(record_id, uuid4(), actor)

        assert result.ok is False
        assert result.error.code == ErrorCode.USER_NOT_FOUND
        assert (await workflow_engine.get_record(record_id)).assigned_user_id == staff_id

    @pytest.mark.asyncio
    async def test_inactive_user(self, workflow_engine, record_id, inactive_user, actor):
        inactive_id = inactive_user.id

        result = await workflow_engine.reassign(record_id, inactive_id, actor)

        assert result.ok is False
        assert result.error.code == ErrorCode.USER_INACTIVE

    @pytest.mark.asyncio
    async def test_unknown_record(self, workflow_engine, manager_user, actor):
        result = await workflow_engine.reassign(uuid4(), manager_user.id, actor)
        assert result.ok is False
        assert result.error.code == ErrorCode.NOT_FOUND


# =============================================================================
# CLIENT SERVICE OVERRIDES
# =============================================================================

class TestServiceAssignment:
    """Per-service assignee overrides on the client."""

    @pytest.mark.asyncio
    async def test_set_and_clear_override(self, db_session, acme_client, staff_user, manager_user, actor):
        service = AssignmentService(db_session)

        await service.set_service_assignment(acme_client, ServiceType.VAT, manager_user.id, actor)
        assert acme_client.vat_assigned_user_id == manager_user.id
        assert effective_assignee(acme_client, ServiceType.VAT) == manager_user.id

        await service.set_service_assignment(acme_client, ServiceType.VAT, None, actor)
        assert effective_assignee(acme_client, ServiceType.VAT) == staff_user.id

    @pytest.mark.asyncio
    async def test_inactive_override_refused(self, db_session, acme_client, inactive_user, actor):
        service = AssignmentService(db_session)

        with pytest.raises(UserInactiveException):
            await service.set_service_assignment(
                acme_client, ServiceType.LTD_ACCOUNTS, inactive_user.id, actor
            )
        assert acme_client.ltd_assigned_user_id is None

    @pytest.mark.asyncio
    async def test_unknown_user_refused(self, db_session, acme_client, actor):
        with pytest.raises(UserNotFoundException):
            await AssignmentService(db_session).set_service_assignment(
                acme_client, ServiceType.VAT, uuid4(), actor
            )
