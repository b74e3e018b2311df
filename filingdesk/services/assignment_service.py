"""
FilingDesk - Assignment Resolver

Who works on a client's filing: a per-service override wins over the
client's general default; with neither the work is unassigned.

Reassignment changes only the record's assignee. It is not a stage change,
so it writes no workflow history entry; it is logged instead.
"""

import logging
import uuid
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from filingdesk.models import (
    SERVICE_ASSIGNEE_COLUMNS,
    Client,
    ServiceType,
    User,
    WorkflowRecord,
    WorkflowType,
)
from filingdesk.schemas import Actor
from filingdesk.utils.error_handling import (
    UserInactiveException,
    UserNotFoundException,
    translate_flush_error,
)

logger = logging.getLogger(__name__)

SERVICE_FOR_WORKFLOW = {
    WorkflowType.VAT_QUARTER: ServiceType.VAT,
    WorkflowType.LTD_ACCOUNTS: ServiceType.LTD_ACCOUNTS,
    WorkflowType.NON_LTD_ACCOUNTS: ServiceType.NON_LTD_ACCOUNTS,
}


def service_for(workflow_type: WorkflowType) -> ServiceType:
    return SERVICE_FOR_WORKFLOW[workflow_type]


def effective_assignee(client: Client, service_type: ServiceType) -> Optional[uuid.UUID]:
    """Per-service override, else the client's default, else None."""
    override = client.service_assignee_id(service_type)
    if override is not None:
        return override
    return client.assigned_user_id


class AssignmentService:
    """Validated writes of record and client assignees."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_assignable_user(self, user_id: uuid.UUID) -> User:
        """
        Raises:
            UserNotFoundException: no such user
            UserInactiveException: the user is deactivated
        """
        user = await self.db.get(User, user_id)
        if user is None:
            raise UserNotFoundException(user_id)
        if not user.is_active:
            raise UserInactiveException(user_id)
        return user

    async def reassign(
        self,
        record: WorkflowRecord,
        user_id: Optional[uuid.UUID],
        actor: Actor,
    ) -> WorkflowRecord:
        """Point ``record`` at a new assignee, or unassign it with ``None``."""
        if user_id is not None:
            await self.get_assignable_user(user_id)

        record_id = record.id
        previous = record.assigned_user_id
        record.assigned_user_id = user_id
        try:
            await self.db.flush()
        except SQLAlchemyError as e:
            raise translate_flush_error(record_id, e) from e

        logger.info(
            f"Workflow {record_id} reassigned from {previous or 'unassigned'} "
            f"to {user_id or 'unassigned'} by {actor.name}"
        )
        return record

    async def set_service_assignment(
        self,
        client: Client,
        service_type: ServiceType,
        user_id: Optional[uuid.UUID],
        actor: Actor,
    ) -> Client:
        """Set or clear the per-service assignee override of a client."""
        if user_id is not None:
            await self.get_assignable_user(user_id)

        setattr(client, SERVICE_ASSIGNEE_COLUMNS[service_type], user_id)
        await self.db.flush()

        logger.info(
            f"Client {client.id} {service_type.value} assignee set to "
            f"{user_id or 'default'} by {actor.name}"
        )
        return client
