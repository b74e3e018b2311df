"""
FilingDesk - Test Configuration

Pytest fixtures and configuration.

Every test gets its own in-memory SQLite database (aiosqlite) with the
schema created from the models, and a deterministic clock.
"""

from datetime import date, datetime, timezone
from typing import AsyncGenerator
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

import filingdesk.models  # noqa: F401  (register tables)
from filingdesk.database import Base, make_session_factory
from filingdesk.models import (
    Client,
    FilingPeriod,
    User,
    UserRole,
    WorkflowType,
)
from filingdesk.schemas import Actor
from filingdesk.services.workflow_engine import WorkflowEngine
from filingdesk.utils.clock import DeterministicClock


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Midday in London during BST
START_TIME = datetime(2024, 10, 1, 11, 0, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture(scope="function")
async def db_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return make_session_factory(db_engine)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(START_TIME)


@pytest.fixture
def actor() -> Actor:
    return Actor(id=uuid4(), name="Priya Shah", role=UserRole.STAFF)


@pytest.fixture
def manager_actor() -> Actor:
    return Actor(id=uuid4(), name="Tom Okafor", role=UserRole.MANAGER)


@pytest_asyncio.fixture
async def staff_user(db_session: AsyncSession) -> User:
    user = User(
        id=uuid4(),
        name="Priya Shah",
        email="priya@example.co.uk",
        role=UserRole.STAFF,
        is_active=True,
    )
    db_session.add(user)
    await db_session.commit()
    return user


@pytest_asyncio.fixture
async def inactive_user(db_session: AsyncSession) -> User:
    user = User(
        id=uuid4(),
        name="Former Employee",
        email="former@example.co.uk",
        role=UserRole.STAFF,
        is_active=False,
    )
    db_session.add(user)
    await db_session.commit()
    return user


@pytest_asyncio.fixture
async def acme_client(db_session: AsyncSession, staff_user: User) -> Client:
    client = Client(
        id=uuid4(),
        company_name="Acme Widgets Ltd",
        client_code="ACM001",
        company_number="01234567",
        incorporation_date=date(2015, 3, 12),
        last_confirmation_statement_date=date(2024, 3, 12),
        accounting_reference_date=date(2023, 12, 31),
        assigned_user_id=staff_user.id,
        vat_assigned_user_id=None,
        ltd_assigned_user_id=None,
        non_ltd_assigned_user_id=None,
    )
    db_session.add(client)
    await db_session.commit()
    return client


async def _add_period(db_session, client, workflow_type, start, end, quarter_group=None) -> FilingPeriod:
    period = FilingPeriod(
        id=uuid4(),
        client_id=client.id,
        workflow_type=workflow_type,
        period_start=start,
        period_end=end,
        quarter_group=quarter_group,
    )
    db_session.add(period)
    await db_session.commit()
    return period


@pytest_asyncio.fixture
async def vat_period(db_session: AsyncSession, acme_client: Client) -> FilingPeriod:
    return await _add_period(
        db_session, acme_client, WorkflowType.VAT_QUARTER,
        date(2024, 7, 1), date(2024, 9, 30), quarter_group="3_6_9_12",
    )


@pytest_asyncio.fixture
async def ltd_period(db_session: AsyncSession, acme_client: Client) -> FilingPeriod:
    return await _add_period(
        db_session, acme_client, WorkflowType.LTD_ACCOUNTS,
        date(2024, 1, 1), date(2024, 12, 31),
    )


@pytest_asyncio.fixture
async def non_ltd_period(db_session: AsyncSession, acme_client: Client) -> FilingPeriod:
    return await _add_period(
        db_session, acme_client, WorkflowType.NON_LTD_ACCOUNTS,
        date(2023, 4, 6), date(2024, 4, 5),
    )


@pytest.fixture
def workflow_engine(db_session: AsyncSession, clock: DeterministicClock) -> WorkflowEngine:
    return WorkflowEngine(db_session, clock=clock)
