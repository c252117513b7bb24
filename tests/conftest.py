"""
Pytest fixtures for escrow platform tests.

DB-backed tests run against a temporary SQLite file per test, so that the
release engine's per-contribution sessions all see the same database.
"""

import os
import tempfile
from typing import AsyncGenerator, List

# Point settings at SQLite before any src module builds the engine
_tmp = tempfile.NamedTemporaryFile(suffix=".db", delete=False)
_tmp.close()
TEST_DB_PATH = _tmp.name
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{TEST_DB_PATH}"
os.environ["SECRET_KEY"] = "test-secret-key-for-testing-only-32-chars"

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.config import get_settings

get_settings.cache_clear()

from src.database import build_engine, build_session_maker
from src.kernel.models import (
    Base,
    Capability,
    MilestoneAuditStatus,
    MilestoneStatus,
    Project,
    User,
    UserRole,
)
from tests.factories import (
    FakeTransferGateway,
    RecordingMetricsSink,
    RecordingNotificationGateway,
    make_contribution,
    make_project,
    make_user,
)


def pytest_sessionfinish(session, exitstatus):
    """Clean up the temp DB file used by the app engine."""
    if os.path.exists(TEST_DB_PATH):
        os.unlink(TEST_DB_PATH)


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """Fresh SQLite file per test."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(db_engine) -> async_sessionmaker[AsyncSession]:
    return build_session_maker(db_engine)


@pytest_asyncio.fixture
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    async with session_maker() as session:
        yield session


# Gateways

@pytest.fixture
def transfer_gateway() -> FakeTransferGateway:
    return FakeTransferGateway()


@pytest.fixture
def notifications() -> RecordingNotificationGateway:
    return RecordingNotificationGateway()


@pytest.fixture
def metrics() -> RecordingMetricsSink:
    return RecordingMetricsSink()


# Users

@pytest_asyncio.fixture
async def creator(db_session) -> User:
    return await make_user(db_session, UserRole.CREATOR)


@pytest_asyncio.fixture
async def admin(db_session) -> User:
    return await make_user(db_session, UserRole.ADMIN)


@pytest_asyncio.fixture
async def auditor(db_session) -> User:
    return await make_user(
        db_session,
        UserRole.AUDITOR,
        capabilities=[Capability.AUDIT],
        specializations=["financial", "technical", "environmental"],
        certifications=[{"category": "finance", "status": "active"}],
    )


@pytest_asyncio.fixture
async def contributors(db_session) -> List[User]:
    return [
        await make_user(db_session, UserRole.CONTRIBUTOR),
        await make_user(db_session, UserRole.CONTRIBUTOR),
    ]


# Projects

@pytest_asyncio.fixture
async def escrow_project(db_session, creator, contributors) -> Project:
    """
    Two contributions holding 9200 and 4600, scheduled 40/60 over two
    milestones. Milestone 1 is completed with an approved audit.
    """
    project = await make_project(
        db_session,
        creator,
        milestones=[
            {
                "title": "Site preparation",
                "funding_percentage": 40,
                "status": MilestoneStatus.COMPLETED,
                "audit_status": MilestoneAuditStatus.APPROVED,
            },
            {"title": "Planting", "funding_percentage": 60},
        ],
        payout_account_id="acct_creator_123",
    )
    m1, m2 = project.milestones
    await make_contribution(db_session, project, contributors[0], 9_200, [(m1, 3_680), (m2, 5_520)])
    await make_contribution(db_session, project, contributors[1], 4_600, [(m1, 1_840), (m2, 2_760)])
    return project
