"""Unit tests for batched escrow transfers."""

import asyncio
import uuid

from src.engines.escrow.calculator import ReleaseCandidate
from src.engines.escrow.transfers import TransferBatchExecutor, idempotency_key
from src.integrations.payments import Transfer, TransferGateway, TransferRequest
from src.kernel.models.escrow_release import ReleaseType
from src.kernel.models.project import Project, ProjectStatus
from tests.factories import FakeTransferGateway


def build_project(payout_account_id="acct_creator_123") -> Project:
    return Project(
        id=uuid.uuid4(),
        title="Community solar",
        category="environment",
        status=ProjectStatus.FUNDING_COMPLETE,
        creator_id=uuid.uuid4(),
        funding_raised=13_800,
        funding_goal=20_000,
        payout_account_id=payout_account_id,
    )


def candidate(amount=5_520, version=1) -> ReleaseCandidate:
    return ReleaseCandidate(
        contribution_id=uuid.uuid4(),
        contributor_id=uuid.uuid4(),
        amount=amount,
        currency="EUR",
        version=version,
    )


class SlowGateway(TransferGateway):
    async def create_transfer(self, request: TransferRequest) -> Transfer:
        await asyncio.sleep(5)
        return Transfer(id="tr_late")


class ConcurrencyTrackingGateway(TransferGateway):
    def __init__(self):
        self.in_flight = 0
        self.peak = 0
        self.count = 0

    async def create_transfer(self, request: TransferRequest) -> Transfer:
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        await asyncio.sleep(0.01)
        self.in_flight -= 1
        self.count += 1
        return Transfer(id=f"tr_{self.count}", status="pending")


class ExplodingGateway(TransferGateway):
    async def create_transfer(self, request: TransferRequest) -> Transfer:
        raise RuntimeError("connection reset")


class TestIdempotencyKey:

    def test_milestone_key(self):
        c = candidate(version=4)
        milestone_id = uuid.uuid4()
        key = idempotency_key(c, ReleaseType.MILESTONE_COMPLETION, milestone_id)
        assert key == f"escrow-{c.contribution_id}-{milestone_id}-v4"

    def test_project_level_key_targets_remaining_escrow(self):
        c = candidate()
        key = idempotency_key(c, ReleaseType.PROJECT_COMPLETION)
        assert key == f"escrow-{c.contribution_id}-remaining-v1"

    def test_non_milestone_types_share_a_key(self):
        c = candidate(version=3)
        keys = {
            idempotency_key(c, release_type)
            for release_type in (
                ReleaseType.PROJECT_COMPLETION,
                ReleaseType.EMERGENCY_RELEASE,
                ReleaseType.ADMIN_OVERRIDE,
            )
        }
        assert keys == {f"escrow-{c.contribution_id}-remaining-v3"}

    def test_milestone_id_ignored_for_other_types(self):
        c = candidate()
        milestone_id = uuid.uuid4()
        assert idempotency_key(c, ReleaseType.EMERGENCY_RELEASE, milestone_id) == idempotency_key(
            c, ReleaseType.PROJECT_COMPLETION
        )

    def test_key_changes_with_version(self):
        c1 = candidate(version=1)
        c2 = ReleaseCandidate(**{**c1.__dict__, "version": 2})
        assert idempotency_key(c1, ReleaseType.ADMIN_OVERRIDE) != idempotency_key(
            c2, ReleaseType.ADMIN_OVERRIDE
        )


class TestBuildRequest:

    def test_request_fields(self):
        project = build_project()
        c = candidate()
        milestone_id = uuid.uuid4()
        executor = TransferBatchExecutor(FakeTransferGateway())

        request = executor.build_request(
            project, c, ReleaseType.MILESTONE_COMPLETION, milestone_id
        )

        assert request.amount == 5_520
        assert request.currency == "eur"
        assert request.destination == "acct_creator_123"
        assert request.description == "Escrow release: Community solar - milestone_completion"
        assert request.metadata["contributionId"] == str(c.contribution_id)
        assert request.metadata["milestoneId"] == str(milestone_id)
        assert request.metadata["creatorUid"] == str(project.creator_id)

    def test_fallback_destination(self):
        project = build_project(payout_account_id=None)
        executor = TransferBatchExecutor(
            FakeTransferGateway(), fallback_destination="acct_holding"
        )

        request = executor.build_request(project, candidate(), ReleaseType.EMERGENCY_RELEASE)

        assert request.destination == "acct_holding"
        assert request.metadata["milestoneId"] == ""


class TestExecute:

    async def test_all_succeed(self):
        gateway = FakeTransferGateway()
        executor = TransferBatchExecutor(gateway, batch_size=2)
        candidates = [candidate(), candidate(2_760), candidate(100)]

        outcomes = await executor.execute(
            build_project(), candidates, ReleaseType.PROJECT_COMPLETION
        )

        assert [o.contribution_id for o in outcomes] == [c.contribution_id for c in candidates]
        assert all(o.success for o in outcomes)
        assert all(o.status == "paid" for o in outcomes)
        assert len(gateway.requests) == 3

    async def test_failure_is_isolated(self):
        candidates = [candidate(), candidate(2_760)]
        gateway = FakeTransferGateway(fail_for={str(candidates[0].contribution_id)})
        executor = TransferBatchExecutor(gateway)

        outcomes = await executor.execute(
            build_project(), candidates, ReleaseType.PROJECT_COMPLETION
        )

        assert outcomes[0].success is False
        assert outcomes[0].error == "Card declined"
        assert outcomes[0].release_amount == 5_520
        assert outcomes[1].success is True

    async def test_timeout_becomes_failed_outcome(self):
        executor = TransferBatchExecutor(SlowGateway(), timeout=0.05)

        outcomes = await executor.execute(
            build_project(), [candidate()], ReleaseType.PROJECT_COMPLETION
        )

        assert outcomes[0].success is False
        assert "timed out" in outcomes[0].error

    async def test_unexpected_exception_becomes_failed_outcome(self):
        executor = TransferBatchExecutor(ExplodingGateway())

        outcomes = await executor.execute(
            build_project(), [candidate()], ReleaseType.PROJECT_COMPLETION
        )

        assert outcomes[0].success is False
        assert outcomes[0].error == "connection reset"

    async def test_batch_size_bounds_concurrency(self):
        gateway = ConcurrencyTrackingGateway()
        executor = TransferBatchExecutor(gateway, batch_size=3)

        outcomes = await executor.execute(
            build_project(), [candidate() for _ in range(7)], ReleaseType.PROJECT_COMPLETION
        )

        assert len(outcomes) == 7
        assert gateway.peak <= 3
        assert outcomes[0].status == "pending"

    async def test_no_candidates(self):
        gateway = FakeTransferGateway()
        outcomes = await TransferBatchExecutor(gateway).execute(
            build_project(), [], ReleaseType.PROJECT_COMPLETION
        )
        assert outcomes == []
        assert gateway.requests == []
