"""
Escrow release orchestration.

Order of operations for one release request:
1. caller permission for the release type
2. gate check (milestone / audit / project completion)
3. per-contribution amounts
4. claim each contribution (losers are left out of this batch)
5. transfers, in bounded sub-batches
6. ledger and schedule update, one transaction per successful transfer
7. best-effort bookkeeping, notifications and metrics

Nothing is transferred unless steps 1-2 pass. From step 5 on a failure
belongs to one contribution's result and never fails the request.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Awaitable, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.engines.escrow.calculator import PerContributionReleaseCalculator, ReleaseCandidate
from src.engines.escrow.conditions import EscrowReleaseConditionEvaluator, ReleaseDecision
from src.engines.escrow.ledger import LedgerAndStateUpdater, ReleaseContext, new_claim_token
from src.engines.escrow.transfers import TransferBatchExecutor, TransferOutcome
from src.integrations.metrics import MetricsSink
from src.integrations.notifications import Notification, NotificationGateway
from src.integrations.payments import TransferGateway
from src.integrations.side_effects import run_side_effects
from src.kernel.errors import Internal, NotFound
from src.kernel.events.event_store import EventStore
from src.kernel.models.contribution import Contribution, ContributionStatus
from src.kernel.models.event_log import EventType
from src.kernel.models.project import Project
from src.kernel.models.user import User
from src.kernel.permissions.permission_service import PermissionService, has_admin_access
from src.logging_config import get_logger
from src.schemas.escrow import ReleaseRequest, ReleaseResponse, ReleaseResult

logger = get_logger(__name__)


class EscrowReleaseService:
    """Releases held contributions of a project to its creator."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        transfer_gateway: TransferGateway,
        notifications: NotificationGateway,
        metrics: MetricsSink,
        executor: Optional[TransferBatchExecutor] = None,
        ledger: Optional[LedgerAndStateUpdater] = None,
    ):
        self.session_maker = session_maker
        self.notifications = notifications
        self.metrics = metrics
        self.executor = executor or TransferBatchExecutor(transfer_gateway)
        self.ledger = ledger or LedgerAndStateUpdater(session_maker)

    async def release(self, request: ReleaseRequest, actor: User) -> ReleaseResponse:
        project, decision, candidates = await self._prepare(request, actor)
        processed_at = datetime.now(timezone.utc)

        if not candidates:
            logger.info(
                "No contributions eligible for release",
                extra={
                    "project_id": str(project.id),
                    "release_type": request.release_type.value,
                },
            )
            return self._build_response(request, [], processed_at)

        token = new_claim_token()
        claimed = await self._claim_all(project, candidates, token)

        outcomes = await self.executor.execute(
            project, claimed, request.release_type, request.milestone_id
        )

        context = ReleaseContext(
            project_id=project.id,
            creator_id=project.creator_id,
            release_type=request.release_type,
            milestone_id=request.milestone_id,
            actor_id=actor.id,
            processed_at=processed_at,
        )
        results = [await self._settle(outcome, token, context) for outcome in outcomes]
        response = self._build_response(request, results, processed_at)

        logger.info(
            "Escrow release processed",
            extra={
                "project_id": str(project.id),
                "release_type": request.release_type.value,
                "milestone_id": str(request.milestone_id) if request.milestone_id else None,
                "total_released": response.total_released,
                "successful": response.successful,
                "failed": response.failed,
                "skipped": len(candidates) - len(claimed),
            },
        )

        await run_side_effects(
            self._side_effects(request, project, decision, claimed, response, actor),
            extra={"project_id": str(project.id)},
        )
        return response

    async def _prepare(self, request: ReleaseRequest, actor: User):
        """Permission, gate and amounts, all read in one session."""
        async with self.session_maker() as session:
            project = await session.get(Project, request.project_id)
            if project is None:
                raise NotFound("Project not found", context={"project_id": str(request.project_id)})

            await PermissionService(session).check_release_permission(
                actor, request.release_type, project
            )

            bypass = request.bypass_safety_checks and has_admin_access(actor)
            if request.bypass_safety_checks and not bypass:
                logger.warning(
                    "Safety bypass requested by non-admin, ignoring",
                    extra={"user_id": str(actor.id), "project_id": str(project.id)},
                )

            decision = EscrowReleaseConditionEvaluator.evaluate(
                project,
                request.release_type,
                milestone_id=request.milestone_id,
                release_percentage=request.release_percentage,
                bypass=bypass,
            )

            try:
                if decision.bypassed:
                    await self._log_bypass(session, request, project, actor)
                rows = await session.execute(
                    select(Contribution).where(
                        Contribution.project_id == project.id,
                        Contribution.escrow_held.is_(True),
                        Contribution.status == ContributionStatus.CONFIRMED,
                    )
                )
            except SQLAlchemyError as e:
                logger.exception("Failed to load contributions", extra={"project_id": str(project.id)})
                raise Internal("Failed to load contributions for release") from e

            candidates = PerContributionReleaseCalculator.calculate(
                rows.scalars().all(),
                request.release_type,
                milestone_id=request.milestone_id,
                release_percentage=request.release_percentage,
            )
        return project, decision, candidates

    async def _log_bypass(
        self,
        session: AsyncSession,
        request: ReleaseRequest,
        project: Project,
        actor: User,
    ) -> None:
        """Bypassing a gate is itself an auditable action."""
        await EventStore(session).log(
            event_type=EventType.ESCROW_SAFETY_BYPASSED,
            entity_type="project",
            entity_id=project.id,
            user_id=actor.id,
            payload={
                "release_type": request.release_type,
                "milestone_id": request.milestone_id,
                "reason": request.release_reason,
            },
        )
        await session.commit()
        logger.warning(
            "Escrow safety checks bypassed",
            extra={"project_id": str(project.id), "user_id": str(actor.id)},
        )

    async def _claim_all(
        self,
        project: Project,
        candidates: List[ReleaseCandidate],
        token: str,
    ) -> List[ReleaseCandidate]:
        """Claim every candidate, or none: a failure hands back what was taken."""
        claimed: List[ReleaseCandidate] = []
        try:
            for candidate in candidates:
                if await self.ledger.claim(candidate, token):
                    claimed.append(candidate)
        except SQLAlchemyError as e:
            logger.exception(
                "Failed to claim contributions",
                extra={"project_id": str(project.id), "claimed": len(claimed)},
            )
            for candidate in claimed:
                await self._drop_claim(candidate.contribution_id, token)
            raise Internal("Failed to claim contributions for release") from e
        return claimed

    async def _settle(
        self,
        outcome: TransferOutcome,
        token: str,
        context: ReleaseContext,
    ) -> ReleaseResult:
        if not outcome.success:
            await self._drop_claim(outcome.contribution_id, token)
            return ReleaseResult(
                contribution_id=outcome.contribution_id,
                release_amount=outcome.release_amount,
                status="failed",
                success=False,
                error=outcome.error,
            )

        recorded = await self.ledger.record_release(outcome, token, context)
        if not recorded.success:
            # Same idempotency key on retry, so the provider returns this transfer again
            await self._drop_claim(outcome.contribution_id, token)
            return ReleaseResult(
                contribution_id=outcome.contribution_id,
                transfer_id=outcome.transfer_id,
                release_amount=outcome.release_amount,
                status="unrecorded",
                success=False,
                error=recorded.error.message if recorded.error else "Ledger update failed",
            )

        return ReleaseResult(
            contribution_id=outcome.contribution_id,
            transfer_id=outcome.transfer_id,
            release_amount=outcome.release_amount,
            status=outcome.status,
            success=True,
        )

    async def _drop_claim(self, contribution_id: uuid.UUID, token: str) -> None:
        try:
            await self.ledger.release_claim(contribution_id, token)
        except SQLAlchemyError:
            # The claim goes stale on its own after the TTL
            logger.exception(
                "Failed to clear release claim",
                extra={"contribution_id": str(contribution_id)},
            )

    def _build_response(
        self,
        request: ReleaseRequest,
        results: List[ReleaseResult],
        processed_at: datetime,
    ) -> ReleaseResponse:
        successful = [r for r in results if r.success]
        return ReleaseResponse(
            release_type=request.release_type,
            project_id=request.project_id,
            milestone_id=request.milestone_id,
            total_released=sum(r.release_amount for r in successful),
            contributions_processed=len(results),
            successful=len(successful),
            failed=len(results) - len(successful),
            results=results,
            processed_at=processed_at,
        )

    def _side_effects(
        self,
        request: ReleaseRequest,
        project: Project,
        decision: ReleaseDecision,
        claimed: List[ReleaseCandidate],
        response: ReleaseResponse,
        actor: User,
    ) -> Dict[str, Awaitable[Any]]:
        effects: Dict[str, Awaitable[Any]] = {
            "record_processed": self._record_processed(request, project, response, actor),
            "metrics": self._record_metrics(request, response),
        }
        if response.successful == 0:
            return effects

        if request.notify_creator:
            effects["notify_creator"] = self.notifications.send(
                Notification(
                    recipient_id=str(project.creator_id),
                    template="escrow_released_creator",
                    data={
                        "project_id": str(project.id),
                        "project_title": project.title,
                        "release_type": request.release_type.value,
                        "milestone_title": decision.milestone.title if decision.milestone else None,
                        "total_released": response.total_released,
                        "currency": project.currency,
                        "contributions": response.successful,
                    },
                )
            )

        if request.notify_contributors:
            released = {r.contribution_id: r for r in response.results if r.success}
            for candidate in claimed:
                result = released.get(candidate.contribution_id)
                if result is None:
                    continue
                effects[f"notify_contributor:{candidate.contribution_id}"] = self.notifications.send(
                    Notification(
                        recipient_id=str(candidate.contributor_id),
                        template="escrow_released_contributor",
                        data={
                            "project_title": project.title,
                            "release_type": request.release_type.value,
                            "amount": result.release_amount,
                            "currency": candidate.currency,
                        },
                    )
                )
        return effects

    async def _record_processed(
        self,
        request: ReleaseRequest,
        project: Project,
        response: ReleaseResponse,
        actor: User,
    ) -> None:
        async with self.session_maker() as session:
            await EventStore(session).log(
                event_type=EventType.ESCROW_RELEASE_PROCESSED,
                entity_type="project",
                entity_id=project.id,
                user_id=actor.id,
                payload={
                    "release_type": request.release_type,
                    "milestone_id": request.milestone_id,
                    "reason": request.release_reason,
                    "total_released": response.total_released,
                    "successful": response.successful,
                    "failed": response.failed,
                },
            )
            await session.commit()

    async def _record_metrics(self, request: ReleaseRequest, response: ReleaseResponse) -> None:
        tags = {"release_type": request.release_type.value}
        await self.metrics.record("escrow.released_amount", value=response.total_released, tags=tags)
        await self.metrics.record("escrow.transfers_succeeded", value=response.successful, tags=tags)
        if response.failed:
            await self.metrics.record("escrow.transfers_failed", value=response.failed, tags=tags)
