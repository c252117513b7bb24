"""
Batched escrow transfers.

One transfer per release candidate, in fixed-size sub-batches so the number
of concurrent calls to the payments provider stays bounded. Each transfer's
outcome is captured on its own; one failure never stops the rest.
"""

import asyncio
import uuid
from dataclasses import dataclass
from typing import List, Optional, Sequence

from src.config import get_settings
from src.engines.escrow.calculator import ReleaseCandidate
from src.integrations.payments import TransferError, TransferGateway, TransferRequest
from src.kernel.models.escrow_release import ReleaseType
from src.kernel.models.project import Project
from src.logging_config import get_logger

logger = get_logger(__name__)

REMAINING_ESCROW_TARGET = "remaining"


@dataclass
class TransferOutcome:
    """Result of one contribution's transfer."""
    contribution_id: uuid.UUID
    release_amount: int
    success: bool
    transfer_id: Optional[str] = None
    status: str = "failed"
    error: Optional[str] = None


def idempotency_key(
    candidate: ReleaseCandidate,
    release_type: ReleaseType,
    milestone_id: Optional[uuid.UUID] = None,
) -> str:
    """
    Stable per contribution, release target and escrow version.

    The version only moves when a release is recorded, so a retry after a
    failed or timed-out transfer reuses the key and the provider dedupes it.
    Every non-milestone type draws on the remaining escrow and shares one
    target, so e.g. an emergency release dedupes against an unrecorded
    project completion at the same version.
    """
    if release_type == ReleaseType.MILESTONE_COMPLETION and milestone_id is not None:
        target = str(milestone_id)
    else:
        target = REMAINING_ESCROW_TARGET
    return f"escrow-{candidate.contribution_id}-{target}-v{candidate.version}"


class TransferBatchExecutor:
    """Runs release transfers against the payments provider."""

    def __init__(
        self,
        gateway: TransferGateway,
        batch_size: Optional[int] = None,
        timeout: Optional[float] = None,
        fallback_destination: Optional[str] = None,
    ):
        settings = get_settings()
        self.gateway = gateway
        self.batch_size = max(1, batch_size or settings.transfer_batch_size)
        self.timeout = timeout or settings.transfer_timeout_seconds
        self.fallback_destination = (
            fallback_destination or settings.platform_holding_account_id
        )

    def destination_for(self, project: Project) -> str:
        return project.payout_account_id or self.fallback_destination

    def build_request(
        self,
        project: Project,
        candidate: ReleaseCandidate,
        release_type: ReleaseType,
        milestone_id: Optional[uuid.UUID] = None,
    ) -> TransferRequest:
        return TransferRequest(
            amount=candidate.amount,
            currency=candidate.currency.lower(),
            destination=self.destination_for(project),
            description=f"Escrow release: {project.title} - {release_type.value}",
            metadata={
                "contributionId": str(candidate.contribution_id),
                "projectId": str(project.id),
                "releaseType": release_type.value,
                "milestoneId": str(milestone_id) if milestone_id else "",
                "creatorUid": str(project.creator_id),
                "contributorUid": str(candidate.contributor_id),
            },
            idempotency_key=idempotency_key(candidate, release_type, milestone_id),
        )

    async def execute(
        self,
        project: Project,
        candidates: Sequence[ReleaseCandidate],
        release_type: ReleaseType,
        milestone_id: Optional[uuid.UUID] = None,
    ) -> List[TransferOutcome]:
        """Transfer every candidate; outcomes come back in input order."""
        outcomes: List[TransferOutcome] = []

        for batch_start in range(0, len(candidates), self.batch_size):
            batch = candidates[batch_start:batch_start + self.batch_size]
            results = await asyncio.gather(
                *(
                    self._transfer_one(project, candidate, release_type, milestone_id)
                    for candidate in batch
                ),
                return_exceptions=True,
            )
            for candidate, result in zip(batch, results):
                if isinstance(result, TransferOutcome):
                    outcomes.append(result)
                    continue
                logger.error(
                    "Unexpected transfer failure: %r",
                    result,
                    extra={"contribution_id": str(candidate.contribution_id)},
                )
                outcomes.append(
                    TransferOutcome(
                        contribution_id=candidate.contribution_id,
                        release_amount=candidate.amount,
                        success=False,
                        error=str(result) or type(result).__name__,
                    )
                )

        return outcomes

    async def _transfer_one(
        self,
        project: Project,
        candidate: ReleaseCandidate,
        release_type: ReleaseType,
        milestone_id: Optional[uuid.UUID],
    ) -> TransferOutcome:
        request = self.build_request(project, candidate, release_type, milestone_id)
        log_extra = {
            "contribution_id": str(candidate.contribution_id),
            "project_id": str(project.id),
            "amount": candidate.amount,
        }

        try:
            transfer = await asyncio.wait_for(
                self.gateway.create_transfer(request), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            logger.warning("Transfer timed out", extra=log_extra)
            return TransferOutcome(
                contribution_id=candidate.contribution_id,
                release_amount=candidate.amount,
                success=False,
                error=f"Transfer timed out after {self.timeout}s",
            )
        except TransferError as e:
            logger.warning("Transfer failed: %s", e, extra=log_extra)
            return TransferOutcome(
                contribution_id=candidate.contribution_id,
                release_amount=candidate.amount,
                success=False,
                error=str(e),
            )

        logger.info(
            "Transfer created",
            extra={**log_extra, "transfer_id": transfer.id},
        )
        return TransferOutcome(
            contribution_id=candidate.contribution_id,
            release_amount=candidate.amount,
            success=True,
            transfer_id=transfer.id,
            status=transfer.status or "pending",
        )
