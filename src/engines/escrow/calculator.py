"""
Per-contribution release amounts.

Pure: works on contributions already loaded with their release schedules.
"""

import uuid
from dataclasses import dataclass
from typing import Iterable, List, Optional

from src.engines.audit.compensation import round_half_up
from src.kernel.models.contribution import Contribution, ContributionStatus
from src.kernel.models.escrow_release import ReleaseType


@dataclass
class ReleaseCandidate:
    """One contribution and the amount it will release."""
    contribution_id: uuid.UUID
    contributor_id: uuid.UUID
    amount: int
    currency: str
    version: int
    schedule_entry_id: Optional[uuid.UUID] = None


def is_releasable(contribution: Contribution) -> bool:
    return (
        contribution.escrow_held
        and contribution.status == ContributionStatus.CONFIRMED
    )


def releasable_amount(
    contribution: Contribution,
    release_type: ReleaseType,
    milestone_id: Optional[uuid.UUID] = None,
    release_percentage: Optional[int] = None,
) -> int:
    """Amount this contribution releases for the given release type."""
    remaining = contribution.remaining_escrow

    if release_type == ReleaseType.MILESTONE_COMPLETION:
        if milestone_id is None:
            return 0
        entry = contribution.schedule_entry_for(milestone_id)
        if entry is None or entry.released:
            return 0
        # Never release past what is still held
        return max(0, min(entry.amount, remaining))

    if release_percentage is not None:
        return round_half_up(remaining * release_percentage / 100)
    return remaining


class PerContributionReleaseCalculator:
    """Turns held contributions into release candidates, dropping zero amounts."""

    @classmethod
    def calculate(
        cls,
        contributions: Iterable[Contribution],
        release_type: ReleaseType,
        milestone_id: Optional[uuid.UUID] = None,
        release_percentage: Optional[int] = None,
    ) -> List[ReleaseCandidate]:
        candidates: List[ReleaseCandidate] = []
        for contribution in contributions:
            if not is_releasable(contribution):
                continue
            amount = releasable_amount(
                contribution, release_type, milestone_id, release_percentage
            )
            if amount <= 0:
                continue
            entry = (
                contribution.schedule_entry_for(milestone_id)
                if release_type == ReleaseType.MILESTONE_COMPLETION
                else None
            )
            candidates.append(
                ReleaseCandidate(
                    contribution_id=contribution.id,
                    contributor_id=contribution.contributor_id,
                    amount=amount,
                    currency=contribution.currency,
                    version=contribution.version,
                    schedule_entry_id=entry.id if entry is not None else None,
                )
            )
        return candidates
