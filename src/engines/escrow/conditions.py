"""
Escrow release gate.

Decides, at the project and milestone level, whether a release of a given
type is currently permitted and how much it amounts to for the project as a
whole. Caller permissions are checked before this runs.
"""

import uuid
from typing import Optional

from pydantic import BaseModel, ConfigDict

from src.engines.audit.compensation import round_half_up
from src.kernel.errors import FailedPrecondition, InvalidArgument, NotFound
from src.kernel.models.escrow_release import ReleaseType
from src.kernel.models.project import (
    Milestone,
    MilestoneAuditStatus,
    MilestoneStatus,
    Project,
    ProjectStatus,
)


class ReleaseDecision(BaseModel):
    """A permitted release at the project level."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    release_type: ReleaseType
    milestone: Optional[Milestone] = None
    project_release_amount: int
    bypassed: bool = False


class EscrowReleaseConditionEvaluator:
    """
    Gate checks per release type.

    - milestone_completion: milestone exists and is completed; its audit is
      approved when required, unless bypassed
    - project_completion: project and every milestone completed, unless bypassed
    - emergency_release / admin_override: no completion preconditions
    """

    @classmethod
    def evaluate(
        cls,
        project: Project,
        release_type: ReleaseType,
        milestone_id: Optional[uuid.UUID] = None,
        release_percentage: Optional[int] = None,
        bypass: bool = False,
    ) -> ReleaseDecision:
        """
        Raises:
            InvalidArgument: milestone id missing for a milestone release
            NotFound: the milestone is not part of the project
            FailedPrecondition: a gating condition does not hold
        """
        raised = project.funding_raised or 0

        if release_type == ReleaseType.MILESTONE_COMPLETION:
            if milestone_id is None:
                raise InvalidArgument(
                    "Milestone ID required for milestone release",
                    field="milestoneId",
                )
            milestone = project.find_milestone(milestone_id)
            if milestone is None:
                raise NotFound(
                    "Milestone not found",
                    context={"milestone_id": str(milestone_id)},
                )
            if milestone.status != MilestoneStatus.COMPLETED:
                raise FailedPrecondition(
                    "Milestone must be completed before escrow release"
                )
            audit_pending = (
                milestone.audit_required
                and milestone.audit_status != MilestoneAuditStatus.APPROVED
            )
            if audit_pending and not bypass:
                raise FailedPrecondition(
                    "Milestone audit must be approved before escrow release"
                )
            return ReleaseDecision(
                release_type=release_type,
                milestone=milestone,
                project_release_amount=round_half_up(
                    raised * milestone.funding_percentage / 100
                ),
                bypassed=bool(audit_pending and bypass),
            )

        if release_type == ReleaseType.PROJECT_COMPLETION:
            project_incomplete = project.status != ProjectStatus.COMPLETED
            milestones_incomplete = any(
                m.status != MilestoneStatus.COMPLETED for m in project.milestones
            )
            if project_incomplete and not bypass:
                raise FailedPrecondition(
                    "Project must be completed before full escrow release"
                )
            if milestones_incomplete and not bypass:
                raise FailedPrecondition(
                    "All milestones must be completed before full escrow release"
                )
            return ReleaseDecision(
                release_type=release_type,
                project_release_amount=raised,
                bypassed=bool(bypass and (project_incomplete or milestones_incomplete)),
            )

        # Emergency and admin override releases have no completion gate
        amount = raised
        if release_percentage is not None:
            amount = round_half_up(raised * release_percentage / 100)
        return ReleaseDecision(
            release_type=release_type,
            project_release_amount=amount,
        )
