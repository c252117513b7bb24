"""
Auditor eligibility and conflict-of-interest checks.

Checks short-circuit on the first failure, in this order:
1. auditor holds the audit capability and is active
2. auditor covers every required specialization
3. regulated categories need an active certification for that category
4. auditor is below their concurrent audit cap
5. a requested compensation meets the auditor's minimum rate
"""

import uuid
from typing import List, Optional, Sequence

from pydantic import BaseModel
from sqlalchemy import select, and_, func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import get_settings
from src.engines.audit import policy
from src.kernel.errors import (
    FailedPrecondition,
    Internal,
    InvalidArgument,
    NotFound,
    PermissionDenied,
)
from src.kernel.events.event_store import EventStore
from src.kernel.models.audit import Audit, ACTIVE_AUDIT_STATUSES
from src.kernel.models.contribution import Contribution
from src.kernel.models.event_log import EventType
from src.kernel.models.project import Project
from src.kernel.models.user import Capability, User
from src.logging_config import get_logger

logger = get_logger(__name__)


class ConflictCheckResult(BaseModel):
    """Outcome of a conflict-of-interest check that did not block."""

    previous_audits_with_creator: int
    shared_project_flagged: bool


def has_active_certification(auditor: User, category: str) -> bool:
    for cert in auditor.certifications or []:
        if cert.get("category") == category and cert.get("status") == "active":
            return True
    return False


def missing_specializations(auditor: User, required: Sequence[str]) -> List[str]:
    held = set(auditor.specializations or [])
    return [name for name in required if name not in held]


class AuditEligibilityValidator:
    """
    Decides whether a candidate auditor may be assigned to a project.

    Usage:
        validator = AuditEligibilityValidator(session)
        auditor = await validator.validate(auditor_id, ["financial"], "finance")
        await validator.check_conflicts_of_interest(auditor, project)
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.settings = get_settings()

    async def count_active_audits(self, auditor_id: uuid.UUID) -> int:
        query = select(func.count(Audit.id)).where(
            and_(
                Audit.auditor_id == auditor_id,
                Audit.status.in_([s.value for s in ACTIVE_AUDIT_STATUSES]),
            )
        )
        result = await self.session.execute(query)
        return result.scalar_one() or 0

    async def validate(
        self,
        auditor_id: uuid.UUID,
        specializations: Sequence[str],
        project_category: str,
        requested_compensation: Optional[int] = None,
    ) -> User:
        """
        Run the eligibility checks and return the loaded auditor.

        Raises:
            NotFound: auditor does not exist
            PermissionDenied: auditor lacks the audit capability
            FailedPrecondition: inactive, uncertified or at capacity
            InvalidArgument: missing specializations or compensation too low
        """
        try:
            auditor = await self.session.get(User, auditor_id)
            if auditor is None:
                raise NotFound("Auditor not found", context={"auditor_id": str(auditor_id)})

            if not auditor.has_capability(Capability.AUDIT):
                raise PermissionDenied("User is not qualified as an auditor")

            if not auditor.is_active:
                raise FailedPrecondition("Auditor account is not active")

            missing = missing_specializations(auditor, specializations)
            if missing:
                raise InvalidArgument(
                    f"Auditor does not have required specializations: {', '.join(missing)}",
                    field="specializations",
                )

            if project_category in policy.REGULATED_CATEGORIES:
                if not has_active_certification(auditor, project_category):
                    raise FailedPrecondition(
                        f"Auditor lacks required certification for category: {project_category}"
                    )

            active_audits = await self.count_active_audits(auditor.id)
            cap = auditor.max_concurrent_audits or self.settings.audit_default_max_concurrent
            if active_audits >= cap:
                raise FailedPrecondition(
                    f"Auditor has reached maximum concurrent audits limit ({cap})"
                )

            if requested_compensation is not None:
                min_rate = auditor.min_hourly_rate or 0
                minimum = min_rate * policy.estimated_hours_for(project_category)
                if requested_compensation < minimum:
                    raise InvalidArgument(
                        f"Compensation below auditor's minimum rate. Required: {minimum}",
                        field="compensation",
                    )
        except SQLAlchemyError as exc:
            logger.exception(
                "Failed to validate auditor eligibility",
                extra={"auditor_id": str(auditor_id)},
            )
            raise Internal("Unable to validate auditor eligibility") from exc

        logger.info(
            "Auditor eligibility validated",
            extra={
                "auditor_id": str(auditor.id),
                "specializations": list(specializations),
                "project_category": project_category,
                "active_audits": active_audits,
                "max_concurrent": cap,
            },
        )
        return auditor

    async def check_conflicts_of_interest(
        self,
        auditor: User,
        project: Project,
    ) -> ConflictCheckResult:
        """
        Reject auditors who funded the project or who already audit too many
        projects of the same creator. A shared project between auditor and
        creator is logged and flagged for manual review but does not block.
        """
        if auditor.id == project.creator_id:
            raise FailedPrecondition("Auditor cannot audit their own project")

        try:
            contributed = await self.session.execute(
                select(Contribution.id)
                .where(
                    and_(
                        Contribution.project_id == project.id,
                        Contribution.contributor_id == auditor.id,
                    )
                )
                .limit(1)
            )
            if contributed.first() is not None:
                raise FailedPrecondition(
                    "Auditor cannot audit a project they have contributed to"
                )

            previous = await self.session.execute(
                select(func.count(Audit.id)).where(
                    and_(
                        Audit.auditor_id == auditor.id,
                        Audit.project_creator_id == project.creator_id,
                    )
                )
            )
            previous_audits = previous.scalar_one() or 0
            if previous_audits >= policy.MAX_AUDITS_SAME_CREATOR:
                raise FailedPrecondition(
                    f"Auditor has already audited {policy.MAX_AUDITS_SAME_CREATOR} "
                    "projects from this creator"
                )

            shared = await self._shares_project(auditor.id, project.creator_id)
        except SQLAlchemyError as exc:
            logger.exception(
                "Failed to check conflicts of interest",
                extra={"auditor_id": str(auditor.id), "project_id": str(project.id)},
            )
            raise Internal("Unable to verify conflict of interest status") from exc

        if shared:
            logger.warning(
                "Potential conflict of interest detected",
                extra={
                    "auditor_id": str(auditor.id),
                    "creator_id": str(project.creator_id),
                    "project_id": str(project.id),
                },
            )
            await EventStore(self.session).log(
                event_type=EventType.CONFLICT_OF_INTEREST_FLAGGED,
                entity_type="project",
                entity_id=project.id,
                user_id=auditor.id,
                payload={"creator_id": project.creator_id, "reason": "shared_project"},
            )

        return ConflictCheckResult(
            previous_audits_with_creator=previous_audits,
            shared_project_flagged=shared,
        )

    async def _shares_project(self, auditor_id: uuid.UUID, creator_id: uuid.UUID) -> bool:
        """Whether one of the two is a collaborator on a project the other created."""
        result = await self.session.execute(
            select(Project.creator_id, Project.collaborator_ids).where(
                or_(
                    Project.creator_id == auditor_id,
                    Project.creator_id == creator_id,
                )
            )
        )
        for owner_id, collaborators in result.all():
            members = {str(c) for c in (collaborators or [])}
            if owner_id == auditor_id and str(creator_id) in members:
                return True
            if owner_id == creator_id and str(auditor_id) in members:
                return True
        return False
