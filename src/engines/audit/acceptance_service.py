"""
Audit acceptance: the assigned auditor moves an audit to ``in_progress``.

Checks, in order:
1. caller is the assigned auditor
2. audit is still ``assigned``
3. deadline has not passed (otherwise the audit is persisted as ``expired``)
4. auditor still holds the audit capability and is active
5. the proposed completion date and timeline fit before the deadline
"""

import math
import uuid
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import get_settings
from src.engines.audit.policy import REQUIRED_PHASES
from src.integrations.metrics import MetricsSink
from src.integrations.notifications import Notification, NotificationGateway
from src.integrations.side_effects import run_side_effects
from src.kernel.errors import FailedPrecondition, InvalidArgument, NotFound, PermissionDenied
from src.kernel.models.audit import Audit, AuditStatus, AuditWorkspace
from src.kernel.models.base import as_utc
from src.kernel.models.project import MilestoneAuditStatus, MilestoneStatus, Project
from src.kernel.models.user import Capability, User, UserRole
from src.logging_config import get_logger
from src.orchestration.state_machine import StateMachine
from src.schemas.audit import (
    AcceptanceRequest,
    AcceptanceResponse,
    CompensationSummary,
    MilestoneSummary,
    ProjectSummary,
    TimelinePhase,
    WorkspaceReference,
)

logger = get_logger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60

NEXT_STEPS = [
    "Review project documentation and milestones",
    "Set up audit workspace and timeline",
    "Begin initial project assessment",
    "Request additional resources if needed",
]


def days_until(moment: datetime, now: datetime) -> int:
    """Whole days from ``now`` to ``moment``, rounded up."""
    return math.ceil((moment - now).total_seconds() / SECONDS_PER_DAY)


def missing_phases(timeline: Sequence[TimelinePhase]) -> List[str]:
    proposed = {phase.phase for phase in timeline}
    return [phase for phase in REQUIRED_PHASES if phase not in proposed]


def validate_proposed_timeline(
    completion: datetime,
    deadline: datetime,
    timeline: Optional[Sequence[TimelinePhase]] = None,
    now: Optional[datetime] = None,
) -> int:
    """
    Validate an auditor's completion date and phased timeline.

    Returns the number of days until completion.

    Raises:
        InvalidArgument: naming the first violated rule
    """
    now = now or datetime.now(timezone.utc)
    completion = as_utc(completion)
    deadline = as_utc(deadline)

    if completion <= now:
        raise InvalidArgument(
            "Estimated completion date must be in the future",
            field="estimatedCompletionDate",
        )
    if completion >= deadline:
        raise InvalidArgument(
            "Estimated completion date must be before the audit deadline",
            field="estimatedCompletionDate",
        )

    max_days = days_until(deadline, now) - 1
    days_from_now = days_until(completion, now)
    if days_from_now > max_days:
        raise InvalidArgument(
            f"Completion date cannot be more than {max_days} days from now",
            field="estimatedCompletionDate",
        )

    if timeline:
        total_days = sum(phase.estimated_days for phase in timeline)
        if total_days > days_from_now:
            raise InvalidArgument(
                "Proposed timeline exceeds estimated completion date",
                field="proposedTimeline",
            )
        missing = missing_phases(timeline)
        if missing:
            raise InvalidArgument(
                f"Missing required phases: {', '.join(missing)}",
                field="proposedTimeline",
            )

    return days_from_now


class AuditAcceptanceService:
    """Handles an auditor accepting an assignment."""

    def __init__(
        self,
        session: AsyncSession,
        notifications: NotificationGateway,
        metrics: MetricsSink,
    ):
        self.session = session
        self.notifications = notifications
        self.metrics = metrics
        self.settings = get_settings()
        self.state_machine = StateMachine(session)

    async def accept(
        self,
        audit_id: uuid.UUID,
        request: AcceptanceRequest,
        actor: User,
    ) -> AcceptanceResponse:
        audit = await self.session.get(Audit, audit_id)
        if audit is None:
            raise NotFound("Audit not found", context={"audit_id": str(audit_id)})

        if audit.auditor_id != actor.id:
            raise PermissionDenied("You are not the assigned auditor for this audit")

        if audit.status != AuditStatus.ASSIGNED:
            raise FailedPrecondition(
                f"Audit cannot be accepted in current status: {AuditStatus(audit.status).value}"
            )

        now = datetime.now(timezone.utc)
        deadline = as_utc(audit.deadline)
        if deadline < now:
            await self._expire(audit)
            raise FailedPrecondition("Audit assignment has expired")

        if not actor.has_capability(Capability.AUDIT):
            raise PermissionDenied("Auditor permissions have been revoked")
        if not actor.is_active:
            raise FailedPrecondition("Auditor account is not active")

        validate_proposed_timeline(
            request.estimated_completion_date,
            deadline,
            request.proposed_timeline,
            now=now,
        )

        project = await self.session.get(Project, audit.project_id)
        if project is None:
            raise NotFound("Project not found", context={"project_id": str(audit.project_id)})

        audit.estimated_completion = request.estimated_completion_date
        audit.acceptance_note = request.acceptance_note or ""
        audit.proposed_timeline = [
            phase.model_dump() for phase in request.proposed_timeline or []
        ]
        audit.requested_resources = [
            resource.model_dump() for resource in request.requested_resources or []
        ]
        await self.state_machine.transition_audit(
            audit,
            AuditStatus.IN_PROGRESS,
            user_id=actor.id,
            user_role=UserRole.AUDITOR,
            payload={"estimated_completion": request.estimated_completion_date},
        )

        milestone = project.find_milestone(audit.milestone_id) if audit.milestone_id else None
        if milestone is not None and milestone.audit_required:
            milestone.audit_status = MilestoneAuditStatus.IN_PROGRESS

        await self.session.commit()

        logger.info(
            "Audit accepted by auditor",
            extra={
                "audit_id": str(audit.id),
                "project_id": str(audit.project_id),
                "auditor_id": str(actor.id),
                "estimated_completion": request.estimated_completion_date.isoformat(),
                "has_timeline": bool(request.proposed_timeline),
            },
        )

        # Built before the workspace write, whose rollback would expire these rows
        response = AcceptanceResponse(
            audit_id=audit.id,
            status=AuditStatus.IN_PROGRESS,
            accepted_at=audit.accepted_at,
            deadline=deadline,
            estimated_completion=request.estimated_completion_date,
            project=ProjectSummary(
                id=project.id,
                title=project.title,
                category=project.category,
                milestones=[
                    MilestoneSummary(
                        id=m.id,
                        title=m.title,
                        status=MilestoneStatus(m.status).value,
                        funding_percentage=m.funding_percentage,
                    )
                    for m in project.milestones
                ],
            ),
            compensation=CompensationSummary(
                amount=audit.compensation_amount,
                currency=audit.compensation_currency,
                terms=audit.compensation_terms,
            ),
            workspace=WorkspaceReference(
                url=f"{self.settings.frontend_url}/auditor/workspace/{audit.id}",
                documents_required=len(audit.required_documents or []),
                milestones_to_review=len(project.milestones),
            ),
            next_steps=list(NEXT_STEPS),
        )
        notifications = [
            self._creator_notification(audit, project),
            self._auditor_confirmation(audit, project, actor),
        ]
        acceptance_hours = round(
            (audit.accepted_at - as_utc(audit.assigned_at)).total_seconds() / 3600
        )
        category = project.category
        auditor_id = actor.id

        workspace_id = await self._initialize_workspace(audit, project)
        response.workspace.workspace_id = workspace_id

        await run_side_effects(
            {
                "notify_creator": self.notifications.send(notifications[0]),
                "notify_auditor": self.notifications.send(notifications[1]),
                "metrics": self._record_metrics(
                    response.audit_id, auditor_id, category, acceptance_hours
                ),
            },
            extra={"audit_id": str(response.audit_id)},
        )
        return response

    async def _expire(self, audit: Audit) -> None:
        """Persist the expiry before the acceptance is refused."""
        await self.state_machine.transition_audit(
            audit,
            AuditStatus.EXPIRED,
            user_id=None,
            user_role=None,
            payload={"deadline": audit.deadline},
        )
        await self.session.commit()
        logger.info("Audit assignment expired", extra={"audit_id": str(audit.id)})

    async def _initialize_workspace(self, audit: Audit, project: Project) -> Optional[uuid.UUID]:
        """Create the auditor's workspace. Failure leaves the audit accepted."""
        audit_id = audit.id
        try:
            workspace = AuditWorkspace(
                id=uuid.uuid4(),
                audit_id=audit_id,
                project_id=project.id,
                auditor_id=audit.auditor_id,
                documents={
                    "required": list(audit.required_documents or []),
                    "requested": list(audit.requested_resources or []),
                    "uploaded": [],
                },
                milestone_reviews=[
                    {
                        "milestone_id": str(m.id),
                        "title": m.title,
                        "review_status": "pending",
                        "notes": "",
                    }
                    for m in project.milestones
                ],
                checklist=[
                    {
                        "criterion_id": criterion.get("id"),
                        "name": criterion.get("name"),
                        "completed": False,
                        "score": None,
                        "notes": "",
                    }
                    for criterion in audit.criteria or []
                ],
            )
            self.session.add(workspace)
            await self.session.commit()
        except SQLAlchemyError:
            logger.exception("Failed to initialize audit workspace", extra={"audit_id": str(audit_id)})
            await self.session.rollback()
            return None
        return workspace.id

    def _creator_notification(self, audit: Audit, project: Project) -> Notification:
        return Notification(
            recipient_id=str(project.creator_id),
            template="audit_accepted_creator",
            data={
                "audit_id": str(audit.id),
                "project_title": project.title,
                "specializations": audit.specializations,
                "estimated_completion": audit.estimated_completion.isoformat(),
                "deadline": as_utc(audit.deadline).isoformat(),
            },
        )

    def _auditor_confirmation(self, audit: Audit, project: Project, auditor: User) -> Notification:
        return Notification(
            recipient_id=str(auditor.id),
            recipient_email=auditor.email,
            template="audit_acceptance_confirmation",
            data={
                "audit_id": str(audit.id),
                "project_title": project.title,
                "compensation": audit.compensation_amount,
                "currency": audit.compensation_currency,
                "workspace_url": f"{self.settings.frontend_url}/auditor/workspace/{audit.id}",
            },
        )

    async def _record_metrics(
        self,
        audit_id: uuid.UUID,
        auditor_id: uuid.UUID,
        category: str,
        acceptance_hours: int,
    ) -> None:
        await self.metrics.record("audits.accepted", tags={"category": category})
        await self.metrics.record(
            "audits.acceptance_time_hours",
            value=acceptance_hours,
            tags={"auditor_id": str(auditor_id), "audit_id": str(audit_id)},
        )
