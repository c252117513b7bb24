"""
Audit assignment: admin assigns a qualified auditor to a project.

Flow: caller permission -> project status -> auditor eligibility ->
conflict of interest -> compensation -> audit created in ``assigned``.
Notification and metrics run after commit and never fail the assignment.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.config import get_settings
from src.engines.audit import policy
from src.engines.audit.compensation import CompensationCalculator
from src.engines.audit.eligibility import AuditEligibilityValidator
from src.integrations.metrics import MetricsSink
from src.integrations.notifications import Notification, NotificationGateway
from src.integrations.side_effects import run_side_effects
from src.kernel.errors import FailedPrecondition, NotFound
from src.kernel.events.event_store import EventStore
from src.kernel.models.audit import Audit, AuditStatus
from src.kernel.models.event_log import EventType
from src.kernel.models.project import (
    Milestone,
    MilestoneAuditStatus,
    MilestoneStatus,
    Project,
    ProjectStatus,
)
from src.kernel.models.user import User
from src.kernel.permissions.permission_service import PermissionService
from src.logging_config import get_logger
from src.schemas.audit import AssignmentRequest, AssignmentResponse

logger = get_logger(__name__)

ASSIGNABLE_PROJECT_STATUSES = frozenset({
    ProjectStatus.ACTIVE,
    ProjectStatus.FUNDING,
    ProjectStatus.FUNDING_COMPLETE,
})


def select_milestone_for_audit(project: Project) -> Optional[Milestone]:
    """
    The milestone a new audit gates: the first completed milestone that
    requires audit, else the first milestone requiring audit, else the first.
    """
    requiring = [m for m in project.milestones if m.audit_required]
    for milestone in requiring:
        if milestone.status == MilestoneStatus.COMPLETED:
            return milestone
    if requiring:
        return requiring[0]
    return project.milestones[0] if project.milestones else None


class AuditAssignmentService:
    """Creates audit assignments."""

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
        self.permissions = PermissionService(session)
        self.eligibility = AuditEligibilityValidator(session)
        self.event_store = EventStore(session)

    async def assign(self, request: AssignmentRequest, actor: User) -> AssignmentResponse:
        self.permissions.check_assignment_permission(actor)

        project = await self.session.get(Project, request.project_id)
        if project is None:
            raise NotFound("Project not found", context={"project_id": str(request.project_id)})
        if ProjectStatus(project.status) not in ASSIGNABLE_PROJECT_STATUSES:
            raise FailedPrecondition(
                "Project must be active or funding to assign an auditor"
            )

        auditor = await self.eligibility.validate(
            request.auditor_id,
            request.specializations,
            project.category,
            request.compensation,
        )
        await self.eligibility.check_conflicts_of_interest(auditor, project)

        compensation = CompensationCalculator.calculate(
            project.category,
            request.specializations,
            project.funding_goal,
            hourly_rate=auditor.hourly_rate,
            requested=request.compensation,
        )
        estimated_hours = policy.estimated_hours_for(project.category)

        now = datetime.now(timezone.utc)
        milestone = select_milestone_for_audit(project)

        audit = Audit(
            project_id=project.id,
            milestone_id=milestone.id if milestone else None,
            project_creator_id=project.creator_id,
            project_category=project.category,
            auditor_id=auditor.id,
            status=AuditStatus.ASSIGNED,
            specializations=list(request.specializations),
            priority=request.priority,
            estimated_hours=estimated_hours,
            assigned_at=now,
            deadline=request.deadline,
            estimated_completion=request.deadline - timedelta(days=1),
            compensation_amount=compensation,
            compensation_currency=self.settings.audit_compensation_currency,
            compensation_terms="payment_on_completion",
            compensation_status="pending",
            criteria=policy.criteria_for(project.category),
            required_documents=policy.required_documents_for(project.category),
            assigned_by=actor.id,
            assignment_notes=request.assignment_notes,
            version=1,
        )
        self.session.add(audit)

        if milestone is not None and milestone.audit_required:
            milestone.audit_status = MilestoneAuditStatus.ASSIGNED

        await self.session.flush()

        await self.event_store.log(
            event_type=EventType.AUDIT_ASSIGNED,
            entity_type="audit",
            entity_id=audit.id,
            user_id=actor.id,
            payload={
                "project_id": project.id,
                "milestone_id": audit.milestone_id,
                "auditor_id": auditor.id,
                "specializations": audit.specializations,
                "compensation": compensation,
                "auto_calculated_compensation": request.compensation is None,
                "deadline": request.deadline,
                "priority": request.priority,
            },
        )
        await self.session.commit()

        logger.info(
            "Auditor assigned to project",
            extra={
                "audit_id": str(audit.id),
                "project_id": str(project.id),
                "auditor_id": str(auditor.id),
                "assigned_by": str(actor.id),
                "compensation": compensation,
            },
        )

        outcomes = await run_side_effects(
            {
                "notify_auditor": self.notifications.send(
                    self._assignment_notification(audit, auditor, project)
                ),
                "metrics": self._record_metrics(audit, project),
            },
            extra={"audit_id": str(audit.id)},
        )

        return AssignmentResponse(
            audit_id=audit.id,
            project_id=project.id,
            auditor_id=auditor.id,
            milestone_id=audit.milestone_id,
            assigned_at=now,
            deadline=request.deadline,
            status=AuditStatus.ASSIGNED,
            compensation=compensation,
            compensation_currency=audit.compensation_currency,
            estimated_hours=estimated_hours,
            specializations=audit.specializations,
            priority=request.priority,
            notification_sent=outcomes["notify_auditor"],
        )

    def _assignment_notification(self, audit: Audit, auditor: User, project: Project) -> Notification:
        frontend = self.settings.frontend_url
        days_until_deadline = max(
            0, (audit.deadline - datetime.now(timezone.utc)).days + 1
        )
        return Notification(
            recipient_id=str(auditor.id),
            recipient_email=auditor.email,
            template="auditor_assignment",
            data={
                "audit_id": str(audit.id),
                "project_id": str(project.id),
                "project_title": project.title,
                "project_category": project.category,
                "deadline": audit.deadline.isoformat(),
                "compensation": audit.compensation_amount,
                "currency": audit.compensation_currency,
                "specializations": audit.specializations,
                "estimated_hours": audit.estimated_hours,
                "days_until_deadline": days_until_deadline,
                "accept_url": f"{frontend}/auditor/assignments/{audit.id}/accept",
            },
        )

    async def _record_metrics(self, audit: Audit, project: Project) -> None:
        await self.metrics.record("audits.assigned", tags={"category": project.category})
        await self.metrics.record("auditor.assigned", tags={"auditor_id": str(audit.auditor_id)})
        for specialization in audit.specializations:
            await self.metrics.record(
                "audits.assigned_by_specialization",
                tags={"specialization": specialization},
            )
