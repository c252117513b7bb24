"""Integration tests for assigning auditors to projects."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from src.engines.audit.assignment_service import AuditAssignmentService
from src.kernel.errors import FailedPrecondition, InvalidArgument, NotFound, PermissionDenied
from src.kernel.models import (
    Audit,
    AuditStatus,
    Capability,
    EventType,
    MilestoneAuditStatus,
    ProjectStatus,
    UserRole,
)
from src.schemas.audit import AssignmentRequest
from tests.factories import (
    RecordingMetricsSink,
    RecordingNotificationGateway,
    load_events,
    make_audit,
    make_contribution,
    make_project,
    make_user,
)


def assignment(project, auditor, **fields) -> AssignmentRequest:
    fields.setdefault("specializations", ["environmental"])
    fields.setdefault("deadline", datetime.now(timezone.utc) + timedelta(days=21))
    return AssignmentRequest(project_id=project.id, auditor_id=auditor.id, **fields)


@pytest.fixture
async def project(db_session, creator):
    return await make_project(
        db_session,
        creator,
        milestones=[
            {"title": "Site preparation", "funding_percentage": 40},
            {"title": "Planting", "funding_percentage": 60},
        ],
    )


@pytest.fixture
def service(db_session, notifications, metrics):
    return AuditAssignmentService(db_session, notifications, metrics)


class TestAssignment:

    async def test_assigns_with_computed_compensation(
        self, service, db_session, session_maker, project, auditor, admin
    ):
        response = await service.assign(assignment(project, auditor), admin)

        assert response.status == AuditStatus.ASSIGNED
        assert response.compensation == 7_500 * 16
        assert response.compensation_currency == "EUR"
        assert response.estimated_hours == 16
        assert response.milestone_id == project.milestones[0].id
        assert response.notification_sent is True

        audit = await db_session.get(Audit, response.audit_id)
        assert audit.auditor_id == auditor.id
        assert audit.project_creator_id == project.creator_id
        assert audit.required_documents == ["impact_report", "site_photos"]
        assert any(c["id"] == "environmental_impact" for c in audit.criteria)
        assert project.milestones[0].audit_status == MilestoneAuditStatus.ASSIGNED

        events = await load_events(session_maker, EventType.AUDIT_ASSIGNED)
        assert len(events) == 1
        assert events[0].payload["auto_calculated_compensation"] is True

    async def test_requested_compensation_used(self, service, project, auditor, admin):
        response = await service.assign(assignment(project, auditor, compensation=95_000), admin)
        assert response.compensation == 95_000

    async def test_notification_and_metrics(
        self, service, project, auditor, admin, notifications, metrics
    ):
        await service.assign(
            assignment(project, auditor, specializations=["environmental", "technical"]), admin
        )

        assert notifications.templates() == ["auditor_assignment"]
        notice = notifications.sent[0]
        assert notice.recipient_id == str(auditor.id)
        assert notice.data["compensation"] == 138_000
        assert metrics.names().count("audits.assigned_by_specialization") == 2

    async def test_notification_failure_reported_not_raised(
        self, db_session, project, auditor, admin
    ):
        service = AuditAssignmentService(
            db_session, RecordingNotificationGateway(fail=True), RecordingMetricsSink()
        )

        response = await service.assign(assignment(project, auditor), admin)

        assert response.notification_sent is False
        assert (await db_session.get(Audit, response.audit_id)) is not None

    async def test_coordinator_capability_may_assign(self, service, db_session, project, auditor):
        coordinator = await make_user(
            db_session, UserRole.CONTRIBUTOR, capabilities=[Capability.ASSIGN_AUDITORS]
        )
        response = await service.assign(assignment(project, auditor), coordinator)
        assert response.status == AuditStatus.ASSIGNED

    async def test_project_without_milestones(self, service, db_session, creator, auditor, admin):
        bare = await make_project(db_session, creator)

        response = await service.assign(assignment(bare, auditor), admin)

        assert response.milestone_id is None
        audit = await db_session.get(Audit, response.audit_id)
        assert audit.milestone_id is None


class TestAssignmentRejections:

    async def test_non_admin_denied(self, service, project, auditor, creator):
        with pytest.raises(PermissionDenied):
            await service.assign(assignment(project, auditor), creator)

    async def test_unknown_project(self, service, project, auditor, admin):
        request = assignment(project, auditor)
        request.project_id = auditor.id
        with pytest.raises(NotFound, match="Project not found"):
            await service.assign(request, admin)

    @pytest.mark.parametrize("status", [ProjectStatus.DRAFT, ProjectStatus.COMPLETED])
    async def test_project_not_assignable(self, service, db_session, creator, auditor, admin, status):
        project = await make_project(db_session, creator, status=status)
        with pytest.raises(FailedPrecondition, match="must be active or funding"):
            await service.assign(assignment(project, auditor), admin)

    async def test_user_without_audit_capability(self, service, db_session, project, admin):
        not_an_auditor = await make_user(db_session, UserRole.CONTRIBUTOR)
        with pytest.raises(PermissionDenied, match="not qualified"):
            await service.assign(assignment(project, not_an_auditor), admin)

    async def test_missing_specialization(self, service, project, auditor, admin):
        with pytest.raises(InvalidArgument, match="legal") as exc:
            await service.assign(
                assignment(project, auditor, specializations=["environmental", "legal"]), admin
            )
        assert exc.value.field == "specializations"

    async def test_regulated_category_needs_certification(
        self, service, db_session, creator, auditor, admin
    ):
        project = await make_project(db_session, creator, category="health")
        with pytest.raises(FailedPrecondition, match="certification for category: health"):
            await service.assign(assignment(project, auditor), admin)

    async def test_regulated_category_with_certification(
        self, service, db_session, creator, auditor, admin
    ):
        project = await make_project(db_session, creator, category="finance")
        response = await service.assign(
            assignment(project, auditor, specializations=["financial"]), admin
        )
        assert response.compensation == 270_000

    async def test_concurrent_audit_cap(self, service, db_session, creator, project, admin):
        busy = await make_user(
            db_session,
            UserRole.AUDITOR,
            capabilities=[Capability.AUDIT],
            specializations=["environmental"],
            max_concurrent_audits=1,
        )
        other = await make_project(db_session, creator)
        await make_audit(db_session, other, busy, admin, status=AuditStatus.IN_PROGRESS)

        with pytest.raises(FailedPrecondition, match=r"concurrent audits limit \(1\)"):
            await service.assign(assignment(project, busy), admin)

    async def test_compensation_below_minimum_rate(self, service, db_session, project, admin):
        pricey = await make_user(
            db_session,
            UserRole.AUDITOR,
            capabilities=[Capability.AUDIT],
            specializations=["environmental"],
            min_hourly_rate=10_000,
        )
        with pytest.raises(InvalidArgument, match="Required: 160000"):
            await service.assign(assignment(project, pricey, compensation=100_000), admin)


class TestConflictsOfInterest:

    async def test_own_project(self, service, db_session, admin):
        auditing_creator = await make_user(
            db_session,
            UserRole.CREATOR,
            capabilities=[Capability.AUDIT],
            specializations=["environmental"],
        )
        project = await make_project(db_session, auditing_creator)

        with pytest.raises(FailedPrecondition, match="their own project"):
            await service.assign(assignment(project, auditing_creator), admin)

    async def test_contributor_to_project(self, service, db_session, project, auditor, admin):
        await make_contribution(db_session, project, auditor, 1_000, [])
        with pytest.raises(FailedPrecondition, match="contributed to"):
            await service.assign(assignment(project, auditor), admin)

    async def test_too_many_audits_for_same_creator(
        self, service, db_session, creator, project, auditor, admin
    ):
        for _ in range(3):
            earlier = await make_project(db_session, creator)
            await make_audit(db_session, earlier, auditor, admin, status=AuditStatus.COMPLETED)

        with pytest.raises(FailedPrecondition, match="already audited 3 projects"):
            await service.assign(assignment(project, auditor), admin)

    async def test_two_previous_audits_allowed(
        self, service, db_session, creator, project, auditor, admin
    ):
        for _ in range(2):
            earlier = await make_project(db_session, creator)
            await make_audit(db_session, earlier, auditor, admin, status=AuditStatus.COMPLETED)

        response = await service.assign(assignment(project, auditor), admin)
        assert response.status == AuditStatus.ASSIGNED

    async def test_shared_project_flagged_not_blocked(
        self, service, db_session, session_maker, creator, project, auditor, admin
    ):
        await make_project(db_session, creator, collaborator_ids=[str(auditor.id)])

        response = await service.assign(assignment(project, auditor), admin)

        assert response.status == AuditStatus.ASSIGNED
        flagged = await load_events(session_maker, EventType.CONFLICT_OF_INTEREST_FLAGGED)
        assert len(flagged) == 1
        assert flagged[0].entity_id == project.id

    async def test_no_audit_created_on_rejection(self, service, db_session, project, auditor, creator):
        with pytest.raises(PermissionDenied):
            await service.assign(assignment(project, auditor), creator)
        rows = await db_session.execute(select(Audit).where(Audit.project_id == project.id))
        assert rows.scalars().all() == []
