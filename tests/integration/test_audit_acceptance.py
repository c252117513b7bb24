"""Integration tests for auditors accepting assignments and recording outcomes."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from src.engines.audit.acceptance_service import AuditAcceptanceService
from src.engines.audit.outcome_service import AuditOutcomeService
from src.engines.escrow.release_service import EscrowReleaseService
from src.kernel.events.event_store import EventStore
from src.kernel.errors import FailedPrecondition, InvalidArgument, PermissionDenied
from src.kernel.models import (
    AuditStatus,
    AuditWorkspace,
    Capability,
    EventType,
    MilestoneAuditStatus,
    MilestoneStatus,
    ReleaseType,
    UserRole,
)
from src.schemas.audit import AcceptanceRequest, TimelinePhase
from src.schemas.escrow import ReleaseRequest
from tests.factories import (
    load_events,
    make_audit,
    make_contribution,
    make_project,
    make_user,
)

FULL_TIMELINE = [
    TimelinePhase(phase="initial_review", description="Read the documentation", estimated_days=3),
    TimelinePhase(phase="detailed_analysis", description="Site visit and ledgers", estimated_days=7),
    TimelinePhase(phase="final_report", description="Write up findings", estimated_days=4),
]


def acceptance(days=20, timeline=FULL_TIMELINE, **fields) -> AcceptanceRequest:
    return AcceptanceRequest(
        estimated_completion_date=datetime.now(timezone.utc) + timedelta(days=days),
        proposed_timeline=timeline,
        **fields,
    )


@pytest.fixture
async def project(db_session, creator):
    return await make_project(
        db_session,
        creator,
        milestones=[
            {
                "title": "Site preparation",
                "funding_percentage": 40,
                "status": MilestoneStatus.COMPLETED,
                "audit_status": MilestoneAuditStatus.ASSIGNED,
            },
            {"title": "Planting", "funding_percentage": 60},
        ],
    )


@pytest.fixture
async def audit(db_session, project, auditor, admin):
    return await make_audit(db_session, project, auditor, admin, milestone=project.milestones[0])


@pytest.fixture
def service(db_session, notifications, metrics):
    return AuditAcceptanceService(db_session, notifications, metrics)


class TestAcceptance:

    async def test_accept_moves_audit_in_progress(
        self, service, db_session, session_maker, audit, project, auditor
    ):
        response = await service.accept(
            audit.id, acceptance(acceptance_note="Happy to take this on"), auditor
        )

        assert response.status == AuditStatus.IN_PROGRESS
        assert response.compensation.amount == 120_000
        assert response.compensation.terms == "payment_on_completion"
        assert response.project.title == project.title
        assert len(response.project.milestones) == 2
        assert response.workspace.workspace_id is not None
        assert response.workspace.documents_required == 2
        assert response.workspace.url.endswith(f"/auditor/workspace/{audit.id}")
        assert len(response.next_steps) == 4

        await db_session.refresh(audit)
        assert audit.status == AuditStatus.IN_PROGRESS
        assert audit.accepted_at is not None
        assert audit.acceptance_note == "Happy to take this on"
        assert [p["phase"] for p in audit.proposed_timeline] == [
            "initial_review", "detailed_analysis", "final_report",
        ]
        assert audit.version == 2
        assert project.milestones[0].audit_status == MilestoneAuditStatus.IN_PROGRESS

        events = await load_events(session_maker, EventType.AUDIT_ACCEPTED)
        assert len(events) == 1
        assert events[0].payload["from_state"] == "assigned"

    async def test_workspace_initialized(self, service, db_session, audit, auditor):
        response = await service.accept(audit.id, acceptance(), auditor)

        rows = await db_session.execute(
            select(AuditWorkspace).where(AuditWorkspace.audit_id == audit.id)
        )
        workspace = rows.scalar_one()
        assert workspace.id == response.workspace.workspace_id
        assert workspace.documents["required"] == ["impact_report", "site_photos"]
        assert [r["title"] for r in workspace.milestone_reviews] == ["Site preparation", "Planting"]
        assert workspace.checklist[0]["criterion_id"] == "deliverables_quality"
        assert workspace.checklist[0]["completed"] is False

    async def test_notifications_and_metrics(
        self, service, audit, auditor, creator, notifications, metrics
    ):
        await service.accept(audit.id, acceptance(), auditor)

        assert sorted(notifications.templates()) == [
            "audit_acceptance_confirmation",
            "audit_accepted_creator",
        ]
        to_creator = next(n for n in notifications.sent if n.template == "audit_accepted_creator")
        assert to_creator.recipient_id == str(creator.id)
        assert "audits.accepted" in metrics.names()
        hours = next(p for p in metrics.points if p[0] == "audits.acceptance_time_hours")
        assert hours[1] == 2

    async def test_audit_history_records_acceptance(self, service, db_session, audit, auditor):
        await service.accept(audit.id, acceptance(), auditor)

        history = await EventStore(db_session).get_entity_history("audit", audit.id)

        assert [event.event_type for event in history] == [EventType.AUDIT_ACCEPTED]
        assert history[0].payload["to_state"] == "in_progress"

    async def test_without_timeline(self, service, audit, auditor):
        response = await service.accept(audit.id, acceptance(days=5, timeline=None), auditor)
        assert response.status == AuditStatus.IN_PROGRESS


class TestAcceptanceRejections:

    async def test_wrong_auditor(self, service, db_session, audit):
        other = await make_user(
            db_session,
            UserRole.AUDITOR,
            capabilities=[Capability.AUDIT],
            specializations=["environmental"],
        )
        with pytest.raises(PermissionDenied, match="not the assigned auditor"):
            await service.accept(audit.id, acceptance(), other)

    async def test_already_in_progress(self, service, db_session, project, auditor, admin):
        started = await make_audit(db_session, project, auditor, admin, status=AuditStatus.IN_PROGRESS)
        with pytest.raises(FailedPrecondition, match="current status: in_progress"):
            await service.accept(started.id, acceptance(), auditor)

    async def test_expired_assignment_is_persisted(
        self, service, db_session, session_maker, project, auditor, admin
    ):
        stale = await make_audit(
            db_session,
            project,
            auditor,
            admin,
            deadline=datetime.now(timezone.utc) - timedelta(hours=1),
        )

        with pytest.raises(FailedPrecondition, match="expired"):
            await service.accept(stale.id, acceptance(), auditor)

        await db_session.refresh(stale)
        assert stale.status == AuditStatus.EXPIRED
        assert len(await load_events(session_maker, EventType.AUDIT_EXPIRED)) == 1

    async def test_revoked_capability(self, service, db_session, audit, auditor):
        auditor.capabilities = []
        await db_session.commit()

        with pytest.raises(PermissionDenied, match="revoked"):
            await service.accept(audit.id, acceptance(), auditor)

    async def test_completion_on_deadline(self, service, audit, auditor):
        request = AcceptanceRequest(estimated_completion_date=audit.deadline)
        with pytest.raises(InvalidArgument, match="must be before the audit deadline"):
            await service.accept(audit.id, request, auditor)

    async def test_missing_final_report_phase(self, service, audit, auditor):
        with pytest.raises(InvalidArgument, match="Missing required phases: final_report"):
            await service.accept(audit.id, acceptance(timeline=FULL_TIMELINE[:2]), auditor)

    async def test_timeline_longer_than_completion(self, service, audit, auditor):
        with pytest.raises(InvalidArgument, match="exceeds estimated completion"):
            await service.accept(audit.id, acceptance(days=10), auditor)

    async def test_rejection_leaves_audit_assigned(self, service, db_session, audit, auditor):
        with pytest.raises(InvalidArgument):
            await service.accept(audit.id, acceptance(timeline=FULL_TIMELINE[:1]), auditor)
        await db_session.refresh(audit)
        assert audit.status == AuditStatus.ASSIGNED


class TestOutcome:
    """Recording the verdict, which feeds the escrow release gate."""

    async def test_approval_unlocks_milestone_release(
        self,
        service,
        db_session,
        session_maker,
        project,
        audit,
        auditor,
        creator,
        contributors,
        transfer_gateway,
        notifications,
        metrics,
    ):
        m1 = project.milestones[0]
        await make_contribution(db_session, project, contributors[0], 10_000, [(m1, 4_000)])
        release = EscrowReleaseService(session_maker, transfer_gateway, notifications, metrics)
        request = ReleaseRequest(
            release_type=ReleaseType.MILESTONE_COMPLETION,
            project_id=project.id,
            milestone_id=m1.id,
        )
        with pytest.raises(FailedPrecondition):
            await release.release(request, creator)

        await service.accept(audit.id, acceptance(), auditor)
        recorded = await AuditOutcomeService(db_session).record_outcome(
            audit.id, approved=True, actor=auditor, summary="Deliverables verified on site"
        )
        await db_session.commit()

        assert recorded.status == AuditStatus.COMPLETED
        assert recorded.compensation_status == "due"
        assert m1.audit_status == MilestoneAuditStatus.APPROVED

        response = await release.release(request, creator)
        assert response.total_released == 4_000

    async def test_rejection_marks_milestone_rejected(
        self, service, db_session, project, audit, auditor, admin
    ):
        await service.accept(audit.id, acceptance(), auditor)

        recorded = await AuditOutcomeService(db_session).record_outcome(audit.id, False, admin)

        assert recorded.status == AuditStatus.REJECTED
        assert project.milestones[0].audit_status == MilestoneAuditStatus.REJECTED

    async def test_outsider_cannot_record(self, db_session, audit, creator):
        with pytest.raises(PermissionDenied):
            await AuditOutcomeService(db_session).record_outcome(audit.id, True, creator)

    async def test_outcome_requires_accepted_audit(self, db_session, audit, auditor):
        with pytest.raises(FailedPrecondition, match="Invalid audit transition"):
            await AuditOutcomeService(db_session).record_outcome(audit.id, True, auditor)
