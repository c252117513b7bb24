"""
System smoke test: full API flow in-process with SQLite.

Verifies health, authentication, the escrow release endpoint and the audit
assignment/acceptance endpoints through the real app, with the payments,
notification and metrics gateways replaced by in-memory fakes.
"""

from datetime import datetime, timedelta, timezone

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from src.api.deps import get_metrics_sink, get_notification_gateway, get_transfer_gateway
from src.database import get_session_maker
from src.main import app
from tests.factories import auth_headers_for, load_ledger


@pytest_asyncio.fixture
async def client(session_maker, transfer_gateway, notifications, metrics):
    """Async client wired to the per-test database and fake gateways."""
    app.dependency_overrides[get_session_maker] = lambda: session_maker
    app.dependency_overrides[get_transfer_gateway] = lambda: transfer_gateway
    app.dependency_overrides[get_notification_gateway] = lambda: notifications
    app.dependency_overrides[get_metrics_sink] = lambda: metrics
    try:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
        ) as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()


async def test_health(client: AsyncClient):
    """Health endpoint responds."""
    r = await client.get("/health")
    assert r.status_code == 200
    data = r.json()
    assert data["status"] == "ok"
    assert "version" in data
    assert r.headers["X-Request-ID"]


async def test_request_id_echoed(client: AsyncClient):
    r = await client.get("/health", headers={"X-Request-ID": "trace-abc.123"})
    assert r.headers["X-Request-ID"] == "trace-abc.123"


async def test_release_requires_token(client: AsyncClient, escrow_project):
    r = await client.post(
        "/api/v1/escrow/releases",
        json={"releaseType": "project_completion", "projectId": str(escrow_project.id)},
    )
    assert r.status_code == 401
    assert r.json()["code"] == "UNAUTHENTICATED"
    assert r.headers["WWW-Authenticate"] == "Bearer"


async def test_garbage_token_rejected(client: AsyncClient, escrow_project):
    r = await client.post(
        "/api/v1/escrow/releases",
        json={"releaseType": "project_completion", "projectId": str(escrow_project.id)},
        headers={"Authorization": "Bearer not-a-jwt"},
    )
    assert r.status_code == 401
    assert r.json()["detail"] == "Invalid or expired token"


async def test_milestone_release(
    client: AsyncClient, session_maker, escrow_project, creator, transfer_gateway
):
    """Release a completed milestone over HTTP; the body is camelCase both ways."""
    r = await client.post(
        "/api/v1/escrow/releases",
        json={
            "releaseType": "milestone_completion",
            "projectId": str(escrow_project.id),
            "milestoneId": str(escrow_project.milestones[0].id),
        },
        headers=auth_headers_for(creator),
    )
    assert r.status_code == 200, r.text
    data = r.json()
    assert data["totalReleased"] == 5_520
    assert data["contributionsProcessed"] == 2
    assert data["successful"] == 2
    assert data["failed"] == 0
    assert {res["status"] for res in data["results"]} == {"paid"}
    assert transfer_gateway.transfers_created == 2
    assert len(await load_ledger(session_maker, escrow_project.id)) == 2


async def test_release_gate_failure_is_409(client: AsyncClient, escrow_project, creator):
    r = await client.post(
        "/api/v1/escrow/releases",
        json={
            "releaseType": "milestone_completion",
            "projectId": str(escrow_project.id),
            "milestoneId": str(escrow_project.milestones[1].id),
        },
        headers=auth_headers_for(creator),
    )
    assert r.status_code == 409
    assert r.json()["code"] == "FAILED_PRECONDITION"


async def test_invalid_body_is_invalid_argument(client: AsyncClient, escrow_project, admin):
    r = await client.post(
        "/api/v1/escrow/releases",
        json={
            "releaseType": "admin_override",
            "projectId": str(escrow_project.id),
            "releaseReason": "Board approved an early payout",
            "releasePercentage": 150,
        },
        headers=auth_headers_for(admin),
    )
    assert r.status_code == 400
    body = r.json()
    assert body["code"] == "INVALID_ARGUMENT"
    assert body["field"] == "releasePercentage"


async def test_contributor_forbidden(client: AsyncClient, escrow_project, contributors):
    r = await client.post(
        "/api/v1/escrow/releases",
        json={
            "releaseType": "milestone_completion",
            "projectId": str(escrow_project.id),
            "milestoneId": str(escrow_project.milestones[0].id),
        },
        headers=auth_headers_for(contributors[0]),
    )
    assert r.status_code == 403
    assert r.json()["code"] == "PERMISSION_DENIED"


async def test_assign_and_accept_audit(
    client: AsyncClient, escrow_project, admin, auditor, notifications
):
    """Admin assigns an auditor, the auditor accepts."""
    deadline = datetime.now(timezone.utc) + timedelta(days=30)
    r = await client.post(
        "/api/v1/audits/assignments",
        json={
            "projectId": str(escrow_project.id),
            "auditorId": str(auditor.id),
            "specializations": ["environmental"],
            "deadline": deadline.isoformat(),
            "priority": "high",
        },
        headers=auth_headers_for(admin),
    )
    assert r.status_code == 201, r.text
    assigned = r.json()
    assert assigned["status"] == "assigned"
    assert assigned["compensation"] == 120_000
    assert assigned["notificationSent"] is True
    audit_id = assigned["auditId"]

    completion = datetime.now(timezone.utc) + timedelta(days=20)
    r = await client.post(
        f"/api/v1/audits/{audit_id}/accept",
        json={
            "auditId": audit_id,
            "estimatedCompletionDate": completion.isoformat(),
            "proposedTimeline": [
                {"phase": "initial_review", "description": "Documents", "estimatedDays": 3},
                {"phase": "detailed_analysis", "description": "Site visit", "estimatedDays": 7},
                {"phase": "final_report", "description": "Report", "estimatedDays": 4},
            ],
        },
        headers=auth_headers_for(auditor),
    )
    assert r.status_code == 200, r.text
    accepted = r.json()
    assert accepted["status"] == "in_progress"
    assert accepted["workspace"]["workspaceId"] is not None
    assert "audit_accepted_creator" in notifications.templates()


async def test_accept_with_mismatched_audit_id(client: AsyncClient, escrow_project, auditor):
    other_id = str(escrow_project.id)
    r = await client.post(
        f"/api/v1/audits/{escrow_project.milestones[0].id}/accept",
        json={
            "auditId": other_id,
            "estimatedCompletionDate": (datetime.now(timezone.utc) + timedelta(days=5)).isoformat(),
        },
        headers=auth_headers_for(auditor),
    )
    assert r.status_code == 400
    assert r.json()["field"] == "auditId"
