"""
Audit assignment and acceptance endpoints.
"""

import uuid

from fastapi import APIRouter, status

from src.api.deps import CurrentUser, DbSession, Metrics, Notifications
from src.engines.audit.acceptance_service import AuditAcceptanceService
from src.engines.audit.assignment_service import AuditAssignmentService
from src.kernel.errors import InvalidArgument
from src.schemas.audit import (
    AcceptanceRequest,
    AcceptanceResponse,
    AssignmentRequest,
    AssignmentResponse,
)

router = APIRouter()


@router.post(
    "/assignments",
    response_model=AssignmentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def assign_auditor(
    data: AssignmentRequest,
    user: CurrentUser,
    db: DbSession,
    notifications: Notifications,
    metrics: Metrics,
):
    """Assign a qualified auditor to a project."""
    service = AuditAssignmentService(db, notifications, metrics)
    return await service.assign(data, user)


@router.post("/{audit_id}/accept", response_model=AcceptanceResponse)
async def accept_audit(
    audit_id: uuid.UUID,
    data: AcceptanceRequest,
    user: CurrentUser,
    db: DbSession,
    notifications: Notifications,
    metrics: Metrics,
):
    """Accept an assigned audit as its auditor."""
    if data.audit_id is not None and data.audit_id != audit_id:
        raise InvalidArgument("auditId does not match the audit in the path", field="auditId")
    service = AuditAcceptanceService(db, notifications, metrics)
    return await service.accept(audit_id, data, user)
