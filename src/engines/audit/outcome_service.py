"""
Audit outcome: records the verdict of a submitted audit report.

The verdict moves the audit to ``completed`` (milestone approved) or
``rejected`` and sets the gated milestone's audit status, which the escrow
release gate reads.
"""

import uuid
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.kernel.errors import NotFound, PermissionDenied
from src.kernel.models.audit import Audit, AuditStatus
from src.kernel.models.project import Milestone, MilestoneAuditStatus
from src.kernel.models.user import User, UserRole
from src.kernel.permissions.permission_service import has_admin_access
from src.logging_config import get_logger
from src.orchestration.state_machine import StateMachine

logger = get_logger(__name__)


class AuditOutcomeService:
    """Applies an audit verdict to the audit and its milestone."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.state_machine = StateMachine(session)

    async def record_outcome(
        self,
        audit_id: uuid.UUID,
        approved: bool,
        actor: User,
        summary: Optional[str] = None,
    ) -> Audit:
        audit = await self.session.get(Audit, audit_id)
        if audit is None:
            raise NotFound("Audit not found", context={"audit_id": str(audit_id)})

        if audit.auditor_id == actor.id:
            role = UserRole.AUDITOR
        elif has_admin_access(actor):
            role = UserRole.ADMIN
        else:
            raise PermissionDenied("Only the assigned auditor or an admin may record the outcome")

        target = AuditStatus.COMPLETED if approved else AuditStatus.REJECTED
        await self.state_machine.transition_audit(
            audit,
            target,
            user_id=actor.id,
            user_role=role,
            payload={"approved": approved, "summary": summary},
        )
        audit.compensation_status = "due"

        if audit.milestone_id is not None:
            milestone = await self.session.get(Milestone, audit.milestone_id)
            if milestone is not None:
                milestone.audit_status = (
                    MilestoneAuditStatus.APPROVED if approved else MilestoneAuditStatus.REJECTED
                )

        await self.session.flush()

        logger.info(
            "Audit outcome recorded",
            extra={
                "audit_id": str(audit.id),
                "milestone_id": str(audit.milestone_id) if audit.milestone_id else None,
                "approved": approved,
            },
        )
        return audit
