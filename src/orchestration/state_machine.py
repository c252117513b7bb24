"""
State machine for the Audit lifecycle.

assigned -> in_progress -> completed | rejected
assigned -> expired

Valid transitions and who may trigger them are defined here. Every
transition is logged to the event store.
"""

import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional, Set, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from src.kernel.errors import FailedPrecondition, PermissionDenied
from src.kernel.events.event_store import EventStore
from src.kernel.models.audit import Audit, AuditStatus
from src.kernel.models.event_log import EventType
from src.kernel.models.user import UserRole


# System-driven transitions carry no actor role
SYSTEM = None

# Valid transitions: (from_state, to_state) -> roles that may trigger
_TRANSITIONS: Dict[Tuple[str, str], Set[Optional[UserRole]]] = {
    # Auditor accepts the assignment
    (AuditStatus.ASSIGNED.value, AuditStatus.IN_PROGRESS.value): {UserRole.AUDITOR},
    # Deadline passed before acceptance
    (AuditStatus.ASSIGNED.value, AuditStatus.EXPIRED.value): {SYSTEM, UserRole.ADMIN},
    # Report submission outcome
    (AuditStatus.IN_PROGRESS.value, AuditStatus.COMPLETED.value): {UserRole.AUDITOR, UserRole.ADMIN},
    (AuditStatus.IN_PROGRESS.value, AuditStatus.REJECTED.value): {UserRole.AUDITOR, UserRole.ADMIN},
}

_EVENT_FOR_TARGET = {
    AuditStatus.IN_PROGRESS.value: EventType.AUDIT_ACCEPTED,
    AuditStatus.EXPIRED.value: EventType.AUDIT_EXPIRED,
    AuditStatus.COMPLETED.value: EventType.AUDIT_COMPLETED,
    AuditStatus.REJECTED.value: EventType.AUDIT_REJECTED,
}

TERMINAL_STATES = frozenset({
    AuditStatus.COMPLETED.value,
    AuditStatus.REJECTED.value,
    AuditStatus.EXPIRED.value,
})


def _state_value(state) -> str:
    return state.value if hasattr(state, "value") else str(state)


def valid_transitions(from_state: str) -> List[str]:
    """Return list of valid target states from given state."""
    return sorted({t for (f, t) in _TRANSITIONS if f == from_state})


def can_transition(
    actor_role: Optional[UserRole],
    from_state: str,
    to_state: str,
) -> bool:
    """Check if actor with given role (None for the system) may transition."""
    allowed = _TRANSITIONS.get((from_state, to_state))
    if allowed is None:
        return False
    return actor_role in allowed


class StateMachine:
    """Service for performing audit transitions with event logging."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.event_store = EventStore(session)

    async def transition_audit(
        self,
        audit: Audit,
        to_state: AuditStatus,
        user_id: Optional[uuid.UUID],
        user_role: Optional[UserRole],
        payload: Optional[dict] = None,
    ) -> Audit:
        """
        Move ``audit`` to ``to_state``, bump its version and log the event.

        Raises:
            FailedPrecondition: the transition is not in the table
            PermissionDenied: the actor role may not trigger it
        """
        from_state = _state_value(audit.status)
        target = _state_value(to_state)

        if target not in valid_transitions(from_state):
            raise FailedPrecondition(
                f"Invalid audit transition: {from_state} -> {target}"
            )
        if not can_transition(user_role, from_state, target):
            role = user_role.value if user_role else "system"
            raise PermissionDenied(
                f"Role {role} may not move an audit from {from_state} to {target}"
            )

        now = datetime.now(timezone.utc)
        audit.status = AuditStatus(target)
        audit.version = (audit.version or 0) + 1
        if target == AuditStatus.IN_PROGRESS.value:
            audit.accepted_at = now
            audit.started_at = now
        elif target in (AuditStatus.COMPLETED.value, AuditStatus.REJECTED.value):
            audit.completed_at = now

        event_payload = {
            "from_state": from_state,
            "to_state": target,
            "project_id": audit.project_id,
            "milestone_id": audit.milestone_id,
        }
        event_payload.update(payload or {})

        await self.event_store.log(
            event_type=_EVENT_FOR_TARGET.get(target, EventType.AUDIT_STATE_CHANGED),
            entity_type="audit",
            entity_id=audit.id,
            user_id=user_id,
            payload=event_payload,
        )
        return audit
