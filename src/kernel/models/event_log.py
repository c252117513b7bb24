"""
Immutable event log for audit trail.

All state mutations are logged here BEFORE commit.
This implements the append-only audit requirement.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, String, func, Index, JSON, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from src.kernel.models.base import Base, generate_uuid


class EventType(str, Enum):
    """All event types for the audit log."""

    # Audit lifecycle
    AUDIT_ASSIGNED = "audit.assigned"
    AUDIT_ACCEPTED = "audit.accepted"
    AUDIT_EXPIRED = "audit.expired"
    AUDIT_COMPLETED = "audit.completed"
    AUDIT_REJECTED = "audit.rejected"
    AUDIT_STATE_CHANGED = "audit.state_changed"
    CONFLICT_OF_INTEREST_FLAGGED = "audit.conflict_flagged"

    # Escrow
    ESCROW_RELEASED = "escrow.released"
    ESCROW_FULLY_RELEASED = "escrow.fully_released"
    ESCROW_RELEASE_PROCESSED = "escrow.release_processed"
    ESCROW_SAFETY_BYPASSED = "escrow.safety_bypassed"


class EventLog(Base):
    """
    Immutable audit event log.

    This table is append-only - no updates or deletes allowed.
    All significant actions must be logged here before committing.
    """

    __tablename__ = "event_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )

    event_type: Mapped[EventType] = mapped_column(
        String(100),
        nullable=False,
        index=True,
    )

    # Entity reference
    entity_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )
    entity_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        nullable=False,
        index=True,
    )

    # Actor; system events may not have one
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(),
        nullable=True,
        index=True,
    )

    payload: Mapped[dict] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
    )
    request_id: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        index=True,
    )

    __table_args__ = (
        Index("ix_event_logs_entity", "entity_type", "entity_id"),
        Index("ix_event_logs_type_time", "event_type", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<EventLog {self.event_type} {self.entity_type}:{self.entity_id}>"
