"""
Audit assignment and workspace models.

Audits are created by assignment and mutated by acceptance and outcome
recording. They are never deleted; the row is the audit trail.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import List, Optional

from sqlalchemy import DateTime, ForeignKey, Integer, JSON, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from src.kernel.models.base import Base, TimestampMixin, generate_uuid


class AuditStatus(str, Enum):
    """Audit lifecycle states."""
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    REJECTED = "rejected"
    EXPIRED = "expired"


ACTIVE_AUDIT_STATUSES = (AuditStatus.ASSIGNED, AuditStatus.IN_PROGRESS)


class AuditPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Audit(Base, TimestampMixin):
    """An auditor's assignment to review a project milestone."""

    __tablename__ = "audits"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("projects.id"),
        nullable=False,
        index=True,
    )
    milestone_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(),
        ForeignKey("milestones.id"),
        nullable=True,
    )
    project_creator_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        nullable=False,
        index=True,
    )
    project_category: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )
    auditor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )
    status: Mapped[AuditStatus] = mapped_column(
        String(50),
        default=AuditStatus.ASSIGNED,
        nullable=False,
        index=True,
    )
    specializations: Mapped[List[str]] = mapped_column(
        JSON,
        default=list,
        nullable=False,
    )
    priority: Mapped[AuditPriority] = mapped_column(
        String(20),
        default=AuditPriority.MEDIUM,
        nullable=False,
    )
    estimated_hours: Mapped[int] = mapped_column(Integer, nullable=False)

    # Timeline
    assigned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    deadline: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    estimated_completion: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    accepted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    started_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Compensation, minor currency units
    compensation_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    compensation_currency: Mapped[str] = mapped_column(
        String(3),
        default="EUR",
        nullable=False,
    )
    compensation_terms: Mapped[str] = mapped_column(
        String(50),
        default="payment_on_completion",
        nullable=False,
    )
    compensation_status: Mapped[str] = mapped_column(
        String(20),
        default="pending",
        nullable=False,
    )

    # Review configuration
    criteria: Mapped[List[dict]] = mapped_column(
        JSON,
        default=list,
        nullable=False,
    )
    required_documents: Mapped[List[str]] = mapped_column(
        JSON,
        default=list,
        nullable=False,
    )

    # Assignment / acceptance metadata
    assigned_by: Mapped[uuid.UUID] = mapped_column(Uuid(), nullable=False)
    assignment_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    acceptance_note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    proposed_timeline: Mapped[List[dict]] = mapped_column(
        JSON,
        default=list,
        nullable=False,
    )
    requested_resources: Mapped[List[dict]] = mapped_column(
        JSON,
        default=list,
        nullable=False,
    )

    version: Mapped[int] = mapped_column(
        Integer,
        default=1,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Audit {self.id} {self.status}>"


class AuditWorkspace(Base, TimestampMixin):
    """Working area opened when an auditor accepts an assignment."""

    __tablename__ = "audit_workspaces"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    audit_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("audits.id"),
        nullable=False,
        unique=True,
    )
    project_id: Mapped[uuid.UUID] = mapped_column(Uuid(), nullable=False)
    auditor_id: Mapped[uuid.UUID] = mapped_column(Uuid(), nullable=False)
    # {"required": [...], "requested": [...], "uploaded": []}
    documents: Mapped[dict] = mapped_column(
        JSON,
        default=dict,
        nullable=False,
    )
    milestone_reviews: Mapped[List[dict]] = mapped_column(
        JSON,
        default=list,
        nullable=False,
    )
    checklist: Mapped[List[dict]] = mapped_column(
        JSON,
        default=list,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<AuditWorkspace audit={self.audit_id}>"
