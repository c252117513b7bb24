"""
Crowdfunded project and milestone models.
"""

import uuid
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import Boolean, Float, ForeignKey, Integer, JSON, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.kernel.models.base import Base, TimestampMixin, generate_uuid

if TYPE_CHECKING:
    from src.kernel.models.contribution import Contribution


class ProjectStatus(str, Enum):
    """Project lifecycle status."""
    DRAFT = "draft"
    ACTIVE = "active"
    FUNDING = "funding"
    FUNDING_COMPLETE = "funding_complete"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class MilestoneStatus(str, Enum):
    """Milestone delivery status (set by milestone-completion events)."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"
    COMPLETED = "completed"
    REJECTED = "rejected"


class MilestoneAuditStatus(str, Enum):
    """Audit status of a milestone, as seen by the release gate."""
    NOT_REQUIRED = "not_required"
    PENDING = "pending"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    APPROVED = "approved"
    REJECTED = "rejected"


class Project(Base, TimestampMixin):
    """Crowdfunded project whose funds are held in escrow."""

    __tablename__ = "projects"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    title: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
    )
    category: Mapped[str] = mapped_column(
        String(50),
        default="general",
        nullable=False,
    )
    status: Mapped[ProjectStatus] = mapped_column(
        String(50),
        default=ProjectStatus.DRAFT,
        nullable=False,
    )
    creator_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )
    collaborator_ids: Mapped[List[str]] = mapped_column(
        JSON,
        default=list,
        nullable=False,
    )

    # Aggregate funding, minor currency units
    funding_raised: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )
    funding_goal: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )
    currency: Mapped[str] = mapped_column(
        String(3),
        default="EUR",
        nullable=False,
    )

    # Connected payout account; None routes to the platform holding account
    payout_account_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )

    milestones: Mapped[List["Milestone"]] = relationship(
        "Milestone",
        back_populates="project",
        cascade="all, delete-orphan",
        order_by="Milestone.position",
        lazy="selectin",
    )
    contributions: Mapped[List["Contribution"]] = relationship(
        "Contribution",
        back_populates="project",
    )

    def find_milestone(self, milestone_id: uuid.UUID) -> Optional["Milestone"]:
        for milestone in self.milestones:
            if milestone.id == milestone_id:
                return milestone
        return None

    def __repr__(self) -> str:
        return f"<Project {self.title[:50]}>"


class Milestone(Base, TimestampMixin):
    """A funding tranche of a project, optionally gated by an audit."""

    __tablename__ = "milestones"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    position: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )
    status: Mapped[MilestoneStatus] = mapped_column(
        String(50),
        default=MilestoneStatus.PENDING,
        nullable=False,
    )
    funding_percentage: Mapped[float] = mapped_column(
        Float,
        nullable=False,
    )
    audit_required: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )
    audit_status: Mapped[MilestoneAuditStatus] = mapped_column(
        String(50),
        default=MilestoneAuditStatus.PENDING,
        nullable=False,
    )

    project: Mapped["Project"] = relationship(
        "Project",
        back_populates="milestones",
    )

    def __repr__(self) -> str:
        return f"<Milestone {self.title[:50]} {self.status}>"
