"""
Contribution and escrow release schedule models.

The escrow columns of a contribution and its schedule entries are written
only by the escrow release engine, one contribution per transaction.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.kernel.models.base import Base, TimestampMixin, generate_uuid

if TYPE_CHECKING:
    from src.kernel.models.project import Project


class ContributionStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    REFUNDED = "refunded"


class Contribution(Base, TimestampMixin):
    """Money pledged by one contributor to one project."""

    __tablename__ = "contributions"

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
    contributor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )
    status: Mapped[ContributionStatus] = mapped_column(
        String(50),
        default=ContributionStatus.CONFIRMED,
        nullable=False,
    )
    anonymous: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    # Amounts in minor currency units
    gross_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    net_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(
        String(3),
        default="EUR",
        nullable=False,
    )

    # Escrow
    escrow_held: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
        index=True,
    )
    escrow_held_amount: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )
    escrow_fully_released_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    escrow_release_reason: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
    )
    escrow_released_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(),
        nullable=True,
    )

    # Compare-and-swap guard for concurrent releases
    version: Mapped[int] = mapped_column(
        Integer,
        default=1,
        nullable=False,
    )
    release_claim_token: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
    )
    release_claimed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    release_schedule: Mapped[List["ReleaseScheduleEntry"]] = relationship(
        "ReleaseScheduleEntry",
        back_populates="contribution",
        cascade="all, delete-orphan",
        order_by="ReleaseScheduleEntry.position",
        lazy="selectin",
    )
    project: Mapped["Project"] = relationship(
        "Project",
        back_populates="contributions",
    )

    @property
    def released_amount(self) -> int:
        return sum(entry.amount for entry in self.release_schedule if entry.released)

    @property
    def remaining_escrow(self) -> int:
        return max(0, self.escrow_held_amount - self.released_amount)

    def schedule_entry_for(self, milestone_id: uuid.UUID) -> Optional["ReleaseScheduleEntry"]:
        for entry in self.release_schedule:
            if entry.milestone_id == milestone_id:
                return entry
        return None

    def __repr__(self) -> str:
        return f"<Contribution {self.id} held={self.escrow_held_amount}>"


class ReleaseScheduleEntry(Base):
    """
    The part of one contribution's escrow tied to one milestone.

    ``released`` flips from False to True once and never back. Entries with
    no milestone record project-level or override releases.
    """

    __tablename__ = "release_schedule_entries"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    contribution_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("contributions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    milestone_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(),
        nullable=True,
        index=True,
    )
    position: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    release_condition: Mapped[str] = mapped_column(
        String(50),
        default="milestone_completion",
        nullable=False,
    )
    released: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    released_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    transfer_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )
    released_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(),
        nullable=True,
    )

    contribution: Mapped["Contribution"] = relationship(
        "Contribution",
        back_populates="release_schedule",
    )

    def __repr__(self) -> str:
        return f"<ReleaseScheduleEntry milestone={self.milestone_id} released={self.released}>"
