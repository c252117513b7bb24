"""
Escrow release ledger.

One row per successful transfer. This table is append-only and is the
system of record for reconciliation against the payments provider.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, Index, Integer, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from src.kernel.models.base import Base, generate_uuid


class ReleaseType(str, Enum):
    """What triggered an escrow release."""
    MILESTONE_COMPLETION = "milestone_completion"
    PROJECT_COMPLETION = "project_completion"
    EMERGENCY_RELEASE = "emergency_release"
    ADMIN_OVERRIDE = "admin_override"


PRIVILEGED_RELEASE_TYPES = frozenset({
    ReleaseType.EMERGENCY_RELEASE,
    ReleaseType.ADMIN_OVERRIDE,
})


class EscrowRelease(Base):
    """Immutable ledger entry for one released amount."""

    __tablename__ = "escrow_releases"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    contribution_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        nullable=False,
        index=True,
    )
    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        nullable=False,
        index=True,
    )
    release_type: Mapped[ReleaseType] = mapped_column(
        String(50),
        nullable=False,
    )
    milestone_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(),
        nullable=True,
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    transfer_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
    )
    contributor_id: Mapped[uuid.UUID] = mapped_column(Uuid(), nullable=False)
    creator_id: Mapped[uuid.UUID] = mapped_column(Uuid(), nullable=False)
    released_by: Mapped[uuid.UUID] = mapped_column(Uuid(), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    processed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_escrow_releases_project_milestone", "project_id", "milestone_id"),
    )

    def __repr__(self) -> str:
        return f"<EscrowRelease {self.release_type} {self.amount} {self.transfer_id}>"
