"""
User model for identity, capabilities and auditor profile.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import List, Optional

from sqlalchemy import DateTime, Integer, JSON, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from src.kernel.models.base import Base, TimestampMixin, generate_uuid


class UserRole(str, Enum):
    """User roles in the system."""
    CONTRIBUTOR = "contributor"
    CREATOR = "creator"
    AUDITOR = "auditor"
    ADMIN = "admin"


class UserStatus(str, Enum):
    """Account status."""
    ACTIVE = "active"
    SUSPENDED = "suspended"
    INACTIVE = "inactive"


class Capability(str, Enum):
    """Fine-grained capabilities granted on top of the role."""
    AUDIT = "audit"
    ASSIGN_AUDITORS = "assign_auditors"
    RELEASE_ESCROW = "release_escrow"
    MODERATE_PROJECTS = "moderate_projects"


class User(Base, TimestampMixin):
    """User account model."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        index=True,
        nullable=False,
    )
    full_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    role: Mapped[UserRole] = mapped_column(
        String(50),
        default=UserRole.CONTRIBUTOR,
        nullable=False,
    )
    status: Mapped[UserStatus] = mapped_column(
        String(50),
        default=UserStatus.ACTIVE,
        nullable=False,
    )
    capabilities: Mapped[List[str]] = mapped_column(
        JSON,
        default=list,
        nullable=False,
    )
    verified_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Auditor profile
    specializations: Mapped[List[str]] = mapped_column(
        JSON,
        default=list,
        nullable=False,
    )
    # [{"category": "finance", "status": "active"}, ...]
    certifications: Mapped[List[dict]] = mapped_column(
        JSON,
        default=list,
        nullable=False,
    )
    max_concurrent_audits: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
    )
    # Rates in minor currency units per hour
    hourly_rate: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
    )
    min_hourly_rate: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
    )

    def has_capability(self, capability: Capability) -> bool:
        return capability.value in (self.capabilities or [])

    @property
    def is_active(self) -> bool:
        # str-valued enum, so this also matches raw strings loaded from SQLite
        return self.status == UserStatus.ACTIVE

    def __repr__(self) -> str:
        return f"<User {self.email}>"
