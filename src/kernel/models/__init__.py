"""
Kernel Data Models

Core SQLAlchemy models: identities, projects, contributions with their
escrow schedule, the release ledger, audits, and the immutable event log.
"""

from src.kernel.models.base import Base, TimestampMixin, generate_uuid, utc_now, as_utc
from src.kernel.models.user import User, UserRole, UserStatus, Capability
from src.kernel.models.project import (
    Project,
    ProjectStatus,
    Milestone,
    MilestoneStatus,
    MilestoneAuditStatus,
)
from src.kernel.models.contribution import (
    Contribution,
    ContributionStatus,
    ReleaseScheduleEntry,
)
from src.kernel.models.escrow_release import (
    EscrowRelease,
    ReleaseType,
    PRIVILEGED_RELEASE_TYPES,
)
from src.kernel.models.audit import (
    Audit,
    AuditStatus,
    AuditPriority,
    AuditWorkspace,
    ACTIVE_AUDIT_STATUSES,
)
from src.kernel.models.event_log import EventLog, EventType

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "generate_uuid",
    "utc_now",
    "as_utc",
    # User
    "User",
    "UserRole",
    "UserStatus",
    "Capability",
    # Project
    "Project",
    "ProjectStatus",
    "Milestone",
    "MilestoneStatus",
    "MilestoneAuditStatus",
    # Escrow
    "Contribution",
    "ContributionStatus",
    "ReleaseScheduleEntry",
    "EscrowRelease",
    "ReleaseType",
    "PRIVILEGED_RELEASE_TYPES",
    # Audits
    "Audit",
    "AuditStatus",
    "AuditPriority",
    "AuditWorkspace",
    "ACTIVE_AUDIT_STATUSES",
    # Event Log
    "EventLog",
    "EventType",
]
