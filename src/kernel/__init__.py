"""
Stable Kernel Layer

Foundational components the engines build on:
- Data models (projects, contributions and escrow schedule, audits)
- Immutable Event Log (all mutations logged)
- Identity (bearer token verification)
- Permissions (who may release escrow or manage audits)
- Error taxonomy

Architectural Invariants:
- All state changes logged before commit; logs immutable
- Escrow columns of a contribution are written only by the release engine
- Ledger entries are append-only
"""

from src.kernel.models import (
    User,
    UserRole,
    Project,
    ProjectStatus,
    Milestone,
    Contribution,
    ReleaseScheduleEntry,
    EscrowRelease,
    ReleaseType,
    Audit,
    AuditStatus,
    EventLog,
    EventType,
)
from src.kernel.errors import (
    PlatformError,
    Unauthenticated,
    PermissionDenied,
    InvalidArgument,
    FailedPrecondition,
    NotFound,
    Internal,
)

__all__ = [
    "User",
    "UserRole",
    "Project",
    "ProjectStatus",
    "Milestone",
    "Contribution",
    "ReleaseScheduleEntry",
    "EscrowRelease",
    "ReleaseType",
    "Audit",
    "AuditStatus",
    "EventLog",
    "EventType",
    # Errors
    "PlatformError",
    "Unauthenticated",
    "PermissionDenied",
    "InvalidArgument",
    "FailedPrecondition",
    "NotFound",
    "Internal",
]
