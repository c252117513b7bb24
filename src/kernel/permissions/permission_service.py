"""
Permission service for escrow releases and audit management.

Access is granted by role, by capability, or by a relationship to the
project (creator, assigned auditor).
"""

from sqlalchemy import select, and_, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.kernel.errors import Internal, PermissionDenied
from src.kernel.models.audit import Audit
from src.kernel.models.escrow_release import ReleaseType, PRIVILEGED_RELEASE_TYPES
from src.kernel.models.project import Project
from src.kernel.models.user import Capability, User, UserRole
from src.logging_config import get_logger

logger = get_logger(__name__)


# Capabilities that grant platform-admin access on top of the admin role
ADMIN_CAPABILITIES = (Capability.RELEASE_ESCROW, Capability.MODERATE_PROJECTS)
ASSIGNMENT_CAPABILITIES = (Capability.ASSIGN_AUDITORS, Capability.MODERATE_PROJECTS)


def has_admin_access(user: User) -> bool:
    """True for the admin role or any escrow-administration capability."""
    if user.role == UserRole.ADMIN:
        return True
    return any(user.has_capability(cap) for cap in ADMIN_CAPABILITIES)


class PermissionService:
    """
    Service for checking who may trigger releases and manage audits.

    Checks raise ``PermissionDenied`` rather than returning False so that
    callers abort before any side effect.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def is_project_auditor(self, user: User, project: Project) -> bool:
        """Whether ``user`` holds any audit record on ``project``."""
        query = select(func.count(Audit.id)).where(
            and_(
                Audit.project_id == project.id,
                Audit.auditor_id == user.id,
            )
        )
        try:
            result = await self.session.execute(query)
        except SQLAlchemyError as exc:
            logger.exception("Auditor lookup failed", extra={"project_id": str(project.id)})
            raise Internal("Failed to check auditor assignment") from exc
        return (result.scalar_one() or 0) > 0

    async def check_release_permission(
        self,
        user: User,
        release_type: ReleaseType,
        project: Project,
    ) -> None:
        """
        Check that ``user`` may trigger ``release_type`` on ``project``.

        - milestone_completion: creator, admin, or an auditor of the project
        - project_completion: creator or admin
        - emergency_release / admin_override: admin only
        """
        if has_admin_access(user):
            return

        if release_type in PRIVILEGED_RELEASE_TYPES:
            raise PermissionDenied(
                f"Only administrators may trigger {ReleaseType(release_type).value}"
            )

        if project.creator_id == user.id:
            return

        if release_type == ReleaseType.MILESTONE_COMPLETION:
            if await self.is_project_auditor(user, project):
                return

        raise PermissionDenied("Insufficient permissions to release escrow for this project")

    def check_assignment_permission(self, user: User) -> None:
        """Only admins or auditor coordinators may assign auditors."""
        if user.role == UserRole.ADMIN:
            return
        if any(user.has_capability(cap) for cap in ASSIGNMENT_CAPABILITIES):
            return
        raise PermissionDenied("Insufficient permissions to assign auditors")
