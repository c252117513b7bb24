"""
Identity service: user lookups for the authenticated caller and auditors.
"""

import uuid
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from src.kernel.models.user import User


class IdentityService:
    """Read access to user records."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_user_by_id(self, user_id: uuid.UUID) -> Optional[User]:
        return await self.session.get(User, user_id)
