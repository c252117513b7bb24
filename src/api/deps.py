"""
FastAPI dependencies for authentication, database sessions and gateways.
"""

import uuid
from typing import Annotated, AsyncGenerator, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.database import get_session_maker
from src.integrations.metrics import LoggingMetricsSink, MetricsSink
from src.integrations.notifications import NotificationGateway, build_notification_gateway
from src.integrations.payments import HttpTransferGateway, TransferGateway
from src.kernel.errors import Unauthenticated
from src.kernel.identity.identity_service import IdentityService
from src.kernel.identity.jwt import verify_access_token
from src.kernel.models.user import User


# Security scheme
security = HTTPBearer(auto_error=False)


SessionMaker = Annotated[async_sessionmaker[AsyncSession], Depends(get_session_maker)]


async def get_db(session_maker: SessionMaker) -> AsyncGenerator[AsyncSession, None]:
    """Dependency that yields request-scoped database sessions."""
    async with session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


DbSession = Annotated[AsyncSession, Depends(get_db)]


async def get_current_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    db: DbSession,
) -> User:
    """Resolve the bearer token to an active user or raise ``Unauthenticated``."""
    if not credentials:
        raise Unauthenticated("Not authenticated")

    payload = verify_access_token(credentials.credentials)
    if not payload:
        raise Unauthenticated("Invalid or expired token")

    try:
        user_id = uuid.UUID(payload.sub)
    except ValueError:
        raise Unauthenticated("Invalid token subject")

    user = await IdentityService(db).get_user_by_id(user_id)
    if not user:
        raise Unauthenticated("User not found")

    return user


CurrentUser = Annotated[User, Depends(get_current_user)]


def get_transfer_gateway() -> TransferGateway:
    return HttpTransferGateway()


def get_notification_gateway() -> NotificationGateway:
    return build_notification_gateway()


def get_metrics_sink() -> MetricsSink:
    return LoggingMetricsSink()


Transfers = Annotated[TransferGateway, Depends(get_transfer_gateway)]
Notifications = Annotated[NotificationGateway, Depends(get_notification_gateway)]
Metrics = Annotated[MetricsSink, Depends(get_metrics_sink)]

