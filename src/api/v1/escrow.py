"""
Escrow release endpoints.
"""

from fastapi import APIRouter

from src.api.deps import CurrentUser, Metrics, Notifications, SessionMaker, Transfers
from src.engines.escrow.release_service import EscrowReleaseService
from src.schemas.escrow import ReleaseRequest, ReleaseResponse

router = APIRouter()


@router.post("/releases", response_model=ReleaseResponse)
async def release_escrow(
    data: ReleaseRequest,
    user: CurrentUser,
    session_maker: SessionMaker,
    transfers: Transfers,
    notifications: Notifications,
    metrics: Metrics,
):
    """
    Release held escrow for a project.

    Per-contribution transfer failures are reported in ``results``; the
    request itself still succeeds.
    """
    service = EscrowReleaseService(session_maker, transfers, notifications, metrics)
    return await service.release(data, user)
