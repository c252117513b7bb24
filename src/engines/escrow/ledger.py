"""
Escrow ledger and per-contribution state updates.

Every write to a contribution's escrow happens in a transaction scoped to
that one contribution (``AtomicUpdater.with_atomic_update``). Concurrent
releases are serialized by a claim taken with a conditional UPDATE before
any money moves:

    claim    : token set  WHERE version = seen AND (no claim OR claim stale)
    success  : schedule + ledger written, version + 1, claim cleared
    failure  : claim cleared, nothing else touched

A second release that read the same contribution either loses the claim or
finds the schedule entry already released.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from sqlalchemy import or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.config import get_settings
from src.engines.escrow.calculator import ReleaseCandidate
from src.engines.escrow.transfers import TransferOutcome
from src.kernel.errors import FailedPrecondition, Internal, NotFound, PlatformError
from src.kernel.events.event_store import EventStore
from src.kernel.models.contribution import Contribution, ReleaseScheduleEntry
from src.kernel.models.escrow_release import EscrowRelease, ReleaseType
from src.kernel.models.event_log import EventType
from src.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class AtomicUpdateResult(Generic[T]):
    """Outcome of one contribution's unit of work."""
    contribution_id: uuid.UUID
    success: bool
    value: Optional[T] = None
    error: Optional[PlatformError] = None


@dataclass
class ReleaseContext:
    """What is being released, by whom, for the whole batch."""
    project_id: uuid.UUID
    creator_id: uuid.UUID
    release_type: ReleaseType
    actor_id: uuid.UUID
    processed_at: datetime
    milestone_id: Optional[uuid.UUID] = None


def new_claim_token() -> str:
    return uuid.uuid4().hex


class AtomicUpdater:
    """Runs a function against one contribution inside one transaction."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    async def with_atomic_update(
        self,
        contribution_id: uuid.UUID,
        fn: Callable[[AsyncSession, Contribution], Awaitable[T]],
    ) -> AtomicUpdateResult[T]:
        """
        Load the contribution, apply ``fn`` and commit, or roll back everything.

        Never raises: expected failures come back as the result's ``error``,
        database failures as ``Internal``.
        """
        try:
            async with self.session_maker() as session:
                async with session.begin():
                    contribution = await session.get(Contribution, contribution_id)
                    if contribution is None:
                        raise NotFound(
                            "Contribution not found",
                            context={"contribution_id": str(contribution_id)},
                        )
                    value = await fn(session, contribution)
        except PlatformError as e:
            logger.warning(
                "Atomic update rejected: %s",
                e.message,
                extra={"contribution_id": str(contribution_id)},
            )
            return AtomicUpdateResult(contribution_id=contribution_id, success=False, error=e)
        except SQLAlchemyError as e:
            logger.exception(
                "Atomic update failed",
                extra={"contribution_id": str(contribution_id)},
            )
            return AtomicUpdateResult(
                contribution_id=contribution_id,
                success=False,
                error=Internal(f"Escrow update failed: {type(e).__name__}"),
            )
        return AtomicUpdateResult(contribution_id=contribution_id, success=True, value=value)


class LedgerAndStateUpdater:
    """Claims contributions before transfer and records releases after."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        claim_ttl_seconds: Optional[int] = None,
    ):
        self.session_maker = session_maker
        self.atomic = AtomicUpdater(session_maker)
        self.claim_ttl = timedelta(
            seconds=claim_ttl_seconds or get_settings().release_claim_ttl_seconds
        )

    async def claim(
        self,
        candidate: ReleaseCandidate,
        token: str,
        now: Optional[datetime] = None,
    ) -> bool:
        """Take the release claim on a contribution. False if someone else holds it."""
        now = now or datetime.now(timezone.utc)
        stmt = (
            update(Contribution)
            .where(
                Contribution.id == candidate.contribution_id,
                Contribution.version == candidate.version,
                Contribution.escrow_held.is_(True),
                or_(
                    Contribution.release_claim_token.is_(None),
                    Contribution.release_claimed_at < now - self.claim_ttl,
                ),
            )
            .values(release_claim_token=token, release_claimed_at=now)
            .execution_options(synchronize_session=False)
        )
        async with self.session_maker() as session:
            async with session.begin():
                result = await session.execute(stmt)
        claimed = result.rowcount == 1
        if not claimed:
            logger.info(
                "Contribution already claimed or changed, skipping",
                extra={"contribution_id": str(candidate.contribution_id)},
            )
        return claimed

    async def release_claim(self, contribution_id: uuid.UUID, token: str) -> None:
        """Drop our claim after a failed transfer. The schedule stays untouched."""
        stmt = (
            update(Contribution)
            .where(
                Contribution.id == contribution_id,
                Contribution.release_claim_token == token,
            )
            .values(release_claim_token=None, release_claimed_at=None)
            .execution_options(synchronize_session=False)
        )
        async with self.session_maker() as session:
            async with session.begin():
                await session.execute(stmt)

    async def record_release(
        self,
        outcome: TransferOutcome,
        token: str,
        context: ReleaseContext,
    ) -> AtomicUpdateResult[EscrowRelease]:
        """Persist one successful transfer against its contribution."""

        async def apply(session: AsyncSession, contribution: Contribution) -> EscrowRelease:
            if contribution.release_claim_token != token:
                raise FailedPrecondition("Release claim was lost before the ledger update")

            now = datetime.now(timezone.utc)
            if context.release_type == ReleaseType.MILESTONE_COMPLETION:
                entry = contribution.schedule_entry_for(context.milestone_id)
                if entry is None or entry.released:
                    raise FailedPrecondition("Schedule entry is no longer releasable")
                # Clamped releases shrink the entry so released never exceeds held
                entry.amount = outcome.release_amount
                entry.released = True
                entry.released_at = now
                entry.transfer_id = outcome.transfer_id
                entry.released_by = context.actor_id
            else:
                contribution.release_schedule.append(
                    ReleaseScheduleEntry(
                        contribution_id=contribution.id,
                        milestone_id=None,
                        position=len(contribution.release_schedule),
                        amount=outcome.release_amount,
                        release_condition=context.release_type.value,
                        released=True,
                        released_at=now,
                        transfer_id=outcome.transfer_id,
                        released_by=context.actor_id,
                    )
                )

            fully_released = contribution.released_amount >= contribution.escrow_held_amount
            if fully_released:
                contribution.escrow_held = False
                contribution.escrow_fully_released_at = now
            contribution.escrow_release_reason = context.release_type.value
            contribution.escrow_released_by = context.actor_id
            contribution.version = contribution.version + 1
            contribution.release_claim_token = None
            contribution.release_claimed_at = None

            ledger_entry = EscrowRelease(
                contribution_id=contribution.id,
                project_id=context.project_id,
                release_type=context.release_type,
                milestone_id=context.milestone_id,
                amount=outcome.release_amount,
                currency=contribution.currency,
                transfer_id=outcome.transfer_id,
                contributor_id=contribution.contributor_id,
                creator_id=context.creator_id,
                released_by=context.actor_id,
                processed_at=context.processed_at,
            )
            session.add(ledger_entry)

            event_store = EventStore(session)
            await event_store.log(
                event_type=EventType.ESCROW_RELEASED,
                entity_type="contribution",
                entity_id=contribution.id,
                user_id=context.actor_id,
                payload={
                    "project_id": context.project_id,
                    "milestone_id": context.milestone_id,
                    "release_type": context.release_type,
                    "amount": outcome.release_amount,
                    "transfer_id": outcome.transfer_id,
                },
            )
            if fully_released:
                await event_store.log(
                    event_type=EventType.ESCROW_FULLY_RELEASED,
                    entity_type="contribution",
                    entity_id=contribution.id,
                    user_id=context.actor_id,
                    payload={"held_amount": contribution.escrow_held_amount},
                )
            return ledger_entry

        result = await self.atomic.with_atomic_update(outcome.contribution_id, apply)
        if not result.success:
            # Money moved but the ledger did not: needs reconciliation
            logger.error(
                "Transfer succeeded but the release was not recorded",
                extra={
                    "contribution_id": str(outcome.contribution_id),
                    "transfer_id": outcome.transfer_id,
                    "error": result.error.message if result.error else None,
                },
            )
        return result
