"""
Escrow Release Engine

Gate check, per-contribution amounts, batched transfers and the
per-contribution ledger update, orchestrated by EscrowReleaseService.
"""

from src.engines.escrow.conditions import EscrowReleaseConditionEvaluator, ReleaseDecision
from src.engines.escrow.calculator import PerContributionReleaseCalculator, ReleaseCandidate
from src.engines.escrow.transfers import TransferBatchExecutor, TransferOutcome
from src.engines.escrow.ledger import (
    AtomicUpdater,
    AtomicUpdateResult,
    LedgerAndStateUpdater,
    ReleaseContext,
)
from src.engines.escrow.release_service import EscrowReleaseService

__all__ = [
    "EscrowReleaseConditionEvaluator",
    "ReleaseDecision",
    "PerContributionReleaseCalculator",
    "ReleaseCandidate",
    "TransferBatchExecutor",
    "TransferOutcome",
    "AtomicUpdater",
    "AtomicUpdateResult",
    "LedgerAndStateUpdater",
    "ReleaseContext",
    "EscrowReleaseService",
]
