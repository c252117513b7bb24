"""
Isolation for non-critical side effects.

Notifications, metrics and bookkeeping run after the primary state change.
Their failures are logged and swallowed; they never fail or retry the
operation that triggered them.
"""

import asyncio
from typing import Any, Awaitable, Dict, List, Optional

from src.logging_config import get_logger

logger = get_logger(__name__)


async def best_effort(
    label: str,
    awaitable: Awaitable[Any],
    extra: Optional[Dict[str, Any]] = None,
) -> bool:
    """Await ``awaitable``; return False instead of raising on failure."""
    try:
        await awaitable
        return True
    except Exception:
        logger.exception("Side effect failed: %s", label, extra=extra or {})
        return False


async def run_side_effects(
    effects: Dict[str, Awaitable[Any]],
    extra: Optional[Dict[str, Any]] = None,
) -> Dict[str, bool]:
    """Run labelled side effects concurrently; report which succeeded."""
    labels: List[str] = list(effects)
    outcomes = await asyncio.gather(
        *(best_effort(label, effects[label], extra) for label in labels)
    )
    return dict(zip(labels, outcomes))
