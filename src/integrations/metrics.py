"""
Metrics ingestion, at-least-once.

Counters are emitted as events instead of being incremented in shared
records; aggregation happens downstream.
"""

from abc import ABC, abstractmethod
from typing import Dict, Optional

from src.logging_config import get_logger

logger = get_logger(__name__)


class MetricsSink(ABC):
    """Interface to the metrics pipeline."""

    @abstractmethod
    async def record(
        self,
        name: str,
        value: float = 1,
        tags: Optional[Dict[str, str]] = None,
    ) -> None:
        """Record one data point. May raise; callers treat failures as non-fatal."""


class LoggingMetricsSink(MetricsSink):
    """Emits metrics as structured log lines for the log pipeline to ingest."""

    async def record(
        self,
        name: str,
        value: float = 1,
        tags: Optional[Dict[str, str]] = None,
    ) -> None:
        logger.info(
            "metric %s=%s",
            name,
            value,
            extra={"metric": name, "value": value, "tags": tags or {}},
        )
