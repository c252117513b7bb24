"""
External collaborators: payments provider, notification delivery, metrics.

Each is an abstract interface with an httpx or logging implementation.
Engines depend only on the interfaces.
"""

from src.integrations.payments import (
    TransferGateway,
    HttpTransferGateway,
    TransferRequest,
    Transfer,
    TransferError,
)
from src.integrations.notifications import (
    NotificationGateway,
    HttpNotificationGateway,
    LoggingNotificationGateway,
    Notification,
)
from src.integrations.metrics import MetricsSink, LoggingMetricsSink

__all__ = [
    "TransferGateway",
    "HttpTransferGateway",
    "TransferRequest",
    "Transfer",
    "TransferError",
    "NotificationGateway",
    "HttpNotificationGateway",
    "LoggingNotificationGateway",
    "Notification",
    "MetricsSink",
    "LoggingMetricsSink",
]
