"""
Pydantic schemas for API request/response validation.
"""

from src.schemas.escrow import (
    ReleaseRequest,
    ReleaseResult,
    ReleaseResponse,
)
from src.schemas.audit import (
    AssignmentRequest,
    AssignmentResponse,
    AcceptanceRequest,
    AcceptanceResponse,
    TimelinePhase,
    RequestedResource,
)
from src.schemas.common import (
    CamelModel,
    ErrorResponse,
    HealthResponse,
    parse_request,
)

__all__ = [
    # Escrow
    "ReleaseRequest",
    "ReleaseResult",
    "ReleaseResponse",
    # Audit
    "AssignmentRequest",
    "AssignmentResponse",
    "AcceptanceRequest",
    "AcceptanceResponse",
    "TimelinePhase",
    "RequestedResource",
    # Common
    "CamelModel",
    "ErrorResponse",
    "HealthResponse",
    "parse_request",
]
