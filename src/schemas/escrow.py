"""
Escrow release schemas.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import Field, model_validator

from src.kernel.models.escrow_release import ReleaseType, PRIVILEGED_RELEASE_TYPES
from src.schemas.common import CamelModel


class ReleaseRequest(CamelModel):
    """Escrow release request."""

    release_type: ReleaseType
    project_id: uuid.UUID
    milestone_id: Optional[uuid.UUID] = None
    release_reason: Optional[str] = Field(None, min_length=10, max_length=500)
    release_percentage: Optional[int] = Field(None, ge=1, le=100)
    notify_contributors: bool = True
    notify_creator: bool = True
    bypass_safety_checks: bool = False

    @model_validator(mode="after")
    def check_release_type_fields(self) -> "ReleaseRequest":
        if self.release_type == ReleaseType.MILESTONE_COMPLETION and self.milestone_id is None:
            raise ValueError("milestoneId is required for milestone_completion releases")
        if self.release_type in PRIVILEGED_RELEASE_TYPES and not self.release_reason:
            raise ValueError(
                f"releaseReason is required for {self.release_type.value} releases"
            )
        return self


class ReleaseResult(CamelModel):
    """Outcome of one contribution's transfer."""

    contribution_id: uuid.UUID
    transfer_id: Optional[str] = None
    release_amount: int
    status: str
    success: bool
    error: Optional[str] = None


class ReleaseResponse(CamelModel):
    """Escrow release response."""

    release_type: ReleaseType
    project_id: uuid.UUID
    milestone_id: Optional[uuid.UUID] = None
    total_released: int
    contributions_processed: int
    successful: int
    failed: int
    results: List[ReleaseResult]
    processed_at: datetime
    success: bool = True
