"""
Audit assignment and acceptance schemas.
"""

import uuid
from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import Field, field_validator

from src.kernel.models.audit import AuditPriority, AuditStatus
from src.schemas.common import CamelModel, ensure_utc

Specialization = Literal["financial", "technical", "environmental", "social", "legal", "compliance"]
ResourceType = Literal["document", "meeting", "site_visit", "financial_data"]

# Bounds for an explicitly requested compensation, minor units
MIN_REQUESTED_COMPENSATION = 20_000
MAX_REQUESTED_COMPENSATION = 5_000_000


class AssignmentRequest(CamelModel):
    """Audit assignment request."""

    project_id: uuid.UUID
    auditor_id: uuid.UUID
    specializations: List[Specialization] = Field(..., min_length=1)
    deadline: datetime
    compensation: Optional[int] = Field(None, ge=MIN_REQUESTED_COMPENSATION, le=MAX_REQUESTED_COMPENSATION)
    priority: AuditPriority = AuditPriority.MEDIUM
    assignment_notes: Optional[str] = Field(None, max_length=1000)

    @field_validator("specializations")
    @classmethod
    def dedupe_specializations(cls, v: List[str]) -> List[str]:
        return list(dict.fromkeys(v))

    @field_validator("deadline")
    @classmethod
    def deadline_in_future(cls, v: datetime) -> datetime:
        v = ensure_utc(v)
        if v <= datetime.now(timezone.utc):
            raise ValueError("Deadline must be in the future")
        return v


class AssignmentResponse(CamelModel):
    """Audit assignment response."""

    audit_id: uuid.UUID
    project_id: uuid.UUID
    auditor_id: uuid.UUID
    milestone_id: Optional[uuid.UUID] = None
    assigned_at: datetime
    deadline: datetime
    status: AuditStatus
    compensation: int
    compensation_currency: str
    estimated_hours: int
    specializations: List[str]
    priority: AuditPriority
    notification_sent: bool
    next_step: str = "awaiting_auditor_acceptance"


class TimelinePhase(CamelModel):
    """One phase of an auditor's proposed timeline."""

    phase: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=1000)
    estimated_days: int = Field(..., ge=1, le=30)


class RequestedResource(CamelModel):
    """A resource the auditor asks the creator to provide."""

    type: ResourceType
    description: str = Field(..., min_length=1, max_length=1000)
    required: bool = True


class AcceptanceRequest(CamelModel):
    """Audit acceptance request. ``audit_id`` may come from the path instead."""

    audit_id: Optional[uuid.UUID] = None
    acceptance_note: Optional[str] = Field(None, max_length=500)
    estimated_completion_date: datetime
    proposed_timeline: Optional[List[TimelinePhase]] = None
    requested_resources: Optional[List[RequestedResource]] = None

    @field_validator("estimated_completion_date")
    @classmethod
    def normalize_completion_date(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class MilestoneSummary(CamelModel):
    id: uuid.UUID
    title: str
    status: str
    funding_percentage: float


class ProjectSummary(CamelModel):
    id: uuid.UUID
    title: str
    category: str
    milestones: List[MilestoneSummary]


class CompensationSummary(CamelModel):
    amount: int
    currency: str
    terms: str


class WorkspaceReference(CamelModel):
    workspace_id: Optional[uuid.UUID] = None
    url: str
    documents_required: int
    milestones_to_review: int


class AcceptanceResponse(CamelModel):
    """Audit acceptance response."""

    audit_id: uuid.UUID
    status: AuditStatus
    accepted_at: datetime
    deadline: datetime
    estimated_completion: datetime
    project: ProjectSummary
    compensation: CompensationSummary
    workspace: WorkspaceReference
    next_steps: List[str]
