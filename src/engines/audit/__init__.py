"""
Audit Engine - Auditor eligibility, compensation and the assignment lifecycle.
"""

from src.engines.audit.compensation import (
    CompensationCalculator,
    CompensationBreakdown,
    round_half_up,
)
from src.engines.audit.eligibility import (
    AuditEligibilityValidator,
    ConflictCheckResult,
)
from src.engines.audit.assignment_service import (
    AuditAssignmentService,
    select_milestone_for_audit,
)
from src.engines.audit.acceptance_service import (
    AuditAcceptanceService,
    validate_proposed_timeline,
)
from src.engines.audit.outcome_service import AuditOutcomeService

__all__ = [
    "CompensationCalculator",
    "CompensationBreakdown",
    "round_half_up",
    "AuditEligibilityValidator",
    "ConflictCheckResult",
    "AuditAssignmentService",
    "select_milestone_for_audit",
    "AuditAcceptanceService",
    "validate_proposed_timeline",
    "AuditOutcomeService",
]
