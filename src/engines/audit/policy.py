"""
Audit policy tables.

Amounts are in minor currency units (cents). Hours are per audit.
"""

from typing import Dict, List, Tuple

# Categories whose auditors need an active certification for that category
REGULATED_CATEGORIES = frozenset({"finance", "health", "legal"})

DEFAULT_HOURLY_RATE = 7_500
DEFAULT_ESTIMATED_HOURS = 16

ESTIMATED_HOURS_BY_CATEGORY: Dict[str, int] = {
    "environment": 16,
    "education": 12,
    "health": 24,
    "finance": 24,
    "legal": 20,
    "technology": 20,
    "social": 12,
}

COMPLEXITY_MULTIPLIERS: Dict[str, float] = {
    "finance": 1.5,
    "health": 1.5,
    "legal": 1.4,
    "technology": 1.2,
}

MULTI_SPECIALIZATION_BONUS = 1.15

LARGE_PROJECT_GOAL = 100_000
LARGE_PROJECT_MULTIPLIER = 1.2

MAX_COMPENSATION = 500_000

# Audits of one creator's projects an auditor may hold before a conflict
MAX_AUDITS_SAME_CREATOR = 3

REQUIRED_PHASES: Tuple[str, ...] = ("initial_review", "detailed_analysis", "final_report")

_GENERAL_CRITERIA: List[dict] = [
    {"id": "deliverables_quality", "name": "Deliverables quality", "weight": 30, "required": True},
    {"id": "budget_compliance", "name": "Budget compliance", "weight": 25, "required": True},
    {"id": "timeline_adherence", "name": "Timeline adherence", "weight": 20, "required": True},
    {"id": "impact_evidence", "name": "Impact evidence", "weight": 15, "required": True},
    {"id": "documentation", "name": "Documentation", "weight": 10, "required": False},
]

DEFAULT_CRITERIA: Dict[str, List[dict]] = {
    "general": _GENERAL_CRITERIA,
    "environment": _GENERAL_CRITERIA + [
        {"id": "environmental_impact", "name": "Measured environmental impact", "weight": 20, "required": True},
    ],
    "finance": _GENERAL_CRITERIA + [
        {"id": "financial_controls", "name": "Financial controls", "weight": 25, "required": True},
    ],
    "health": _GENERAL_CRITERIA + [
        {"id": "patient_safety", "name": "Patient safety and ethics", "weight": 25, "required": True},
    ],
    "legal": _GENERAL_CRITERIA + [
        {"id": "regulatory_compliance", "name": "Regulatory compliance", "weight": 25, "required": True},
    ],
}

REQUIRED_DOCUMENTS: Dict[str, List[str]] = {
    "environment": ["impact_report", "site_photos"],
    "education": ["attendance_records", "curriculum"],
    "health": ["ethics_approval", "impact_report"],
    "finance": ["financial_statements", "bank_statements", "invoices"],
    "legal": ["legal_opinions", "compliance_certificates"],
    "technology": ["technical_documentation", "deployment_evidence"],
    "social": ["beneficiary_records", "impact_report"],
}


def estimated_hours_for(category: str) -> int:
    return ESTIMATED_HOURS_BY_CATEGORY.get(category, DEFAULT_ESTIMATED_HOURS)


def criteria_for(category: str) -> List[dict]:
    return [dict(c) for c in DEFAULT_CRITERIA.get(category, DEFAULT_CRITERIA["general"])]


def required_documents_for(category: str) -> List[str]:
    return list(REQUIRED_DOCUMENTS.get(category, []))
