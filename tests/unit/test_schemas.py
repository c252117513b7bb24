"""Unit tests for request schemas."""

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from src.kernel.errors import InvalidArgument
from src.kernel.models.escrow_release import ReleaseType
from src.schemas.audit import AcceptanceRequest, AssignmentRequest
from src.schemas.common import parse_request
from src.schemas.escrow import ReleaseRequest

PROJECT_ID = str(uuid.uuid4())


class TestReleaseRequest:
    """Tests for ReleaseRequest."""

    def test_camel_case_payload(self):
        milestone_id = uuid.uuid4()
        request = ReleaseRequest.model_validate({
            "releaseType": "milestone_completion",
            "projectId": PROJECT_ID,
            "milestoneId": str(milestone_id),
        })
        assert request.release_type == ReleaseType.MILESTONE_COMPLETION
        assert request.milestone_id == milestone_id
        assert request.notify_contributors is True
        assert request.bypass_safety_checks is False

    def test_milestone_release_requires_milestone_id(self):
        with pytest.raises(ValidationError, match="milestoneId is required"):
            ReleaseRequest.model_validate({
                "releaseType": "milestone_completion",
                "projectId": PROJECT_ID,
            })

    @pytest.mark.parametrize("release_type", ["emergency_release", "admin_override"])
    def test_privileged_release_requires_reason(self, release_type):
        with pytest.raises(ValidationError, match="releaseReason is required"):
            ReleaseRequest.model_validate({"releaseType": release_type, "projectId": PROJECT_ID})

    def test_short_reason_rejected(self):
        with pytest.raises(ValidationError):
            ReleaseRequest.model_validate({
                "releaseType": "admin_override",
                "projectId": PROJECT_ID,
                "releaseReason": "too short",
            })

    @pytest.mark.parametrize("percentage", [0, 101])
    def test_percentage_bounds(self, percentage):
        with pytest.raises(ValidationError):
            ReleaseRequest.model_validate({
                "releaseType": "admin_override",
                "projectId": PROJECT_ID,
                "releaseReason": "Creator relocated the project site",
                "releasePercentage": percentage,
            })

    def test_unknown_release_type(self):
        with pytest.raises(ValidationError):
            ReleaseRequest.model_validate({"releaseType": "partial", "projectId": PROJECT_ID})

    def test_parse_request_names_field(self):
        with pytest.raises(InvalidArgument) as exc:
            parse_request(ReleaseRequest, {"releaseType": "project_completion", "projectId": "nope"})
        assert exc.value.field == "projectId"
        assert exc.value.message.startswith("projectId:")


class TestAssignmentRequest:
    """Tests for AssignmentRequest."""

    def payload(self, **overrides):
        data = {
            "projectId": PROJECT_ID,
            "auditorId": str(uuid.uuid4()),
            "specializations": ["environmental"],
            "deadline": (datetime.now(timezone.utc) + timedelta(days=14)).isoformat(),
        }
        data.update(overrides)
        return data

    def test_valid(self):
        request = AssignmentRequest.model_validate(self.payload())
        assert request.priority.value == "medium"
        assert request.compensation is None

    def test_deadline_in_past(self):
        past = (datetime.now(timezone.utc) - timedelta(days=1)).isoformat()
        with pytest.raises(ValidationError, match="Deadline must be in the future"):
            AssignmentRequest.model_validate(self.payload(deadline=past))

    def test_empty_specializations(self):
        with pytest.raises(ValidationError):
            AssignmentRequest.model_validate(self.payload(specializations=[]))

    def test_unknown_specialization(self):
        with pytest.raises(ValidationError):
            AssignmentRequest.model_validate(self.payload(specializations=["astrology"]))

    def test_duplicate_specializations_collapsed(self):
        request = AssignmentRequest.model_validate(
            self.payload(specializations=["financial", "legal", "financial"])
        )
        assert request.specializations == ["financial", "legal"]

    @pytest.mark.parametrize("compensation", [19_999, 5_000_001])
    def test_compensation_bounds(self, compensation):
        with pytest.raises(ValidationError):
            AssignmentRequest.model_validate(self.payload(compensation=compensation))


class TestAcceptanceRequest:
    """Tests for AcceptanceRequest."""

    def test_naive_completion_date_becomes_utc(self):
        request = AcceptanceRequest.model_validate({
            "estimatedCompletionDate": "2026-11-01T12:00:00",
        })
        assert request.estimated_completion_date.tzinfo is not None

    def test_timeline_phase_days_bounded(self):
        with pytest.raises(ValidationError):
            AcceptanceRequest.model_validate({
                "estimatedCompletionDate": "2026-11-01T12:00:00Z",
                "proposedTimeline": [
                    {"phase": "initial_review", "description": "Read docs", "estimatedDays": 31},
                ],
            })

    def test_acceptance_note_length(self):
        with pytest.raises(ValidationError):
            AcceptanceRequest.model_validate({
                "estimatedCompletionDate": "2026-11-01T12:00:00Z",
                "acceptanceNote": "x" * 501,
            })
