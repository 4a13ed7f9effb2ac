"""Tests for tracker data models."""

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from apptrail.tracker.models import (
    ApplicationRecord,
    ApplicationStatus,
    ExtractionMethod,
    Observation,
    compute_record_id,
    is_valid_transition,
    newest_first,
    oldest_first,
)


class TestApplicationStatus:
    """Test the ApplicationStatus enum and transition table."""

    def test_status_values(self):
        """Statuses serialize to lowercase strings."""
        assert ApplicationStatus.APPLIED.value == "applied"
        assert ApplicationStatus.INTERVIEW.value == "interview"
        assert ApplicationStatus.OFFER.value == "offer"
        assert ApplicationStatus.REJECTED.value == "rejected"
        assert ApplicationStatus.WITHDRAWN.value == "withdrawn"

    def test_terminal_statuses(self):
        assert ApplicationStatus.REJECTED.is_terminal()
        assert ApplicationStatus.WITHDRAWN.is_terminal()
        assert ApplicationStatus.OFFER.is_terminal()
        assert not ApplicationStatus.APPLIED.is_terminal()
        assert not ApplicationStatus.INTERVIEW.is_terminal()

    def test_offer_is_terminal_but_can_still_end(self):
        assert ApplicationStatus.OFFER.is_terminal()
        assert is_valid_transition(ApplicationStatus.OFFER, ApplicationStatus.WITHDRAWN)
        assert not is_valid_transition(
            ApplicationStatus.OFFER, ApplicationStatus.INTERVIEW
        )

    @pytest.mark.parametrize(
        "proposed",
        [
            ApplicationStatus.INTERVIEW,
            ApplicationStatus.OFFER,
            ApplicationStatus.REJECTED,
            ApplicationStatus.WITHDRAWN,
        ],
    )
    def test_applied_can_move_anywhere(self, proposed):
        assert is_valid_transition(ApplicationStatus.APPLIED, proposed)

    def test_interview_can_repeat(self):
        """Another interview round is a valid transition."""
        assert is_valid_transition(ApplicationStatus.INTERVIEW, ApplicationStatus.INTERVIEW)

    def test_offer_only_moves_to_rejected_or_withdrawn(self):
        assert is_valid_transition(ApplicationStatus.OFFER, ApplicationStatus.REJECTED)
        assert is_valid_transition(ApplicationStatus.OFFER, ApplicationStatus.WITHDRAWN)
        assert not is_valid_transition(ApplicationStatus.OFFER, ApplicationStatus.INTERVIEW)
        assert not is_valid_transition(ApplicationStatus.OFFER, ApplicationStatus.APPLIED)

    def test_rejected_cannot_regress(self):
        assert not is_valid_transition(
            ApplicationStatus.REJECTED, ApplicationStatus.INTERVIEW
        )
        assert not is_valid_transition(ApplicationStatus.REJECTED, ApplicationStatus.APPLIED)

    def test_nothing_moves_back_to_applied(self):
        assert not is_valid_transition(
            ApplicationStatus.INTERVIEW, ApplicationStatus.APPLIED
        )

    def test_every_status_has_a_suggested_action(self):
        for status in ApplicationStatus:
            assert status.suggested_action
            assert status.description


class TestObservation:
    """Test Observation validation at the ingestion boundary."""

    def test_minimal_observation(self):
        obs = Observation(source_id="m1", timestamp=datetime(2024, 1, 1, tzinfo=UTC))
        assert obs.company is None
        assert obs.confidence == 0.5
        assert obs.extraction_method == ExtractionMethod.RULE_BASED

    def test_blank_source_id_is_rejected(self):
        with pytest.raises(ValidationError):
            Observation(source_id="   ", timestamp=datetime(2024, 1, 1, tzinfo=UTC))

    def test_invalid_timestamp_is_rejected(self):
        with pytest.raises(ValidationError):
            Observation(source_id="m1", timestamp="not a date")

    def test_confidence_out_of_range_is_rejected(self):
        with pytest.raises(ValidationError):
            Observation(
                source_id="m1",
                timestamp=datetime(2024, 1, 1, tzinfo=UTC),
                confidence=1.5,
            )

    def test_naive_timestamp_is_treated_as_utc(self):
        obs = Observation(source_id="m1", timestamp=datetime(2024, 1, 1, 12, 0))
        assert obs.timestamp.tzinfo is not None
        assert obs.timestamp.utcoffset().total_seconds() == 0

    def test_observation_is_immutable(self):
        obs = Observation(source_id="m1", timestamp=datetime(2024, 1, 1, tzinfo=UTC))
        with pytest.raises(ValidationError):
            obs.company = "Acme"

    def test_get_field_trims_and_drops_blank(self, make_observation):
        obs = make_observation("m1", company="  Acme  ", position="   ")
        assert obs.get_field("company") == "Acme"
        assert obs.get_field("position") is None
        assert obs.get_field("salary") is None

    def test_extraction_method_accepts_wire_value(self, make_observation):
        obs = make_observation("m1", extraction_method="ai-enhanced")
        assert obs.extraction_method == ExtractionMethod.AI_ENHANCED


class TestOrdering:
    """Observations order by timestamp, then source id."""

    def test_newest_first(self, make_observation):
        older = make_observation("a", day=0)
        newer = make_observation("b", day=1)
        assert newest_first([older, newer]) == [newer, older]
        assert oldest_first([newer, older]) == [older, newer]

    def test_equal_timestamps_order_by_source_id(self, make_observation):
        first = make_observation("a", day=0)
        second = make_observation("b", day=0)
        assert oldest_first([second, first]) == [first, second]
        assert newest_first([first, second]) == [second, first]


class TestApplicationRecord:
    """Test ApplicationRecord identity and serialization."""

    def test_record_id_ignores_case_and_spacing(self):
        assert compute_record_id("Acme Corp", "Backend Engineer") == compute_record_id(
            "  acme   corp", "BACKEND ENGINEER "
        )

    def test_record_id_differs_per_position(self):
        assert compute_record_id("Acme", "Backend") != compute_record_id("Acme", "Frontend")

    def test_to_dict_from_dict_preserves_fields(self):
        now = datetime(2024, 3, 1, 9, 0, tzinfo=UTC)
        record = ApplicationRecord(
            id="abc",
            company="Acme",
            position="Backend Engineer",
            status=ApplicationStatus.INTERVIEW,
            applied_date="2024-02-01",
            created_at=now,
            updated_at=now,
            contact_email="jane@acme.com",
            location="Tel Aviv",
        )

        data = record.to_dict()
        assert data["status"] == "interview"
        assert data["created_at"] == now.isoformat()

        restored = ApplicationRecord.from_dict(data)
        assert restored == record

    def test_from_dict_derives_missing_id(self):
        record = ApplicationRecord.from_dict(
            {"company": "Acme", "position": "Backend Engineer", "status": "applied"}
        )
        assert record.id == compute_record_id("Acme", "Backend Engineer")
        assert record.applied_date == ""
