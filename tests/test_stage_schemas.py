"""Tests for stage payload schemas and the stage registry.

Tests cover:
- The fixed seven-stage registry (order, titles, required sign-offs)
- Per-stage payload rules
- Tag matching between payload and stage
- Sign-off validation error keys
"""

import pytest

from hydrotrack.db.models.base import StageKind
from hydrotrack.services.errors import StageValidationError
from hydrotrack.services.stage_schemas import (
    STAGE_DEFINITIONS,
    CoatingsData,
    TestAcceptanceData,
    dump_signoffs,
    get_stage_definition,
    validate_signoffs,
    validate_stage_payload,
)
from tests.factories import QC_SIGNATURE, stage_data, stage_signoffs


def _errors(kind: StageKind, data: dict) -> dict[str, list[str]]:
    with pytest.raises(StageValidationError) as exc_info:
        validate_stage_payload(kind, data)
    return exc_info.value.errors


class TestStageRegistry:
    """Tests for STAGE_DEFINITIONS."""

    def test_order_and_titles(self):
        assert [(d.order, d.title) for d in STAGE_DEFINITIONS] == [
            (1, "Pre-Acceptance"),
            (2, "Test Acceptance"),
            (3, "Drain/Flush Acceptance"),
            (4, "Post-Acceptance"),
            (5, "Coatings Acceptance"),
            (6, "Insulation Acceptance"),
            (7, "Final Acceptance"),
        ]

    def test_required_signoffs(self):
        assert get_stage_definition(StageKind.PRE_ACCEPTANCE).required_signoffs == ("qc_rep",)
        assert get_stage_definition(StageKind.TEST_ACCEPTANCE).required_signoffs == (
            "qc_rep",
            "client_rep",
        )
        assert get_stage_definition(StageKind.FINAL_ACCEPTANCE).required_signoffs == (
            "qc_rep",
            "client_rep",
            "mfg_rep",
        )

    def test_only_last_stage_is_final(self):
        assert [d.is_final for d in STAGE_DEFINITIONS] == [False] * 6 + [True]

    @pytest.mark.parametrize("definition", STAGE_DEFINITIONS, ids=lambda d: d.kind.value)
    def test_factory_payloads_valid(self, definition):
        payload = validate_stage_payload(definition.kind, stage_data(definition.order))
        assert isinstance(payload, definition.payload_model)


class TestPayloadRules:
    """Tests for stage-specific payload rules."""

    def test_pre_acceptance_must_be_complete(self):
        errors = _errors(StageKind.PRE_ACCEPTANCE, stage_data(1, inspection_complete=False))
        assert errors == {"inspection_complete": ["Pre-acceptance inspection must be complete"]}

    def test_calibration_date_per_gauge(self):
        data = stage_data(2, calibration_dates=["2026-01-10"])
        errors = _errors(StageKind.TEST_ACCEPTANCE, data)
        assert errors == {"stage_data": ["Provide one calibration date per gauge"]}

    def test_at_least_one_gauge(self):
        errors = _errors(
            StageKind.TEST_ACCEPTANCE, stage_data(2, gauge_numbers=[], calibration_dates=[])
        )
        assert "gauge_numbers" in errors

    @pytest.mark.parametrize("time_held", [0, -10, "forever"])
    def test_time_held_positive(self, time_held):
        errors = _errors(StageKind.TEST_ACCEPTANCE, stage_data(2, time_held=time_held))
        assert "time_held" in errors

    def test_calibration_dates_parsed(self):
        payload = validate_stage_payload(StageKind.TEST_ACCEPTANCE, stage_data(2))
        assert isinstance(payload, TestAcceptanceData)
        assert payload.calibration_dates[0].isoformat() == "2026-01-10"

    def test_defects_need_description(self):
        errors = _errors(StageKind.POST_ACCEPTANCE, stage_data(4, defects_found=True))
        assert errors == {"stage_data": ["Describe the defects found"]}

        payload = validate_stage_payload(
            StageKind.POST_ACCEPTANCE,
            stage_data(4, defects_found=True, defect_description="Weld 14 undercut"),
        )
        assert payload.defect_description == "Weld 14 undercut"

    def test_cure_not_before_application(self):
        errors = _errors(StageKind.COATINGS, stage_data(5, cure_date="2026-03-06"))
        assert errors == {"stage_data": ["Cure date cannot be before the application date"]}

    def test_same_day_cure_allowed(self):
        payload = validate_stage_payload(StageKind.COATINGS, stage_data(5, cure_date="2026-03-07"))
        assert isinstance(payload, CoatingsData)

    def test_invalid_date(self):
        errors = _errors(StageKind.DRAIN_FLUSH, stage_data(3, drain_date="yesterday"))
        assert "drain_date" in errors

    def test_blank_final_notes(self):
        errors = _errors(StageKind.FINAL_ACCEPTANCE, {"final_notes": "   "})
        assert "final_notes" in errors

    def test_unknown_field_rejected(self):
        errors = _errors(StageKind.INSULATION, stage_data(6, thickness_mm=50))
        assert "thickness_mm" in errors

    def test_missing_payload(self):
        errors = _errors(StageKind.INSULATION, None)
        assert set(errors) == {"insulation_type", "installation_date"}

    def test_notes_allowed_everywhere(self):
        data = stage_data(3, notes="Potable water")
        payload = validate_stage_payload(StageKind.DRAIN_FLUSH, data)
        assert payload.notes == "Potable water"


class TestPayloadTag:
    """Tests for the stage tag carried in the payload."""

    def test_tag_added_when_omitted(self):
        payload = validate_stage_payload(StageKind.INSULATION, stage_data(6))
        assert payload.model_dump()["stage"] == "insulation"

    def test_matching_tag_accepted(self):
        validate_stage_payload(StageKind.INSULATION, stage_data(6, stage="insulation"))

    def test_mismatched_tag_rejected(self):
        errors = _errors(StageKind.INSULATION, stage_data(6, stage="coatings"))
        assert list(errors) == ["stage"]


class TestSignoffValidation:
    """Tests for sign-off maps."""

    def test_required_roles_reported(self):
        with pytest.raises(StageValidationError) as exc_info:
            validate_signoffs(StageKind.FINAL_ACCEPTANCE, {"qc_rep": QC_SIGNATURE})
        assert set(exc_info.value.errors) == {"signoffs.client_rep", "signoffs.mfg_rep"}

    def test_null_signoff_counts_as_missing(self):
        with pytest.raises(StageValidationError) as exc_info:
            validate_signoffs(StageKind.PRE_ACCEPTANCE, {"qc_rep": None})
        assert list(exc_info.value.errors) == ["signoffs.qc_rep"]

    def test_field_errors_keyed_by_role(self):
        with pytest.raises(StageValidationError) as exc_info:
            validate_signoffs(
                StageKind.PRE_ACCEPTANCE, {"qc_rep": {"name": "Dana Reyes", "date": "soon"}}
            )
        assert list(exc_info.value.errors) == ["signoffs.qc_rep.date"]

    def test_extra_roles_accepted(self):
        signoffs = {**stage_signoffs(1), "inspector": {"name": "Jo Ortiz", "date": "2026-03-02"}}
        validated = validate_signoffs(StageKind.PRE_ACCEPTANCE, signoffs)
        assert set(validated) == {"qc_rep", "inspector"}

    def test_dump_is_json_ready(self):
        validated = validate_signoffs(StageKind.PRE_ACCEPTANCE, stage_signoffs(1))
        assert dump_signoffs(validated) == {
            "qc_rep": {"name": "Dana Reyes", "date": "2026-03-02", "user_id": None}
        }
