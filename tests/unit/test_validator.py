"""
Unit tests for candidate validation.

Validation is all-or-nothing: a candidate is returned unchanged or
rejected with a SchemaViolation naming the rule that failed.
"""

import copy

import pytest

from coachgen.core.generation.errors import SchemaViolation
from coachgen.core.generation.models import ContentKindName
from coachgen.core.generation.validator import AllowedReferences, OutputValidator

from conftest import baseline_content


@pytest.fixture
def validator() -> OutputValidator:
    return OutputValidator()


class TestValidContent:
    """Baseline content is valid by construction."""

    def test_plan6m_baseline_is_valid(self, validator, plan6m_snapshot):
        content, allowed = baseline_content(ContentKindName.PLAN6M, plan6m_snapshot)
        assert validator.validate(content, ContentKindName.PLAN6M, allowed) is content

    def test_plan3m_baseline_is_valid(self, validator, plan3m_snapshot):
        content, allowed = baseline_content(ContentKindName.PLAN3M, plan3m_snapshot)
        assert validator.validate(content, ContentKindName.PLAN3M, allowed) is content

    def test_sessioncoach_baseline_is_valid(self, validator, sessioncoach_snapshot):
        content, allowed = baseline_content(ContentKindName.SESSIONCOACH, sessioncoach_snapshot)
        assert validator.validate(content, ContentKindName.SESSIONCOACH, allowed) is content

    def test_content_is_not_modified(self, validator, plan3m_snapshot):
        content, allowed = baseline_content(ContentKindName.PLAN3M, plan3m_snapshot)
        before = copy.deepcopy(content)
        validator.validate(content, ContentKindName.PLAN3M, allowed)
        assert content == before


class TestStructuralRejection:
    """Anything structurally off is a `schema` violation."""

    def test_non_object_is_rejected(self, validator):
        with pytest.raises(SchemaViolation) as exc_info:
            validator.validate(["not", "an", "object"], ContentKindName.PLAN6M, AllowedReferences())
        assert exc_info.value.reason == "schema"

    def test_unknown_field_is_rejected(self, validator, plan6m_snapshot):
        content, allowed = baseline_content(ContentKindName.PLAN6M, plan6m_snapshot)
        content["bonus_tip"] = "Buy a new driver"
        with pytest.raises(SchemaViolation) as exc_info:
            validator.validate(content, ContentKindName.PLAN6M, allowed)
        assert exc_info.value.reason == "schema"

    def test_no_type_coercion(self, validator, plan6m_snapshot):
        """A numeric string where an int belongs is not accepted."""
        content, allowed = baseline_content(ContentKindName.PLAN6M, plan6m_snapshot)
        content["themes"][0]["priority"] = "1"
        with pytest.raises(SchemaViolation, match="priority"):
            validator.validate(content, ContentKindName.PLAN6M, allowed)

    def test_value_outside_enumeration(self, validator, plan6m_snapshot):
        content, allowed = baseline_content(ContentKindName.PLAN6M, plan6m_snapshot)
        content["plan_confidence"] = "very_high"
        with pytest.raises(SchemaViolation) as exc_info:
            validator.validate(content, ContentKindName.PLAN6M, allowed)
        assert exc_info.value.reason == "schema"

    def test_wrong_schema_version(self, validator, plan6m_snapshot):
        content, allowed = baseline_content(ContentKindName.PLAN6M, plan6m_snapshot)
        content["schema_version"] = "plan6m_v2"
        with pytest.raises(SchemaViolation):
            validator.validate(content, ContentKindName.PLAN6M, allowed)

    def test_repeated_priority_is_rejected(self, validator, plan6m_snapshot):
        content, allowed = baseline_content(ContentKindName.PLAN6M, plan6m_snapshot)
        content["themes"][1]["priority"] = content["themes"][0]["priority"]
        with pytest.raises(SchemaViolation, match="priority"):
            validator.validate(content, ContentKindName.PLAN6M, allowed)

    def test_inverted_time_window_is_rejected(self, validator, plan6m_snapshot):
        content, allowed = baseline_content(ContentKindName.PLAN6M, plan6m_snapshot)
        content["time_window"] = {"start": "2026-09-01", "end": "2026-03-01"}
        with pytest.raises(SchemaViolation):
            validator.validate(content, ContentKindName.PLAN6M, allowed)

    @pytest.mark.parametrize("start, end", [
        ("2026-02-30", "2026-08-30"),
        ("2026-03-01", "2026-99-99"),
    ])
    def test_impossible_calendar_date_is_rejected(self, validator, plan6m_snapshot, start, end):
        content, allowed = baseline_content(ContentKindName.PLAN6M, plan6m_snapshot)
        content["time_window"] = {"start": start, "end": end}
        with pytest.raises(SchemaViolation) as exc_info:
            validator.validate(content, ContentKindName.PLAN6M, allowed)
        assert exc_info.value.reason == "schema"

    def test_eleven_weeks_is_rejected(self, validator, plan3m_snapshot):
        content, allowed = baseline_content(ContentKindName.PLAN3M, plan3m_snapshot)
        content["weeks"] = content["weeks"][:11]
        with pytest.raises(SchemaViolation, match="weeks"):
            validator.validate(content, ContentKindName.PLAN3M, allowed)

    def test_weeks_out_of_order_are_rejected(self, validator, plan3m_snapshot):
        content, allowed = baseline_content(ContentKindName.PLAN3M, plan3m_snapshot)
        content["weeks"][0], content["weeks"][1] = content["weeks"][1], content["weeks"][0]
        with pytest.raises(SchemaViolation):
            validator.validate(content, ContentKindName.PLAN3M, allowed)

    def test_week_focus_outside_plan_themes(self, validator, plan3m_snapshot):
        content, allowed = baseline_content(ContentKindName.PLAN3M, plan3m_snapshot)
        content["weeks"][5]["focus_theme"] = "putting_start_line_speed"
        with pytest.raises(SchemaViolation, match="focus themes"):
            validator.validate(content, ContentKindName.PLAN3M, allowed)

    def test_non_finite_number_is_rejected(self, validator, sessioncoach_snapshot):
        content, allowed = baseline_content(ContentKindName.SESSIONCOACH, sessioncoach_snapshot)
        content["metadata"]["evidence"][0]["metrics_used"][0]["value"] = float("nan")
        with pytest.raises(SchemaViolation):
            validator.validate(content, ContentKindName.SESSIONCOACH, allowed)

    def test_overlong_text_is_rejected(self, validator, sessioncoach_snapshot):
        content, allowed = baseline_content(ContentKindName.SESSIONCOACH, sessioncoach_snapshot)
        content["display"]["session_summary"] = "x" * 521
        with pytest.raises(SchemaViolation):
            validator.validate(content, ContentKindName.SESSIONCOACH, allowed)


class TestReferenceRejection:
    """Ids outside the run's allowed sets are `reference_not_allowed`."""

    def test_theme_outside_allowed_set(self, validator, plan3m_snapshot):
        content, _ = baseline_content(ContentKindName.PLAN3M, plan3m_snapshot)
        narrow = AllowedReferences(themes={"dispersion_control"}, metrics=set())
        with pytest.raises(SchemaViolation) as exc_info:
            validator.validate(content, ContentKindName.PLAN3M, narrow)
        assert exc_info.value.reason == "reference_not_allowed"
        assert "start_line_control" in str(exc_info.value)

    def test_metric_outside_allowed_set(self, validator, plan6m_snapshot):
        content, allowed = baseline_content(ContentKindName.PLAN6M, plan6m_snapshot)
        narrow = AllowedReferences(themes=allowed.themes, metrics={"carry_avg"})
        with pytest.raises(SchemaViolation) as exc_info:
            validator.validate(content, ContentKindName.PLAN6M, narrow)
        assert exc_info.value.reason == "reference_not_allowed"

    def test_sessioncoach_theme_not_in_plan(self, validator, sessioncoach_snapshot):
        content, allowed = baseline_content(ContentKindName.SESSIONCOACH, sessioncoach_snapshot)
        content["metadata"]["secondary_theme"] = "contact_quality"
        with pytest.raises(SchemaViolation) as exc_info:
            validator.validate(content, ContentKindName.SESSIONCOACH, allowed)
        assert exc_info.value.reason == "reference_not_allowed"


class TestAllowedReferences:
    """Tests for the allowed-id value object."""

    def test_coerces_to_frozensets(self):
        allowed = AllowedReferences(themes=["a", "a"], metrics={"m"})
        assert allowed.themes == frozenset({"a"})
        assert isinstance(allowed.metrics, frozenset)
