"""
Unit tests for two-stage generation.

Whatever the collaborator does, the generator returns valid content. These
tests check which producer wins and what fallback cause is recorded.
"""

import copy

import pytest

from coachgen.core.generation.collaborator import GenerativeCollaboratorAdapter
from coachgen.core.generation.errors import SchemaViolation
from coachgen.core.generation.generator import ContentGenerator, assemble
from coachgen.core.generation.kinds import get_kind
from coachgen.core.generation.models import ContentKindName, GeneratedBy
from coachgen.core.generation.validator import OutputValidator

from conftest import FakeTextClient, baseline_content


def _generator(client=None, timeout_seconds=8.0) -> ContentGenerator:
    collaborator = GenerativeCollaboratorAdapter(
        client, enabled=client is not None, timeout_seconds=timeout_seconds
    )
    return ContentGenerator(OutputValidator(), collaborator)


def _external_body(kind_name, snapshot) -> dict:
    """A valid collaborator body: baseline content minus the envelope, tweaked."""
    content, _ = baseline_content(kind_name, snapshot)
    body = {k: v for k, v in content.items() if k not in get_kind(kind_name).reserved_fields}
    return copy.deepcopy(body)


class TestAssemble:
    """Tests for merging server-supplied envelope fields."""

    def test_envelope_is_merged(self):
        assert assemble({"a": 1}, {"schema_version": "v"}) == {"a": 1, "schema_version": "v"}

    def test_clash_is_rejected(self):
        with pytest.raises(SchemaViolation) as exc_info:
            assemble({"subject_id": "someone-else"}, {"subject_id": "p1"})
        assert exc_info.value.reason == "reserved_field"


class TestContentGenerator:
    """Tests for the external attempt and the baseline fallback."""

    async def test_valid_external_content_wins(self, plan3m_snapshot):
        body = _external_body(ContentKindName.PLAN3M, plan3m_snapshot)
        body["headline"] = "A custom headline from the coach"
        kind = get_kind(ContentKindName.PLAN3M)

        result = await _generator(FakeTextClient(replies=[body])).generate(
            kind, plan3m_snapshot, kind.allowed_references(plan3m_snapshot)
        )

        assert result.generated_by == GeneratedBy.EXTERNAL
        assert result.fallback_cause is None
        assert result.content["headline"] == "A custom headline from the coach"
        assert result.content["skill_tier"] == "intermediate"
        assert result.content["subject_id"] == plan3m_snapshot["subject_id"]
        assert result.reply.input_tokens == 100

    async def test_disabled_collaborator_uses_baseline(self, plan3m_snapshot):
        kind = get_kind(ContentKindName.PLAN3M)
        expected, allowed = baseline_content(ContentKindName.PLAN3M, plan3m_snapshot)

        result = await _generator().generate(kind, plan3m_snapshot, allowed)

        assert result.generated_by == GeneratedBy.DETERMINISTIC
        assert result.fallback_cause == "collaborator_disabled"
        assert result.content == expected
        assert result.reply is None

    async def test_reserved_field_in_body_falls_back(self, plan3m_snapshot):
        body = _external_body(ContentKindName.PLAN3M, plan3m_snapshot)
        body["skill_tier"] = "scratch"
        kind = get_kind(ContentKindName.PLAN3M)

        result = await _generator(FakeTextClient(replies=[body])).generate(
            kind, plan3m_snapshot, kind.allowed_references(plan3m_snapshot)
        )

        assert result.generated_by == GeneratedBy.DETERMINISTIC
        assert result.fallback_cause == "schema_violation"
        assert result.content["skill_tier"] == "intermediate"
        # the rejected reply still counts for telemetry
        assert result.reply is not None

    async def test_disallowed_reference_falls_back(self, sessioncoach_snapshot):
        body = _external_body(ContentKindName.SESSIONCOACH, sessioncoach_snapshot)
        body["metadata"]["primary_theme"] = "putting_start_line_speed"
        kind = get_kind(ContentKindName.SESSIONCOACH)

        result = await _generator(FakeTextClient(replies=[body])).generate(
            kind, sessioncoach_snapshot, kind.allowed_references(sessioncoach_snapshot)
        )

        assert result.generated_by == GeneratedBy.DETERMINISTIC
        assert result.fallback_cause == "schema_violation"
        assert result.content["metadata"]["primary_theme"] == "dispersion_control"

    async def test_impossible_week_date_falls_back(self, plan3m_snapshot):
        body = _external_body(ContentKindName.PLAN3M, plan3m_snapshot)
        body["weeks"][1]["date_window"] = {"start": "2026-02-30", "end": "2026-03-06"}
        kind = get_kind(ContentKindName.PLAN3M)

        result = await _generator(FakeTextClient(replies=[body])).generate(
            kind, plan3m_snapshot, kind.allowed_references(plan3m_snapshot)
        )

        assert result.generated_by == GeneratedBy.DETERMINISTIC
        assert result.fallback_cause == "schema_violation"
        assert result.content["weeks"][1]["date_window"]["start"] != "2026-02-30"
        assert result.reply is not None

    async def test_malformed_reply_falls_back(self, plan6m_snapshot):
        kind = get_kind(ContentKindName.PLAN6M)
        result = await _generator(FakeTextClient(replies=["Sorry, no."])).generate(
            kind, plan6m_snapshot, kind.allowed_references(plan6m_snapshot)
        )
        assert result.generated_by == GeneratedBy.DETERMINISTIC
        assert result.fallback_cause == "malformed_output"
        assert result.reply.model == "fake-model"
        assert result.reply.output_tokens == 50

    async def test_timeout_falls_back(self, plan6m_snapshot):
        kind = get_kind(ContentKindName.PLAN6M)
        client = FakeTextClient(delay=1.0)
        result = await _generator(client, timeout_seconds=0.05).generate(
            kind, plan6m_snapshot, kind.allowed_references(plan6m_snapshot)
        )
        assert result.fallback_cause == "collaborator_timeout"
        assert client.cancelled

    async def test_client_error_falls_back(self, plan6m_snapshot):
        kind = get_kind(ContentKindName.PLAN6M)
        result = await _generator(FakeTextClient(replies=[ConnectionError("down")])).generate(
            kind, plan6m_snapshot, kind.allowed_references(plan6m_snapshot)
        )
        assert result.fallback_cause == "collaborator_error"
