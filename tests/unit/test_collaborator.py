"""
Unit tests for the collaborator adapter and reply parsing.

The text model is replaced by FakeTextClient, so these tests exercise
the timeout, error mapping and parsing without any network.
"""

import pytest

from coachgen.core.generation.collaborator import (
    GenerativeCollaboratorAdapter,
    build_prompts,
    parse_json_object,
)
from coachgen.core.generation.errors import (
    CollaboratorDisabled,
    CollaboratorError,
    CollaboratorTimeout,
    MalformedOutput,
)
from coachgen.core.generation.validator import AllowedReferences
from coachgen.infrastructure.anthropic.client import RateLimitExceeded

from conftest import FakeTextClient


ALLOWED = AllowedReferences(themes={"distance_control"}, metrics={"carry_avg"})
RESERVED = frozenset({"schema_version", "subject_id"})


class TestParseJsonObject:
    """Tests for pulling a JSON object out of model text."""

    def test_plain_object(self):
        assert parse_json_object('{"a": 1}') == {"a": 1}

    def test_fenced_object(self):
        assert parse_json_object('```json\n{"a": 1}\n```') == {"a": 1}

    def test_object_with_surrounding_chatter(self):
        text = 'Here is the plan:\n{"a": {"b": 2}}\nLet me know!'
        assert parse_json_object(text) == {"a": {"b": 2}}

    @pytest.mark.parametrize("text", ["", "no json here", "[1, 2, 3]", '"just a string"', "{broken"])
    def test_anything_else_is_malformed(self, text):
        with pytest.raises(MalformedOutput):
            parse_json_object(text)


class TestBuildPrompts:
    """Tests for prompt construction."""

    def test_prompts_carry_instructions_and_snapshot(self):
        system_prompt, user_prompt = build_prompts(
            "Write a plan.",
            {"b": 1, "a": 2},
            ALLOWED,
            RESERVED,
        )
        assert "Write a plan." in system_prompt
        assert '{"a":2,"b":1}' in user_prompt
        assert "Allowed theme ids: distance_control" in user_prompt
        assert "Allowed metric ids: carry_avg" in user_prompt
        assert "schema_version, subject_id" in user_prompt

    def test_empty_allowed_sets_are_explicit(self):
        _, user_prompt = build_prompts("x", {}, AllowedReferences(), RESERVED)
        assert "Allowed theme ids: (none)" in user_prompt


class TestGenerativeCollaboratorAdapter:
    """Tests for the adapter's failure handling."""

    async def test_returns_parsed_proposal(self):
        client = FakeTextClient(replies=[{"headline": "hi"}])
        adapter = GenerativeCollaboratorAdapter(client)

        proposal = await adapter.propose("x", {"a": 1}, ALLOWED, RESERVED)

        assert proposal.content == {"headline": "hi"}
        assert proposal.reply.model == "fake-model"
        assert len(client.calls) == 1

    async def test_disabled_does_no_work(self):
        client = FakeTextClient()
        adapter = GenerativeCollaboratorAdapter(client, enabled=False)

        with pytest.raises(CollaboratorDisabled):
            await adapter.propose("x", {}, ALLOWED, RESERVED)
        assert client.calls == []
        assert not adapter.enabled

    async def test_missing_client_counts_as_disabled(self):
        adapter = GenerativeCollaboratorAdapter(None, enabled=True)
        with pytest.raises(CollaboratorDisabled):
            await adapter.propose("x", {}, ALLOWED, RESERVED)

    async def test_timeout_cancels_the_call(self):
        client = FakeTextClient(delay=1.0)
        adapter = GenerativeCollaboratorAdapter(client, timeout_seconds=0.05)

        with pytest.raises(CollaboratorTimeout):
            await adapter.propose("x", {}, ALLOWED, RESERVED)
        assert client.cancelled

    async def test_client_errors_are_wrapped(self):
        client = FakeTextClient(replies=[RateLimitExceeded("slow down")])
        adapter = GenerativeCollaboratorAdapter(client)

        with pytest.raises(CollaboratorError) as exc_info:
            await adapter.propose("x", {}, ALLOWED, RESERVED)
        assert isinstance(exc_info.value.__cause__, RateLimitExceeded)

    async def test_non_json_reply_is_malformed(self):
        adapter = GenerativeCollaboratorAdapter(FakeTextClient(replies=["I'd rather not."]))
        with pytest.raises(MalformedOutput):
            await adapter.propose("x", {}, ALLOWED, RESERVED)

    async def test_malformed_error_carries_the_reply(self):
        adapter = GenerativeCollaboratorAdapter(FakeTextClient(replies=["I'd rather not."]))

        with pytest.raises(MalformedOutput) as exc_info:
            await adapter.propose("x", {}, ALLOWED, RESERVED)

        assert exc_info.value.reply.model == "fake-model"
        assert exc_info.value.reply.input_tokens == 100

    def test_rejects_non_positive_timeout(self):
        with pytest.raises(ValueError):
            GenerativeCollaboratorAdapter(FakeTextClient(), timeout_seconds=0)
