"""
Unit tests for stable content addressing.

The cache protocol depends on one property above all: the same logical
snapshot always hashes the same. These tests pin that down.
"""

from datetime import date, datetime
from uuid import UUID

import pytest

from coachgen.core.generation.hashing import CIRCULAR_PLACEHOLDER, stable_hash, stable_stringify
from coachgen.core.generation.models import ContentKindName


class TestStableStringify:
    """Tests for the canonical JSON form."""

    def test_key_order_does_not_matter(self):
        """Insertion order is irrelevant; keys come out sorted."""
        assert stable_stringify({"b": 1, "a": 2}) == stable_stringify({"a": 2, "b": 1})
        assert stable_stringify({"b": 1, "a": 2}) == '{"a":2,"b":1}'

    def test_nested_keys_are_sorted(self):
        value = {"z": {"y": 1, "x": [{"d": 1, "c": 2}]}}
        assert stable_stringify(value) == '{"z":{"x":[{"c":2,"d":1}],"y":1}}'

    def test_list_order_is_preserved(self):
        """Lists are sequences, so order is meaningful."""
        assert stable_stringify([2, 1]) != stable_stringify([1, 2])

    def test_self_reference_becomes_placeholder(self):
        """A cycle renders as a placeholder instead of recursing forever."""
        value: dict = {"name": "loop"}
        value["self"] = value
        assert stable_stringify(value) == f'{{"name":"loop","self":"{CIRCULAR_PLACEHOLDER}"}}'

    def test_shared_reference_is_not_circular(self):
        """The same object twice, side by side, is not a cycle."""
        shared = {"v": 1}
        assert stable_stringify({"a": shared, "b": shared}) == '{"a":{"v":1},"b":{"v":1}}'

    def test_special_types_are_canonicalized(self):
        value = {
            "when": datetime(2026, 3, 1, 10, 0),
            "day": date(2026, 3, 1),
            "id": UUID("12345678-1234-5678-1234-567812345678"),
            "kind": ContentKindName.PLAN3M,
            "tags": {"b", "a"},
            "pair": (1, 2),
        }
        assert stable_stringify(value) == (
            '{"day":"2026-03-01","id":"12345678-1234-5678-1234-567812345678",'
            '"kind":"plan3m","pair":[1,2],"tags":["a","b"],"when":"2026-03-01T10:00:00"}'
        )

    def test_non_ascii_is_kept(self):
        assert stable_stringify({"note": "café"}) == '{"note":"café"}'


class TestStableHash:
    """Tests for the hex digest."""

    def test_hash_is_64_hex_chars(self):
        digest = stable_hash({"a": 1})
        assert len(digest) == 64
        assert all(c in "0123456789abcdef" for c in digest)

    def test_equal_snapshots_hash_equal(self):
        first = {"subject_id": "p1", "metrics": {"carry_avg": 150.0, "smash_factor_avg": 1.4}}
        second = {"metrics": {"smash_factor_avg": 1.4, "carry_avg": 150.0}, "subject_id": "p1"}
        assert stable_hash(first) == stable_hash(second)

    def test_any_value_change_changes_hash(self):
        assert stable_hash({"carry_avg": 150.0}) != stable_hash({"carry_avg": 151.0})

    def test_int_and_float_are_distinct(self):
        """1 and 1.0 serialize differently, so they are different inputs."""
        assert stable_hash({"v": 1}) != stable_hash({"v": 1.0})


class TestMappingKeys:
    """Keys must stay distinct in the canonical form."""

    def test_enum_keys_render_as_their_value(self):
        assert stable_stringify({ContentKindName.PLAN6M: 1}) == '{"plan6m":1}'

    def test_non_string_key_is_rejected(self):
        with pytest.raises(TypeError, match="int"):
            stable_hash({1: "x", "1": "y"})

    def test_colliding_keys_are_rejected(self):
        with pytest.raises(TypeError, match="collide"):
            stable_hash({ContentKindName.PLAN3M: 1, "plan3m": 2})
