"""
Shared fixtures for unit tests.

Everything runs against the in-memory Snowflake mock and fake text
clients. No network, no database.
"""

import asyncio
import json
from datetime import datetime
from typing import Any, Optional

import pytest

from coachgen.core.generation.collaborator import CollaboratorReply, GenerativeCollaboratorAdapter
from coachgen.core.generation.engine import GenerationEngine
from coachgen.core.generation.generator import ContentGenerator, assemble
from coachgen.core.generation.kinds import get_kind
from coachgen.core.generation.models import AuthContext, ContentKindName, Role
from coachgen.core.generation.schemas import THEME_ENUM
from coachgen.core.generation.validator import OutputValidator
from coachgen.infrastructure.snowflake.client import MockSnowflakeConnection
from coachgen.infrastructure.snowflake.repositories import (
    FactRepository,
    PointerRepository,
    TelemetryRepository,
    VersionRepository,
)


SUBJECT = "player-1"

BASE_METRICS = {
    "carry_avg": 150.0,
    "offline_dispersion_p50": 12.5,
    "smash_factor_avg": 1.38,
}


class FakeTextClient:
    """
    Scripted stand-in for the Claude client.

    `replies` are returned in order (the last one repeats). A reply that is
    an Exception instance is raised instead. `delay` makes each call sleep
    first, which is how timeouts are exercised.
    """

    def __init__(self, replies: Optional[list] = None, delay: float = 0.0) -> None:
        self.replies = list(replies or ["{}"])
        self.delay = delay
        self.calls: list[tuple[str, str]] = []
        self.cancelled = False

    async def complete(self, system_prompt: str, user_prompt: str) -> CollaboratorReply:
        self.calls.append((system_prompt, user_prompt))
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise

        reply = self.replies[min(len(self.calls), len(self.replies)) - 1]
        if isinstance(reply, Exception):
            raise reply
        text = reply if isinstance(reply, str) else json.dumps(reply)
        return CollaboratorReply(
            text=text,
            model="fake-model",
            input_tokens=100,
            output_tokens=50,
            latency_ms=1,
            cost_usd=0.001,
        )


def make_engine(
    conn: MockSnowflakeConnection,
    client: Optional[FakeTextClient] = None,
    timeout_seconds: float = 8.0,
    max_write_attempts: int = 3,
    versions: Optional[VersionRepository] = None,
    telemetry: Any = "default",
) -> GenerationEngine:
    collaborator = GenerativeCollaboratorAdapter(
        client=client,
        enabled=client is not None,
        timeout_seconds=timeout_seconds,
    )
    return GenerationEngine(
        versions=versions or VersionRepository(conn),
        pointers=PointerRepository(conn),
        facts=FactRepository(conn),
        generator=ContentGenerator(OutputValidator(), collaborator),
        telemetry=TelemetryRepository(conn) if telemetry == "default" else telemetry,
        max_write_attempts=max_write_attempts,
    )


def baseline_content(kind_name: ContentKindName, snapshot: dict) -> tuple[dict, Any]:
    """Full (envelope merged) baseline content for a snapshot, plus its allowed refs."""
    kind = get_kind(kind_name)
    allowed = kind.allowed_references(snapshot)
    return assemble(kind.baseline(snapshot, allowed), kind.envelope(snapshot)), allowed


@pytest.fixture
def conn() -> MockSnowflakeConnection:
    return MockSnowflakeConnection()


@pytest.fixture
def seeded_conn(conn) -> MockSnowflakeConnection:
    """A connection with one ingested session for SUBJECT."""
    conn._add_snapshot(
        SUBJECT, "s1", BASE_METRICS,
        created_at=datetime(2026, 3, 1, 10, 0),
        handicap=8.0,
    )
    return conn


@pytest.fixture
def user() -> AuthContext:
    return AuthContext(actor="user-7", role=Role.USER)


@pytest.fixture
def service() -> AuthContext:
    return AuthContext(actor="service", role=Role.SERVICE)


@pytest.fixture
def admin() -> AuthContext:
    return AuthContext(actor="admin-1", role=Role.ADMIN)


@pytest.fixture
def plan6m_snapshot() -> dict:
    return {
        "schema_version": "plan6m_v1",
        "subject_id": SUBJECT,
        "as_of": "2026-03-01",
        "sessions": [
            {"session_id": "s1", "data_hash": "h1", "metrics": dict(BASE_METRICS)},
        ],
        "themes": list(THEME_ENUM),
    }


@pytest.fixture
def plan3m_snapshot() -> dict:
    return {
        "schema_version": "plan3m_v1.1",
        "subject_id": SUBJECT,
        "as_of": "2026-03-01",
        "session_id": "s1",
        "stats_hash": "h1",
        "metrics": dict(BASE_METRICS),
        "handicap": 8.0,
        "skill_tier": "intermediate",
        "parent_plan": None,
    }


@pytest.fixture
def sessioncoach_snapshot() -> dict:
    return {
        "schema_version": "sessioncoach_v1",
        "subject_id": SUBJECT,
        "session_id": "s2",
        "stats_hash": "h2",
        "metrics": {"carry_avg": 152.0, "offline_dispersion_p50": 10.0},
        "previous": {
            "session_id": "s1",
            "metrics": {"carry_avg": 150.0, "offline_dispersion_p50": 12.5},
        },
        "plan": {
            "plan_id": "plan-v1",
            "themes": ["dispersion_control", "distance_control"],
        },
    }
