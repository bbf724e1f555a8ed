"""
Content kind definitions.

A content kind bundles everything the engine needs to know about one type
of coaching content:
- Where its versions live (thread) and which pointer marks the current one
- Which upstream facts feed it, and how they become an input snapshot
- Which theme and metric ids its content may reference
- Its baseline, its collaborator instructions and its activation policy

The set of kinds is closed. Adding one means adding a class here and a
schema in `schemas.py`.
"""

from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol

from .baseline import plan3m_baseline, plan6m_baseline, sessioncoach_baseline
from .errors import InputMissing, InvalidRequest
from .models import ActivationPolicy, ContentKindName, ContentVersion, StatsSnapshot
from .schemas import (
    METRIC_REGISTRY,
    PLAN3M_SCHEMA_VERSION,
    PLAN6M_SCHEMA_VERSION,
    SESSIONCOACH_SCHEMA_VERSION,
    THEME_ENUM,
)
from .validator import AllowedReferences


# ---------------------------------------------------------------------------
# Protocols (interfaces)
# ---------------------------------------------------------------------------

class FactProvider(Protocol):
    """
    Read access to upstream performance statistics.

    Ingestion writes these; the engine only reads them.
    """

    def recent_snapshots(self, subject_id: str, limit: int) -> list[StatsSnapshot]:
        """Most recent snapshots for the subject, newest first."""
        ...

    def session_snapshot(self, subject_id: str, session_id: str) -> Optional[StatsSnapshot]:
        """The snapshot for one session, if ingested."""
        ...

    def previous_snapshot(self, subject_id: str, session_id: str) -> Optional[StatsSnapshot]:
        """The snapshot of the session before `session_id`, if any."""
        ...


# (kind, subject_id) -> the valid active version for that kind, or None
ActiveVersionLookup = Callable[[ContentKindName, str], Optional[ContentVersion]]


@dataclass
class SnapshotSources:
    """What a kind may read while building its input snapshot."""
    facts: FactProvider
    active_version: ActiveVersionLookup


PLAN6M_LOOKBACK = 10


def skill_tier_for(handicap: Optional[float]) -> str:
    if handicap is None:
        return "unknown"
    if handicap <= 0.5:
        return "scratch"
    if handicap <= 5:
        return "advanced"
    if handicap <= 12:
        return "intermediate"
    return "beginner"


def _registry_metrics(metrics: dict[str, float]) -> dict[str, float]:
    return {k: v for k, v in sorted(metrics.items()) if k in METRIC_REGISTRY}


# ---------------------------------------------------------------------------
# Kinds
# ---------------------------------------------------------------------------

class ContentKind:
    """Base definition. Subclasses fill in the kind-specific parts."""

    name: ContentKindName
    schema_version: str
    activation: ActivationPolicy
    instructions: str
    reserved_fields: frozenset[str] = frozenset({"schema_version", "subject_id"})
    requires_session: bool = False

    def check_request(self, session_id: Optional[str]) -> None:
        if self.requires_session and not session_id:
            raise InvalidRequest(f"{self.name.value} requires a session_id")

    def thread_id(self, session_id: Optional[str]) -> str:
        return self.name.value

    def pointer_slot(self, session_id: Optional[str]) -> str:
        return self.name.value

    def session_from_thread(self, thread_id: str) -> Optional[str]:
        """Inverse of `thread_id` for kinds with one thread per session."""
        return None

    def owns_thread(self, thread_id: str) -> bool:
        return thread_id == self.thread_id(self.session_from_thread(thread_id))

    def build_snapshot(
        self,
        subject_id: str,
        session_id: Optional[str],
        sources: SnapshotSources,
    ) -> dict[str, Any]:
        raise NotImplementedError

    def allowed_references(self, snapshot: dict[str, Any]) -> AllowedReferences:
        raise NotImplementedError

    def envelope(self, snapshot: dict[str, Any]) -> dict[str, Any]:
        return {"schema_version": self.schema_version, "subject_id": snapshot["subject_id"]}

    def baseline(self, snapshot: dict[str, Any], allowed: AllowedReferences) -> dict[str, Any]:
        raise NotImplementedError


class Plan6mKind(ContentKind):
    name = ContentKindName.PLAN6M
    schema_version = PLAN6M_SCHEMA_VERSION
    activation = ActivationPolicy.MANUAL
    instructions = """Write a six-month improvement plan with these fields:
- time_window: {"start": "YYYY-MM-DD", "end": "YYYY-MM-DD"}, about six months from the latest session
- plan_stability: "unchanged" | "minor_refinement" | "reprioritised"
- plan_confidence: "low" | "medium" | "high"
- themes: 1-3 items {theme_id, priority (1-3, distinct), rationale (<=220 chars), progress_metrics: 1-4 {metric_id, direction "up"|"down"|"flat", target_hint (<=120 chars)}, confidence (0-1), confidence_label}
- what_good_looks_like: 1-6 strings (<=160 chars)
- change_reason: string or null"""

    def build_snapshot(self, subject_id, session_id, sources):
        recent = sources.facts.recent_snapshots(subject_id, PLAN6M_LOOKBACK)
        if not recent:
            raise InputMissing("stats_snapshot", f"no stats snapshots for subject {subject_id}")
        return {
            "schema_version": self.schema_version,
            "subject_id": subject_id,
            "as_of": recent[0].as_of.isoformat(),
            "sessions": [
                {
                    "session_id": s.session_id,
                    "data_hash": s.data_hash,
                    "metrics": _registry_metrics(s.metrics),
                }
                for s in recent
            ],
            "themes": list(THEME_ENUM),
        }

    def allowed_references(self, snapshot):
        seen = {m for s in snapshot["sessions"] for m in s["metrics"]}
        return AllowedReferences(
            themes=frozenset(THEME_ENUM),
            metrics=frozenset(seen or METRIC_REGISTRY),
        )

    def baseline(self, snapshot, allowed):
        return plan6m_baseline(snapshot, set(allowed.metrics))


class Plan3mKind(ContentKind):
    name = ContentKindName.PLAN3M
    schema_version = PLAN3M_SCHEMA_VERSION
    activation = ActivationPolicy.AUTO
    reserved_fields = frozenset({"schema_version", "subject_id", "skill_tier"})
    instructions = """Write a twelve-week practice plan with these fields:
- themes: 1-3 theme ids, the plan's focus areas in priority order
- headline: one line (<=160 chars)
- summary: 3-6 strings; success_criteria: 3-6 strings
- weeks: exactly 12 items, week_number 1..12 in order, each {week_number, title, focus_theme (one of themes), min_sessions (2-4), clubs (1-6), aim, drills (2-5), constraints (2-4), checkpoints (2-4), success_criteria (2-4), date_window {"start", "end"}}
- content_md: optional markdown rendering or null
Week 1 starts on the snapshot's as_of date and each week spans seven days. Match difficulty to skill_tier."""

    def build_snapshot(self, subject_id, session_id, sources):
        recent = sources.facts.recent_snapshots(subject_id, 1)
        if not recent:
            raise InputMissing("stats_snapshot", f"no stats snapshots for subject {subject_id}")
        latest = recent[0]

        parent = sources.active_version(ContentKindName.PLAN6M, subject_id)
        parent_plan = None
        if parent is not None:
            parent_plan = {
                "version_id": parent.id,
                "themes": [t["theme_id"] for t in parent.content.get("themes", [])],
            }

        return {
            "schema_version": self.schema_version,
            "subject_id": subject_id,
            "as_of": latest.as_of.isoformat(),
            "session_id": latest.session_id,
            "stats_hash": latest.data_hash,
            "metrics": _registry_metrics(latest.metrics),
            "handicap": latest.handicap,
            "skill_tier": skill_tier_for(latest.handicap),
            "parent_plan": parent_plan,
        }

    def allowed_references(self, snapshot):
        parent = snapshot.get("parent_plan") or {}
        themes = [t for t in parent.get("themes", []) if t in THEME_ENUM]
        return AllowedReferences(
            themes=frozenset(themes or THEME_ENUM),
            metrics=frozenset(METRIC_REGISTRY),
        )

    def envelope(self, snapshot):
        envelope = super().envelope(snapshot)
        envelope["skill_tier"] = snapshot["skill_tier"]
        return envelope

    def baseline(self, snapshot, allowed):
        return plan3m_baseline(snapshot, set(allowed.themes))


class SessionCoachKind(ContentKind):
    name = ContentKindName.SESSIONCOACH
    schema_version = SESSIONCOACH_SCHEMA_VERSION
    activation = ActivationPolicy.AUTO
    reserved_fields = frozenset({"schema_version", "subject_id", "session_id", "plan_id"})
    requires_session = True
    instructions = """Write coaching commentary for one practice session with these fields:
- display: {session_summary (<=520 chars), what_stood_out (1-2 strings, <=180 chars), what_this_supports (<=220 chars), next_session_focus (<=220 chars), plan_status "aligned"|"neutral"|"review_needed"}
- metadata: {primary_theme, secondary_theme (or null), confidence_delta "up"|"flat"|"down", plan_alignment (same values as plan_status), evidence: 1-3 items {theme_id, signal "positive"|"neutral"|"negative", metrics_used: 1-4 {metric_id, value, baseline (number or null), unit}, note (<=160 chars)}}
Compare against the previous session where one is given. Tie everything to the active plan's themes."""

    def thread_id(self, session_id):
        return f"session:{session_id}"

    def pointer_slot(self, session_id):
        return f"sessioncoach:{session_id}"

    def session_from_thread(self, thread_id):
        prefix = "session:"
        return thread_id[len(prefix):] if thread_id.startswith(prefix) else None

    def build_snapshot(self, subject_id, session_id, sources):
        session = sources.facts.session_snapshot(subject_id, session_id)
        if session is None:
            raise InputMissing("session_stats", f"no stats snapshot for session {session_id}")

        metrics = _registry_metrics(session.metrics)
        if not metrics:
            raise InputMissing("session_metrics", f"session {session_id} has no registry metrics")

        plan = sources.active_version(ContentKindName.PLAN3M, subject_id)
        if plan is None:
            raise InputMissing("active_plan3m", f"no active twelve-week plan for subject {subject_id}")

        previous = sources.facts.previous_snapshot(subject_id, session_id)
        return {
            "schema_version": self.schema_version,
            "subject_id": subject_id,
            "session_id": session_id,
            "stats_hash": session.data_hash,
            "metrics": metrics,
            "previous": (
                {"session_id": previous.session_id, "metrics": _registry_metrics(previous.metrics)}
                if previous is not None
                else None
            ),
            "plan": {
                "plan_id": plan.id,
                "themes": list(plan.content.get("themes", [])),
            },
        }

    def allowed_references(self, snapshot):
        return AllowedReferences(
            themes=frozenset(snapshot["plan"]["themes"]),
            metrics=frozenset(snapshot["metrics"]),
        )

    def envelope(self, snapshot):
        envelope = super().envelope(snapshot)
        envelope["session_id"] = snapshot["session_id"]
        envelope["plan_id"] = snapshot["plan"]["plan_id"]
        return envelope

    def baseline(self, snapshot, allowed):
        return sessioncoach_baseline(snapshot, set(allowed.themes), set(allowed.metrics))


CONTENT_KINDS: dict[ContentKindName, ContentKind] = {
    kind.name: kind for kind in (Plan6mKind(), Plan3mKind(), SessionCoachKind())
}


def get_kind(name: ContentKindName) -> ContentKind:
    return CONTENT_KINDS[ContentKindName(name)]
