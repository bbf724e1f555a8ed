"""
Validation schemas for every content kind.

One strict pydantic model per kind. Candidate content is validated once,
here at the boundary, and nothing downstream re-guesses its shape.

Strict mode plus `extra="forbid"` means no coercion: a string where a
number belongs, an unknown key, or a value outside an enumeration rejects
the whole candidate.

Each model also reports the ids it references (`references()`), so the
validator can check them against the allowed sets for the run.
"""

from datetime import date
from typing import Annotated, Literal, Optional, get_args

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    StringConstraints,
    model_validator,
)


# ---------------------------------------------------------------------------
# Registries
# ---------------------------------------------------------------------------

ThemeId = Literal[
    "dispersion_control",
    "start_line_control",
    "contact_quality",
    "distance_control",
    "face_to_path_control",
    "low_point_control",
    "club_selection_strategy",
    "shot_shape_intent",
    "short_game_proximity",
    "putting_start_line_speed",
]

MetricId = Literal[
    "carry_avg",
    "total_distance_avg",
    "ball_speed_avg",
    "club_speed_avg",
    "smash_factor_avg",
    "launch_angle_avg",
    "spin_rate_avg",
    "offline_dispersion_p50",
    "offline_dispersion_p90",
    "start_line_sd",
    "face_to_path_avg",
    "attack_angle_avg",
    "dynamic_loft_avg",
    "fairway_pct",
    "gir_pct",
    "penalty_rate",
    "shot_quality_pct",
]

THEME_ENUM: tuple[str, ...] = get_args(ThemeId)
METRIC_REGISTRY: tuple[str, ...] = get_args(MetricId)

METRIC_UNITS: dict[str, str] = {
    "carry_avg": "yd",
    "total_distance_avg": "yd",
    "ball_speed_avg": "mph",
    "club_speed_avg": "mph",
    "smash_factor_avg": "ratio",
    "launch_angle_avg": "deg",
    "spin_rate_avg": "rpm",
    "offline_dispersion_p50": "yd",
    "offline_dispersion_p90": "yd",
    "start_line_sd": "deg",
    "face_to_path_avg": "deg",
    "attack_angle_avg": "deg",
    "dynamic_loft_avg": "deg",
    "fairway_pct": "%",
    "gir_pct": "%",
    "penalty_rate": "%",
    "shot_quality_pct": "%",
}

# Metrics where a lower number is an improvement.
LOWER_IS_BETTER: frozenset[str] = frozenset({
    "offline_dispersion_p50",
    "offline_dispersion_p90",
    "start_line_sd",
    "penalty_rate",
})

# Which metrics evidence progress on which theme, most telling first.
THEME_METRICS: dict[str, tuple[str, ...]] = {
    "dispersion_control": ("offline_dispersion_p50", "offline_dispersion_p90", "fairway_pct"),
    "start_line_control": ("start_line_sd", "offline_dispersion_p50"),
    "contact_quality": ("smash_factor_avg", "shot_quality_pct", "ball_speed_avg"),
    "distance_control": ("carry_avg", "total_distance_avg", "spin_rate_avg"),
    "face_to_path_control": ("face_to_path_avg", "start_line_sd"),
    "low_point_control": ("attack_angle_avg", "dynamic_loft_avg", "shot_quality_pct"),
    "club_selection_strategy": ("gir_pct", "penalty_rate"),
    "shot_shape_intent": ("face_to_path_avg", "offline_dispersion_p90"),
    "short_game_proximity": ("gir_pct", "carry_avg"),
    "putting_start_line_speed": ("shot_quality_pct",),
}

PLAN6M_SCHEMA_VERSION = "plan6m_v1"
PLAN3M_SCHEMA_VERSION = "plan3m_v1.1"
SESSIONCOACH_SCHEMA_VERSION = "sessioncoach_v1"


def _text(max_length: int):
    return Annotated[str, StringConstraints(min_length=1, max_length=max_length)]


def _calendar_date(value: str) -> str:
    date.fromisoformat(value)
    return value


IsoDate = Annotated[
    str,
    StringConstraints(pattern=r"^\d{4}-\d{2}-\d{2}$"),
    AfterValidator(_calendar_date),
]
Confidence = Literal["low", "medium", "high"]
PlanStatus = Literal["aligned", "neutral", "review_needed"]


class StrictModel(BaseModel):
    model_config = ConfigDict(
        extra="forbid",
        strict=True,
        frozen=True,
        allow_inf_nan=False,
    )


class TimeWindow(StrictModel):
    start: IsoDate
    end: IsoDate

    @model_validator(mode="after")
    def _ordered(self) -> "TimeWindow":
        # ISO dates compare correctly as strings
        if self.end < self.start:
            raise ValueError("time window ends before it starts")
        return self


# ---------------------------------------------------------------------------
# plan6m_v1
# ---------------------------------------------------------------------------

class ProgressMetric(StrictModel):
    metric_id: MetricId
    direction: Literal["up", "down", "flat"]
    target_hint: _text(120)


class Plan6mTheme(StrictModel):
    theme_id: ThemeId
    priority: int = Field(ge=1, le=3)
    rationale: _text(220)
    progress_metrics: list[ProgressMetric] = Field(min_length=1, max_length=4)
    confidence: float = Field(ge=0, le=1)
    confidence_label: Confidence


class Plan6mV1(StrictModel):
    """Six-month plan: up to three prioritised improvement themes."""
    schema_version: Literal["plan6m_v1"]
    subject_id: _text(64)
    time_window: TimeWindow
    plan_stability: Literal["unchanged", "minor_refinement", "reprioritised"]
    plan_confidence: Confidence
    themes: list[Plan6mTheme] = Field(min_length=1, max_length=3)
    what_good_looks_like: list[_text(160)] = Field(min_length=1, max_length=6)
    change_reason: Optional[Annotated[str, StringConstraints(max_length=220)]] = None

    @model_validator(mode="after")
    def _distinct_themes(self) -> "Plan6mV1":
        theme_ids = [t.theme_id for t in self.themes]
        if len(set(theme_ids)) != len(theme_ids):
            raise ValueError("themes must not repeat a theme_id")
        priorities = [t.priority for t in self.themes]
        if len(set(priorities)) != len(priorities):
            raise ValueError("themes must not share a priority")
        return self

    def references(self) -> dict[str, set[str]]:
        return {
            "themes": {t.theme_id for t in self.themes},
            "metrics": {m.metric_id for t in self.themes for m in t.progress_metrics},
        }


# ---------------------------------------------------------------------------
# plan3m_v1.1
# ---------------------------------------------------------------------------

class WeekPlan(StrictModel):
    week_number: int = Field(ge=1, le=12)
    title: _text(120)
    focus_theme: ThemeId
    min_sessions: int = Field(ge=2, le=4)
    clubs: list[_text(40)] = Field(min_length=1, max_length=6)
    aim: _text(300)
    drills: list[_text(300)] = Field(min_length=2, max_length=5)
    constraints: list[_text(300)] = Field(min_length=2, max_length=4)
    checkpoints: list[_text(300)] = Field(min_length=2, max_length=4)
    success_criteria: list[_text(300)] = Field(min_length=2, max_length=4)
    date_window: TimeWindow


class Plan3mV1(StrictModel):
    """Twelve-week plan broken into weekly blocks."""
    schema_version: Literal["plan3m_v1.1"]
    subject_id: _text(64)
    skill_tier: Literal["scratch", "advanced", "intermediate", "beginner", "unknown"]
    themes: list[ThemeId] = Field(min_length=1, max_length=3)
    headline: _text(160)
    summary: list[_text(300)] = Field(min_length=3, max_length=6)
    success_criteria: list[_text(300)] = Field(min_length=3, max_length=6)
    weeks: list[WeekPlan] = Field(min_length=12, max_length=12)
    content_md: Optional[Annotated[str, StringConstraints(max_length=4000)]] = None

    @model_validator(mode="after")
    def _consistent_weeks(self) -> "Plan3mV1":
        if [w.week_number for w in self.weeks] != list(range(1, 13)):
            raise ValueError("weeks must be numbered 1..12 in order")
        stray = {w.focus_theme for w in self.weeks} - set(self.themes)
        if stray:
            raise ValueError(f"week focus themes not in plan themes: {sorted(stray)}")
        return self

    def references(self) -> dict[str, set[str]]:
        return {"themes": set(self.themes), "metrics": set()}


# ---------------------------------------------------------------------------
# sessioncoach_v1
# ---------------------------------------------------------------------------

class SessionDisplay(StrictModel):
    session_summary: _text(520)
    what_stood_out: list[_text(180)] = Field(min_length=1, max_length=2)
    what_this_supports: _text(220)
    next_session_focus: _text(220)
    plan_status: PlanStatus


class MetricEvidence(StrictModel):
    metric_id: MetricId
    value: float
    baseline: Optional[float]
    unit: _text(16)


class ThemeEvidence(StrictModel):
    theme_id: ThemeId
    signal: Literal["positive", "neutral", "negative"]
    metrics_used: list[MetricEvidence] = Field(min_length=1, max_length=4)
    note: _text(160)


class SessionMetadata(StrictModel):
    primary_theme: ThemeId
    secondary_theme: Optional[ThemeId]
    confidence_delta: Literal["up", "flat", "down"]
    plan_alignment: PlanStatus
    evidence: list[ThemeEvidence] = Field(min_length=1, max_length=3)


class SessionCoachV1(StrictModel):
    """Commentary on one session, tied to the active twelve-week plan."""
    schema_version: Literal["sessioncoach_v1"]
    subject_id: _text(64)
    session_id: _text(64)
    plan_id: _text(64)
    display: SessionDisplay
    metadata: SessionMetadata

    def references(self) -> dict[str, set[str]]:
        themes = {self.metadata.primary_theme}
        if self.metadata.secondary_theme:
            themes.add(self.metadata.secondary_theme)
        themes.update(e.theme_id for e in self.metadata.evidence)
        metrics = {
            m.metric_id
            for e in self.metadata.evidence
            for m in e.metrics_used
        }
        return {"themes": themes, "metrics": metrics}
