"""
Deterministic baseline content.

The baseline is what every call falls back to when the collaborator is off,
slow, or wrong. It has to be boring in the right ways:
- A pure function of the input snapshot (same snapshot, same content)
- Always valid for its kind's schema
- Only mentions themes and metrics the snapshot allows

The functions here return the content *body*. Envelope fields such as
`schema_version` and `subject_id` are merged in by the generator.
"""

from datetime import date, timedelta
from typing import Any, Optional

from .schemas import LOWER_IS_BETTER, METRIC_REGISTRY, METRIC_UNITS, THEME_ENUM, THEME_METRICS


THEME_LABELS: dict[str, str] = {
    "dispersion_control": "dispersion control",
    "start_line_control": "start line control",
    "contact_quality": "contact quality",
    "distance_control": "distance control",
    "face_to_path_control": "face-to-path control",
    "low_point_control": "low point control",
    "club_selection_strategy": "club selection",
    "shot_shape_intent": "shot shape intent",
    "short_game_proximity": "short game proximity",
    "putting_start_line_speed": "putting start line and speed",
}

# Practice building blocks per theme: clubs, drills, one checkpoint.
THEME_PRACTICE: dict[str, dict[str, Any]] = {
    "dispersion_control": {
        "clubs": ["7i", "Driver"],
        "drills": [
            "Gate drill: hit 10 balls between two alignment sticks 20 yards apart",
            "Pick a narrow target and log how many of 10 shots finish inside it",
            "Alternate full and three-quarter swings to the same target",
        ],
        "checkpoint": "Half of tracked shots finish inside the target corridor",
    },
    "start_line_control": {
        "clubs": ["8i", "6i"],
        "drills": [
            "Place a stick 3 feet ahead on the target line and start the ball over it",
            "Hit 5 balls at each of three start lines: left, straight, right",
            "Slow-motion half swings holding the clubface square to the stick",
        ],
        "checkpoint": "Most shots start within a club width of the chosen line",
    },
    "contact_quality": {
        "clubs": ["7i", "PW"],
        "drills": [
            "Foot spray on the face: 10 shots, record strike location each time",
            "Towel drill: place a towel behind the ball and miss it",
            "Half swings at 70 percent speed focusing on centered strikes",
        ],
        "checkpoint": "Centered strike on the majority of tracked shots",
    },
    "distance_control": {
        "clubs": ["PW", "9i", "7i"],
        "drills": [
            "Ladder drill: carry targets at 10-yard steps with one club",
            "Three swing lengths with a wedge, log carry for each",
            "Call the carry number before each shot and compare",
        ],
        "checkpoint": "Carry numbers stay inside a tight window per club",
    },
    "face_to_path_control": {
        "clubs": ["7i", "5i"],
        "drills": [
            "Headcover outside the ball to train an in-to-out path",
            "Hold the finish and check face angle against the lead arm",
            "Alternate intentional draws and fades, 5 balls each",
        ],
        "checkpoint": "Face-to-path numbers cluster near the intended shape",
    },
    "low_point_control": {
        "clubs": ["9i", "PW"],
        "drills": [
            "Line drill: draw a line and strike the ground just after it",
            "Hit from a slight downslope to feel forward shaft lean",
            "Brush-the-grass rehearsal swings before each ball",
        ],
        "checkpoint": "Divots start at or ahead of the ball line",
    },
    "club_selection_strategy": {
        "clubs": ["8i", "6i", "Hybrid"],
        "drills": [
            "Play 9 simulated holes choosing clubs from your carry numbers",
            "For each approach, name the miss you can accept before hitting",
            "Practice the club you would take one up into the wind",
        ],
        "checkpoint": "Club choice matches stock carry numbers on every approach",
    },
    "shot_shape_intent": {
        "clubs": ["6i", "Driver"],
        "drills": [
            "Call the shape before each shot and score whether it happened",
            "Alternate stock shape and straight ball to the same target",
            "Set up for the shape with aim only, no swing changes",
        ],
        "checkpoint": "Called shape happens on most tracked shots",
    },
    "short_game_proximity": {
        "clubs": ["SW", "LW"],
        "drills": [
            "Up-and-down game from 10 spots around a green",
            "Land 10 chips on a towel and note rollout",
            "Bump and run with three different clubs to one hole",
        ],
        "checkpoint": "Most chips finish inside a 6-foot circle",
    },
    "putting_start_line_speed": {
        "clubs": ["Putter"],
        "drills": [
            "Gate drill with two tees just wider than the ball at 3 feet",
            "Lag ladder: putts to 20, 30 and 40 feet stopping past the hole",
            "Clock drill: 8 putts around the hole from 4 feet",
        ],
        "checkpoint": "Short putts start through the gate and lag putts finish close",
    },
}


def theme_label(theme_id: str) -> str:
    return THEME_LABELS.get(theme_id, theme_id.replace("_", " "))


def metric_direction(metric_id: str) -> str:
    """Which way a metric should move to count as improvement."""
    return "down" if metric_id in LOWER_IS_BETTER else "up"


def average_metrics(sessions: list[dict[str, Any]]) -> dict[str, float]:
    """Mean of each registry metric across session snapshots."""
    totals: dict[str, list[float]] = {}
    for session in sessions:
        for metric_id, value in session.get("metrics", {}).items():
            if metric_id in METRIC_REGISTRY:
                totals.setdefault(metric_id, []).append(float(value))
    return {
        metric_id: round(sum(values) / len(values), 2)
        for metric_id, values in sorted(totals.items())
    }


def rank_themes(
    available_metrics: set[str],
    candidates: tuple[str, ...] = THEME_ENUM,
    limit: int = 3,
) -> list[str]:
    """
    Pick the themes with the most supporting metrics.

    Ties keep candidate order. With no metrics at all, the first `limit`
    candidates are returned so there is always something to work on.
    """
    if not available_metrics:
        return list(candidates[:limit])

    scored = [
        (len(set(THEME_METRICS.get(theme, ())) & available_metrics), index, theme)
        for index, theme in enumerate(candidates)
    ]
    ranked = [theme for score, _, theme in sorted(scored, key=lambda s: (-s[0], s[1])) if score > 0]
    return ranked[:limit] or list(candidates[:limit])


def _theme_metrics(theme_id: str, allowed_metrics: set[str], limit: int) -> list[str]:
    metrics = [m for m in THEME_METRICS.get(theme_id, ()) if m in allowed_metrics]
    if not metrics:
        metrics = sorted(allowed_metrics)
    return metrics[:limit]


def _format_value(metric_id: str, value: float) -> str:
    return f"{value:g} {METRIC_UNITS.get(metric_id, '')}".strip()


# ---------------------------------------------------------------------------
# plan6m
# ---------------------------------------------------------------------------

def plan6m_baseline(snapshot: dict[str, Any], allowed_metrics: set[str]) -> dict[str, Any]:
    sessions = snapshot.get("sessions", [])
    averages = average_metrics(sessions)
    seen = set(averages) & allowed_metrics
    themes = rank_themes(seen, limit=3)

    session_count = len(sessions)
    confidence = round(min(0.9, 0.3 + 0.06 * session_count), 2)
    if session_count >= 8:
        label = "high"
    elif session_count >= 3:
        label = "medium"
    else:
        label = "low"

    plan_themes = []
    for priority, theme_id in enumerate(themes, start=1):
        progress = []
        for metric_id in _theme_metrics(theme_id, seen or allowed_metrics, limit=2):
            if metric_id in averages:
                hint = f"Move {metric_direction(metric_id)} from {_format_value(metric_id, averages[metric_id])}"
            else:
                hint = "Establish a baseline over the next sessions"
            progress.append({
                "metric_id": metric_id,
                "direction": metric_direction(metric_id),
                "target_hint": hint,
            })
        plan_themes.append({
            "theme_id": theme_id,
            "priority": priority,
            "rationale": (
                f"Recent sessions point to {theme_label(theme_id)} as a lever "
                f"for lower scores."
            ),
            "progress_metrics": progress,
            "confidence": confidence,
            "confidence_label": label,
        })

    as_of = date.fromisoformat(snapshot["as_of"])
    return {
        "time_window": {
            "start": as_of.isoformat(),
            "end": (as_of + timedelta(days=182)).isoformat(),
        },
        "plan_stability": "unchanged",
        "plan_confidence": label,
        "themes": plan_themes,
        "what_good_looks_like": [
            f"Measurable progress on {theme_label(theme_id)}" for theme_id in themes
        ],
        "change_reason": None,
    }


# ---------------------------------------------------------------------------
# plan3m
# ---------------------------------------------------------------------------

MIN_SESSIONS_BY_TIER = {
    "scratch": 4,
    "advanced": 4,
    "intermediate": 3,
    "beginner": 2,
    "unknown": 2,
}


def plan3m_baseline(snapshot: dict[str, Any], allowed_themes: set[str]) -> dict[str, Any]:
    parent = snapshot.get("parent_plan") or {}
    candidates = tuple(t for t in parent.get("themes", []) if t in allowed_themes)
    if not candidates:
        candidates = tuple(t for t in THEME_ENUM if t in allowed_themes)
    themes = rank_themes(set(snapshot.get("metrics", {})), candidates=candidates, limit=3)

    tier = snapshot["skill_tier"]
    min_sessions = MIN_SESSIONS_BY_TIER[tier]
    block = 12 // len(themes)
    as_of = date.fromisoformat(snapshot["as_of"])

    weeks = []
    for week_number in range(1, 13):
        theme_id = themes[min((week_number - 1) // block, len(themes) - 1)]
        practice = THEME_PRACTICE[theme_id]
        start = as_of + timedelta(days=7 * (week_number - 1))
        weeks.append({
            "week_number": week_number,
            "title": f"Week {week_number}: {theme_label(theme_id).capitalize()}",
            "focus_theme": theme_id,
            "min_sessions": min_sessions,
            "clubs": list(practice["clubs"]),
            "aim": f"Build repeatable {theme_label(theme_id)} under practice conditions.",
            "drills": list(practice["drills"]),
            "constraints": [
                "Log every block of shots before moving on",
                "Stop a drill when fatigue changes the swing",
            ],
            "checkpoints": [
                practice["checkpoint"],
                "Notes from each session are recorded",
            ],
            "success_criteria": [
                f"Completed at least {min_sessions} focused sessions",
                practice["checkpoint"],
            ],
            "date_window": {
                "start": start.isoformat(),
                "end": (start + timedelta(days=6)).isoformat(),
            },
        })

    labels = ", ".join(theme_label(t) for t in themes)
    success = [f"Steady progress on {theme_label(t)}" for t in themes]
    success.append("Every week has its sessions logged")
    if len(success) < 3:
        success.append("Practice notes show what changed and why")
    return {
        "themes": themes,
        "headline": f"Twelve weeks on {labels}"[:160],
        "summary": [
            f"Plan built for a {tier} player.",
            f"Focus areas in order: {labels}.",
            f"Plan on at least {min_sessions} practice sessions per week.",
        ],
        "success_criteria": success,
        "weeks": weeks,
        "content_md": None,
    }


# ---------------------------------------------------------------------------
# sessioncoach
# ---------------------------------------------------------------------------

def _signal(metrics_used: list[dict[str, Any]]) -> str:
    better = worse = 0
    for m in metrics_used:
        if m["baseline"] is None or m["value"] == m["baseline"]:
            continue
        improved = m["value"] < m["baseline"] if m["metric_id"] in LOWER_IS_BETTER else m["value"] > m["baseline"]
        if improved:
            better += 1
        else:
            worse += 1
    if better > worse:
        return "positive"
    if worse > better:
        return "negative"
    return "neutral"


def _evidence(
    theme_id: str,
    metrics: dict[str, float],
    baselines: dict[str, float],
    allowed_metrics: set[str],
) -> dict[str, Any]:
    used = []
    for metric_id in _theme_metrics(theme_id, set(metrics) & allowed_metrics, limit=4):
        baseline: Optional[float] = baselines.get(metric_id)
        used.append({
            "metric_id": metric_id,
            "value": round(float(metrics[metric_id]), 2),
            "baseline": round(float(baseline), 2) if baseline is not None else None,
            "unit": METRIC_UNITS[metric_id],
        })
    signal = _signal(used)
    notes = {
        "positive": f"Numbers moved the right way for {theme_label(theme_id)}.",
        "negative": f"{theme_label(theme_id).capitalize()} slipped against last session.",
        "neutral": f"No clear change in {theme_label(theme_id)} yet.",
    }
    return {
        "theme_id": theme_id,
        "signal": signal,
        "metrics_used": used,
        "note": notes[signal][:160],
    }


def sessioncoach_baseline(
    snapshot: dict[str, Any],
    allowed_themes: set[str],
    allowed_metrics: set[str],
) -> dict[str, Any]:
    metrics = snapshot["metrics"]
    previous = snapshot.get("previous") or {}
    baselines = previous.get("metrics", {})
    present = set(metrics) & allowed_metrics

    plan_themes = [t for t in snapshot["plan"]["themes"] if t in allowed_themes]
    supported = [t for t in plan_themes if set(THEME_METRICS.get(t, ())) & present]
    primary = supported[0] if supported else plan_themes[0]
    secondary = supported[1] if len(supported) > 1 else None

    evidence = [_evidence(primary, metrics, baselines, allowed_metrics)]
    if secondary:
        evidence.append(_evidence(secondary, metrics, baselines, allowed_metrics))

    signal = evidence[0]["signal"]
    if signal == "negative":
        status = "review_needed"
    elif primary in supported:
        status = "aligned"
    else:
        status = "neutral"
    delta = {"positive": "up", "negative": "down", "neutral": "flat"}[signal]

    stood_out = []
    for item in evidence[0]["metrics_used"][:2]:
        line = f"{item['metric_id']}: {_format_value(item['metric_id'], item['value'])}"
        if item["baseline"] is not None:
            line += f" (last session {_format_value(item['metric_id'], item['baseline'])})"
        stood_out.append(line[:180])

    primary_label = theme_label(primary)
    return {
        "display": {
            "session_summary": (
                f"This session was measured against your current focus on {primary_label}. "
                f"{evidence[0]['note']}"
            )[:520],
            "what_stood_out": stood_out,
            "what_this_supports": f"Your twelve-week plan focus on {primary_label}."[:220],
            "next_session_focus": (
                f"Keep working on {primary_label} with the drills for this week."
            )[:220],
            "plan_status": status,
        },
        "metadata": {
            "primary_theme": primary,
            "secondary_theme": secondary,
            "confidence_delta": delta,
            "plan_alignment": status,
            "evidence": evidence,
        },
    }
