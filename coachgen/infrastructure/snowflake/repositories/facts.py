"""
Snowflake repository for upstream session statistics.

Ingestion owns the `session_stats` table; this repository only reads it.
Rows become StatsSnapshot objects with a clean metrics mapping: anything
in the VARIANT that isn't a finite number is dropped here, so the
generation code never has to second-guess a metric value.
"""

import logging
import math
from typing import Any, Optional

from coachgen.core.generation.models import StatsSnapshot

from ..schema import SESSION_STATS_COLUMNS
from .base import SnowflakeConnection, parse_variant_json


logger = logging.getLogger(__name__)

_SELECT = f"SELECT {', '.join(SESSION_STATS_COLUMNS)} FROM session_stats"


class FactRepository:
    """Read-only access to per-session stats snapshots."""

    def __init__(self, connection: SnowflakeConnection) -> None:
        self._conn = connection

    def recent_snapshots(self, subject_id: str, limit: int) -> list[StatsSnapshot]:
        """Newest first."""
        cursor = self._conn.cursor()
        try:
            cursor.execute(
                f"{_SELECT} WHERE subject_id = %s "
                "ORDER BY created_at DESC, session_id DESC LIMIT %s",
                (subject_id, limit),
            )
            return [self._row_to_snapshot(row) for row in cursor.fetchall()]
        finally:
            cursor.close()

    def session_snapshot(self, subject_id: str, session_id: str) -> Optional[StatsSnapshot]:
        cursor = self._conn.cursor()
        try:
            cursor.execute(
                f"{_SELECT} WHERE subject_id = %s AND session_id = %s",
                (subject_id, session_id),
            )
            row = cursor.fetchone()
            return self._row_to_snapshot(row) if row else None
        finally:
            cursor.close()

    def previous_snapshot(self, subject_id: str, session_id: str) -> Optional[StatsSnapshot]:
        """The latest snapshot taken before `session_id`'s."""
        cursor = self._conn.cursor()
        try:
            cursor.execute(
                f"{_SELECT} WHERE subject_id = %s AND created_at < ("
                "SELECT created_at FROM session_stats WHERE subject_id = %s AND session_id = %s"
                ") ORDER BY created_at DESC, session_id DESC LIMIT 1",
                (subject_id, subject_id, session_id),
            )
            row = cursor.fetchone()
            return self._row_to_snapshot(row) if row else None
        finally:
            cursor.close()

    def _row_to_snapshot(self, row) -> StatsSnapshot:
        return StatsSnapshot(
            subject_id=row[0],
            session_id=row[1],
            data_hash=row[2],
            metrics=self._numeric_metrics(parse_variant_json(row[3])),
            handicap=float(row[4]) if row[4] is not None else None,
            created_at=row[5],
        )

    def _numeric_metrics(self, raw: Any) -> dict[str, float]:
        if not isinstance(raw, dict):
            return {}
        metrics = {}
        for key, value in raw.items():
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                continue
            if math.isfinite(value):
                metrics[str(key)] = float(value)
        return metrics
