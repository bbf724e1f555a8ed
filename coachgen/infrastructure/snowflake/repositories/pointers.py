"""
Snowflake repository for active pointers.

One row per (subject, slot). `set` is an idempotent upsert and the last
writer wins. No history is kept here; the version table is the history.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from coachgen.core.generation.models import ActivePointer

from ..schema import POINTER_COLUMNS
from .base import SnowflakeConnection


logger = logging.getLogger(__name__)


class PointerRepository:
    """Mutable "current version" references."""

    def __init__(self, connection: SnowflakeConnection) -> None:
        self._conn = connection

    def get(self, subject_id: str, content_kind: str) -> Optional[ActivePointer]:
        cursor = self._conn.cursor()
        try:
            cursor.execute(f"""
                SELECT {', '.join(POINTER_COLUMNS)}
                FROM active_pointers
                WHERE subject_id = %s AND content_kind = %s
            """, (subject_id, content_kind))
            row = cursor.fetchone()
            if not row:
                return None
            return ActivePointer(
                subject_id=row[0],
                content_kind=row[1],
                active_version_id=row[2],
                updated_at=row[3],
                updated_by=row[4],
            )
        finally:
            cursor.close()

    def set(self, subject_id: str, content_kind: str, version_id: str, actor: str) -> None:
        """Point (subject, slot) at `version_id`."""
        now = datetime.now(timezone.utc).replace(tzinfo=None)
        cursor = self._conn.cursor()
        try:
            cursor.execute("""
                MERGE INTO active_pointers AS target
                USING (SELECT %s AS subject_id, %s AS content_kind) AS source
                ON target.subject_id = source.subject_id
                   AND target.content_kind = source.content_kind
                WHEN MATCHED THEN UPDATE SET
                    active_version_id = %s,
                    updated_at = %s,
                    updated_by = %s
                WHEN NOT MATCHED THEN INSERT (
                    subject_id, content_kind, active_version_id, updated_at, updated_by
                ) VALUES (%s, %s, %s, %s, %s)
            """, (
                subject_id, content_kind,
                version_id, now, actor,
                subject_id, content_kind, version_id, now, actor,
            ))
            self._conn.commit()
        except Exception as e:
            logger.error(
                "Failed to set active pointer",
                extra={"subject_id": subject_id, "content_kind": content_kind, "error": str(e)}
            )
            raise
        finally:
            cursor.close()

        logger.debug(
            "Active pointer set",
            extra={"subject_id": subject_id, "content_kind": content_kind, "version_id": version_id}
        )
