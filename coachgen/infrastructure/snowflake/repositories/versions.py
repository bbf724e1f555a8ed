"""
Snowflake repository for content versions.

Versions are append-only. There is no update or delete here, and there
shouldn't be: the table is the audit trail.

Snowflake does not enforce UNIQUE constraints, so `append` uses a
conditional MERGE that only inserts when (subject, thread, index) is free
and checks the affected row count. Zero rows means another writer got
there first, which is reported as WriteConflict.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import uuid4

from coachgen.core.generation.errors import WriteConflict
from coachgen.core.generation.models import (
    ContentKindName,
    ContentVersion,
    GeneratedBy,
    Reason,
)

from ..schema import VERSION_COLUMNS
from .base import SnowflakeConnection, parse_variant_json


logger = logging.getLogger(__name__)

_SELECT = f"SELECT {', '.join(VERSION_COLUMNS)} FROM coaching_versions"


class VersionRepository:
    """Append-only store of ContentVersion rows."""

    def __init__(self, connection: SnowflakeConnection) -> None:
        self._conn = connection

    def append(
        self,
        subject_id: str,
        thread_id: str,
        content_kind: ContentKindName,
        version_index: int,
        data_hash: str,
        content: dict[str, Any],
        reason: Reason,
        generated_by: GeneratedBy,
    ) -> ContentVersion:
        """
        Insert a new version at `version_index`.

        Raises WriteConflict if that index already exists for the thread.
        """
        version = ContentVersion(
            id=str(uuid4()),
            subject_id=subject_id,
            thread_id=thread_id,
            content_kind=ContentKindName(content_kind),
            version_index=version_index,
            data_hash=data_hash,
            content=content,
            reason=Reason(reason),
            generated_by=GeneratedBy(generated_by),
            created_at=datetime.now(timezone.utc).replace(tzinfo=None),
        )

        cursor = self._conn.cursor()
        try:
            cursor.execute("""
                MERGE INTO coaching_versions AS target
                USING (
                    SELECT
                        %s AS version_id,
                        %s AS subject_id,
                        %s AS thread_id,
                        %s AS content_kind,
                        %s AS version_index,
                        %s AS data_hash,
                        PARSE_JSON(%s) AS content,
                        %s AS reason,
                        %s AS generated_by,
                        %s AS created_at
                ) AS source
                ON target.subject_id = source.subject_id
                   AND target.thread_id = source.thread_id
                   AND target.version_index = source.version_index
                WHEN NOT MATCHED THEN INSERT (
                    version_id, subject_id, thread_id, content_kind, version_index,
                    data_hash, content, reason, generated_by, created_at
                ) VALUES (
                    source.version_id, source.subject_id, source.thread_id,
                    source.content_kind, source.version_index, source.data_hash,
                    source.content, source.reason, source.generated_by, source.created_at
                )
            """, (
                version.id,
                version.subject_id,
                version.thread_id,
                version.content_kind.value,
                version.version_index,
                version.data_hash,
                json.dumps(version.content),
                version.reason.value,
                version.generated_by.value,
                version.created_at,
            ))

            if cursor.rowcount == 0:
                raise WriteConflict(subject_id, thread_id, version_index)

            self._conn.commit()

        except WriteConflict:
            raise
        except Exception as e:
            logger.error(
                "Failed to append version",
                extra={"subject_id": subject_id, "thread_id": thread_id, "error": str(e)}
            )
            raise
        finally:
            cursor.close()

        logger.debug(
            "Appended version",
            extra={
                "subject_id": subject_id,
                "thread_id": thread_id,
                "version_index": version_index,
                "version_id": version.id,
            }
        )
        return version

    def latest(self, subject_id: str, thread_id: str) -> Optional[ContentVersion]:
        """Highest-index version on the thread."""
        return self._fetch_one(
            f"{_SELECT} WHERE subject_id = %s AND thread_id = %s "
            "ORDER BY version_index DESC LIMIT 1",
            (subject_id, thread_id),
        )

    def find_by_hash(
        self,
        subject_id: str,
        thread_id: str,
        data_hash: str,
    ) -> Optional[ContentVersion]:
        """Highest-index version on the thread generated from `data_hash`."""
        return self._fetch_one(
            f"{_SELECT} WHERE subject_id = %s AND thread_id = %s AND data_hash = %s "
            "ORDER BY version_index DESC LIMIT 1",
            (subject_id, thread_id, data_hash),
        )

    def get(self, version_id: str) -> Optional[ContentVersion]:
        return self._fetch_one(f"{_SELECT} WHERE version_id = %s", (version_id,))

    def list_thread(
        self,
        subject_id: str,
        thread_id: str,
        limit: int = 20,
    ) -> list[ContentVersion]:
        """Versions on the thread, newest first."""
        cursor = self._conn.cursor()
        try:
            cursor.execute(
                f"{_SELECT} WHERE subject_id = %s AND thread_id = %s "
                "ORDER BY version_index DESC LIMIT %s",
                (subject_id, thread_id, limit),
            )
            return [self._row_to_version(row) for row in cursor.fetchall()]
        finally:
            cursor.close()

    # -----------------------------------------------------------------------
    # Private Methods
    # -----------------------------------------------------------------------

    def _fetch_one(self, query: str, params: tuple) -> Optional[ContentVersion]:
        cursor = self._conn.cursor()
        try:
            cursor.execute(query, params)
            row = cursor.fetchone()
            return self._row_to_version(row) if row else None
        finally:
            cursor.close()

    def _row_to_version(self, row) -> ContentVersion:
        return ContentVersion(
            id=row[0],
            subject_id=row[1],
            thread_id=row[2],
            content_kind=ContentKindName(row[3]),
            version_index=int(row[4]),
            data_hash=row[5],
            content=parse_variant_json(row[6]) or {},
            reason=Reason(row[7]),
            generated_by=GeneratedBy(row[8]),
            created_at=row[9],
        )
