"""
Table layout for the coaching schema.

Column order here is the order every repository SELECTs in and the order
the mock connection returns rows in, so the two can't drift apart.

Snowflake accepts UNIQUE constraints but does not enforce them. The
repositories enforce uniqueness themselves with conditional MERGEs; the
constraints below are documentation for humans and other tools.
"""

VERSION_COLUMNS = (
    "version_id",
    "subject_id",
    "thread_id",
    "content_kind",
    "version_index",
    "data_hash",
    "content",
    "reason",
    "generated_by",
    "created_at",
)

POINTER_COLUMNS = (
    "subject_id",
    "content_kind",
    "active_version_id",
    "updated_at",
    "updated_by",
)

TELEMETRY_COLUMNS = (
    "request_id",
    "route",
    "status",
    "subject_id",
    "thread_id",
    "cache_status",
    "generated_by",
    "fallback_cause",
    "duration_ms",
    "model",
    "prompt_tokens",
    "completion_tokens",
    "cost_usd",
    "error_code",
    "error_message",
    "created_at",
)

SESSION_STATS_COLUMNS = (
    "subject_id",
    "session_id",
    "data_hash",
    "metrics",
    "handicap",
    "created_at",
)


DDL_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS coaching_versions (
        version_id VARCHAR(36) NOT NULL PRIMARY KEY,
        subject_id VARCHAR(64) NOT NULL,
        thread_id VARCHAR(128) NOT NULL,
        content_kind VARCHAR(32) NOT NULL,
        version_index INTEGER NOT NULL,
        data_hash VARCHAR(64) NOT NULL,
        content VARIANT NOT NULL,
        reason VARCHAR(32) NOT NULL,
        generated_by VARCHAR(32) NOT NULL,
        created_at TIMESTAMP_NTZ NOT NULL DEFAULT CURRENT_TIMESTAMP(),
        UNIQUE (subject_id, thread_id, version_index)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS active_pointers (
        subject_id VARCHAR(64) NOT NULL,
        content_kind VARCHAR(128) NOT NULL,
        active_version_id VARCHAR(36) NOT NULL,
        updated_at TIMESTAMP_NTZ NOT NULL DEFAULT CURRENT_TIMESTAMP(),
        updated_by VARCHAR(128),
        PRIMARY KEY (subject_id, content_kind)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS coaching_telemetry (
        request_id VARCHAR(36) NOT NULL PRIMARY KEY,
        route VARCHAR(64) NOT NULL,
        status VARCHAR(16) NOT NULL,
        subject_id VARCHAR(64),
        thread_id VARCHAR(128),
        cache_status VARCHAR(16),
        generated_by VARCHAR(32),
        fallback_cause VARCHAR(64),
        duration_ms INTEGER,
        model VARCHAR(128),
        prompt_tokens INTEGER,
        completion_tokens INTEGER,
        cost_usd FLOAT,
        error_code VARCHAR(64),
        error_message VARCHAR(500),
        created_at TIMESTAMP_NTZ NOT NULL DEFAULT CURRENT_TIMESTAMP()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS session_stats (
        subject_id VARCHAR(64) NOT NULL,
        session_id VARCHAR(64) NOT NULL,
        data_hash VARCHAR(64) NOT NULL,
        metrics VARIANT NOT NULL,
        handicap FLOAT,
        created_at TIMESTAMP_NTZ NOT NULL DEFAULT CURRENT_TIMESTAMP(),
        PRIMARY KEY (subject_id, session_id)
    )
    """,
]
