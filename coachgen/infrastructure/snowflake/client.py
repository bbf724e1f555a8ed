"""
Snowflake database connection management.

Provides connection factory and context manager for Snowflake operations.
Includes mock mode with in-memory storage for local development and tests.

Most code never touches this module directly - it goes through the
repositories, which handle the translation between domain models and
database rows.
"""

import base64
import json
import logging
import re
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Generator, Optional

from .repositories.base import SnowflakeConfig, SnowflakeConnection
from .schema import POINTER_COLUMNS, SESSION_STATS_COLUMNS, TELEMETRY_COLUMNS, VERSION_COLUMNS

logger = logging.getLogger(__name__)


class SnowflakeConnectionError(Exception):
    """Raised when Snowflake connection fails."""
    pass


def _load_private_key(pem_bytes: bytes) -> bytes:
    """
    Turn a PEM private key into the DER bytes snowflake-connector expects.

    Snowflake requires the private key as a bytes object, not a file path.
    """
    from cryptography.hazmat.backends import default_backend
    from cryptography.hazmat.primitives import serialization

    private_key = serialization.load_pem_private_key(
        pem_bytes,
        password=None,  # No password on the key
        backend=default_backend()
    )

    return private_key.private_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption()
    )


def _read_private_key(config: SnowflakeConfig) -> Optional[bytes]:
    """Key bytes from base64 (deployments) or a file path (local), if either is set."""
    if config.private_key_base64:
        return _load_private_key(base64.b64decode(config.private_key_base64))
    if config.private_key_path:
        with open(config.private_key_path, 'rb') as key_file:
            return _load_private_key(key_file.read())
    return None


@contextmanager
def get_snowflake_connection(config: SnowflakeConfig) -> Generator[SnowflakeConnection, None, None]:
    """
    Provide Snowflake connection with automatic cleanup.

    Supports both password and key-pair authentication:
    - If a private key (base64 or path) is set, uses key-pair auth
    - Otherwise, uses password auth

    Usage:
        with get_snowflake_connection(config) as conn:
            cursor = conn.cursor()
            # do work
            conn.commit()
    """
    import snowflake.connector

    conn = None
    try:
        connect_params = {
            'account': config.account,
            'user': config.user,
            'database': config.database,
            'schema': config.schema,
            'warehouse': config.warehouse,
            'role': config.role,
            'client_session_keep_alive': True,
        }

        private_key = _read_private_key(config)
        if private_key:
            logger.info("Using key-pair authentication for Snowflake")
            connect_params['private_key'] = private_key
        elif config.password:
            logger.info("Using password authentication for Snowflake")
            connect_params['password'] = config.password
        else:
            raise SnowflakeConnectionError(
                "Either password or a private key must be provided"
            )

        conn = snowflake.connector.connect(**connect_params)

        logger.debug(
            "Established Snowflake connection",
            extra={
                "account": config.account,
                "database": config.database,
                "schema": config.schema,
            }
        )

    except snowflake.connector.errors.DatabaseError as e:
        logger.error(
            "Snowflake connection failed",
            extra={"error": str(e), "account": config.account}
        )
        raise SnowflakeConnectionError(f"Database connection failed: {e}")

    try:
        yield conn
    finally:
        try:
            conn.close()
            logger.debug("Closed Snowflake connection")
        except Exception as e:
            logger.warning(
                "Error closing Snowflake connection",
                extra={"error": str(e)}
            )


def check_connection(conn: SnowflakeConnection) -> None:
    """Run a trivial query. Raises if the connection is unusable."""
    cursor = conn.cursor()
    try:
        cursor.execute("SELECT 1")
        cursor.fetchone()
    finally:
        cursor.close()


# ---------------------------------------------------------------------------
# Mock Connection for Local Development
# ---------------------------------------------------------------------------

def _normalize(query: str) -> str:
    return re.sub(r"\s+", " ", query).upper().strip()


class MockSnowflakeCursor:
    """
    Mock Snowflake cursor for testing.

    Implements just enough of the cursor interface to support the
    repositories without a real database. Queries are recognised by
    pattern matching, and rows come back as tuples in the column order
    from `schema.py`, the same as the real connector.

    The conditional version MERGE honours (subject, thread, index)
    uniqueness and reports rowcount 0 on a collision.
    """

    def __init__(self, storage: dict, lock: threading.Lock) -> None:
        self._storage = storage
        self._lock = lock
        self._results: list = []
        self._rowcount: int = 0

    def execute(self, query: str, params: Optional[tuple] = None) -> 'MockSnowflakeCursor':
        logger.debug(
            "Mock cursor execute",
            extra={"query": query[:100], "params": params}
        )

        query_upper = _normalize(query)
        params = tuple(params or ())
        self._results = []
        self._rowcount = 0

        with self._lock:
            if query_upper.startswith('MERGE INTO COACHING_VERSIONS'):
                self._merge_version(params)
            elif query_upper.startswith('MERGE INTO ACTIVE_POINTERS'):
                self._merge_pointer(params)
            elif query_upper.startswith('INSERT INTO COACHING_TELEMETRY'):
                self._storage['coaching_telemetry'].append(dict(zip(TELEMETRY_COLUMNS, params)))
                self._rowcount = 1
            elif query_upper == 'SELECT 1':
                self._results = [(1,)]
            elif 'FROM COACHING_VERSIONS' in query_upper:
                self._select_versions(query_upper, params)
            elif 'FROM ACTIVE_POINTERS' in query_upper:
                row = self._storage['active_pointers'].get((params[0], params[1]))
                self._results = [self._as_tuple(row, POINTER_COLUMNS)] if row else []
            elif 'FROM SESSION_STATS' in query_upper:
                self._select_stats(query_upper, params)

        return self

    def _merge_version(self, params: tuple) -> None:
        row = dict(zip(VERSION_COLUMNS, params))
        key = (row['subject_id'], row['thread_id'], row['version_index'])
        taken = any(
            (v['subject_id'], v['thread_id'], v['version_index']) == key
            for v in self._storage['coaching_versions'].values()
        )
        if taken:
            return
        self._storage['coaching_versions'][row['version_id']] = row
        self._rowcount = 1

    def _merge_pointer(self, params: tuple) -> None:
        # (subject, kind, id, at, by, subject, kind, id, at, by)
        subject_id, content_kind, version_id, updated_at, updated_by = params[:5]
        self._storage['active_pointers'][(subject_id, content_kind)] = {
            'subject_id': subject_id,
            'content_kind': content_kind,
            'active_version_id': version_id,
            'updated_at': updated_at,
            'updated_by': updated_by,
        }
        self._rowcount = 1

    def _select_versions(self, query: str, params: tuple) -> None:
        rows = list(self._storage['coaching_versions'].values())
        if 'WHERE VERSION_ID = %S' in query:
            rows = [r for r in rows if r['version_id'] == params[0]]
            limit = 1
        else:
            rows = [r for r in rows if r['subject_id'] == params[0] and r['thread_id'] == params[1]]
            if 'DATA_HASH = %S' in query:
                rows = [r for r in rows if r['data_hash'] == params[2]]
                limit = 1
            else:
                limit = params[2] if len(params) > 2 else 1
        rows.sort(key=lambda r: r['version_index'], reverse=True)
        self._results = [self._as_tuple(r, VERSION_COLUMNS) for r in rows[:limit]]

    def _select_stats(self, query: str, params: tuple) -> None:
        subject_rows = [
            r for (subject_id, _), r in self._storage['session_stats'].items()
            if subject_id == params[0]
        ]
        newest_first = sorted(
            subject_rows,
            key=lambda r: (r['created_at'], r['session_id']),
            reverse=True,
        )

        if 'CREATED_AT < (' in query:
            anchor = self._storage['session_stats'].get((params[1], params[2]))
            if anchor is None:
                return
            earlier = [r for r in newest_first if r['created_at'] < anchor['created_at']]
            self._results = [self._as_tuple(r, SESSION_STATS_COLUMNS) for r in earlier[:1]]
        elif 'SESSION_ID = %S' in query:
            row = self._storage['session_stats'].get((params[0], params[1]))
            self._results = [self._as_tuple(row, SESSION_STATS_COLUMNS)] if row else []
        else:
            limit = params[1] if len(params) > 1 else len(newest_first)
            self._results = [self._as_tuple(r, SESSION_STATS_COLUMNS) for r in newest_first[:limit]]

    def _as_tuple(self, row: dict, columns: tuple) -> tuple:
        return tuple(row.get(column) for column in columns)

    def fetchone(self):
        """Fetch one row from results."""
        if not self._results:
            return None
        return self._results[0]

    def fetchall(self) -> list:
        """Fetch all rows from results."""
        return list(self._results)

    def close(self) -> None:
        """Close cursor (no-op for mock)."""
        pass

    @property
    def rowcount(self) -> int:
        """Return number of rows affected."""
        return self._rowcount


class MockSnowflakeConnection:
    """
    Mock Snowflake connection for local development.

    Stores data in memory. Not suitable for production, but perfect for:
    - Local development
    - Unit tests
    - CI/CD environments
    """

    def __init__(self) -> None:
        self._storage: dict[str, Any] = {
            'coaching_versions': {},   # version_id -> row
            'active_pointers': {},     # (subject_id, slot) -> row
            'coaching_telemetry': [],  # rows in insert order
            'session_stats': {},       # (subject_id, session_id) -> row
        }
        self._lock = threading.Lock()

        logger.info("Initialized mock Snowflake connection (in-memory)")

    def cursor(self) -> MockSnowflakeCursor:
        """Create a mock cursor."""
        return MockSnowflakeCursor(self._storage, self._lock)

    def commit(self) -> None:
        """Commit transaction (no-op for mock, always auto-commits)."""
        logger.debug("Mock connection commit")

    def rollback(self) -> None:
        """Rollback transaction (no-op for mock)."""
        logger.debug("Mock connection rollback")

    def close(self) -> None:
        """Close connection (no-op for mock)."""
        logger.debug("Mock connection close")

    # Helper methods for testing
    def _add_snapshot(
        self,
        subject_id: str,
        session_id: str,
        metrics: dict,
        created_at: Optional[datetime] = None,
        handicap: Optional[float] = None,
        data_hash: Optional[str] = None,
    ) -> None:
        """Add a session stats row, as ingestion would (for test setup)."""
        self._storage['session_stats'][(subject_id, session_id)] = {
            'subject_id': subject_id,
            'session_id': session_id,
            'data_hash': data_hash or f"stats-{session_id}",
            'metrics': json.dumps(metrics),
            'handicap': handicap,
            'created_at': created_at or datetime.now(timezone.utc).replace(tzinfo=None),
        }

    def _remove_snapshot(self, subject_id: str, session_id: str) -> None:
        """Drop a session stats row, as an ingestion correction would."""
        self._storage['session_stats'].pop((subject_id, session_id), None)

    def _set_pointer(self, subject_id: str, slot: str, version_id: str) -> None:
        """Write a pointer row directly, bypassing the engine (for test setup)."""
        self._storage['active_pointers'][(subject_id, slot)] = {
            'subject_id': subject_id,
            'content_kind': slot,
            'active_version_id': version_id,
            'updated_at': None,
            'updated_by': 'test',
        }

    def _versions(self) -> list[dict]:
        """All stored version rows (for test assertions)."""
        return list(self._storage['coaching_versions'].values())

    def _telemetry(self) -> list[dict]:
        """All telemetry rows (for test assertions)."""
        return list(self._storage['coaching_telemetry'])

    def _clear(self) -> None:
        """Clear all mock storage (for test cleanup)."""
        for table in self._storage.values():
            table.clear()


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

@contextmanager
def create_snowflake_connection(
    config: Optional[SnowflakeConfig] = None,
    mock_mode: bool = False,
) -> Generator[SnowflakeConnection, None, None]:
    """
    Create Snowflake connection based on configuration.

    Args:
        config: Snowflake configuration (required if not mock_mode)
        mock_mode: If True, return a fresh mock connection

    Yields:
        SnowflakeConnection implementation (real or mock)
    """
    if mock_mode:
        conn = MockSnowflakeConnection()
        try:
            yield conn
        finally:
            conn.close()
    else:
        if config is None:
            raise ValueError("config is required when not in mock mode")

        with get_snowflake_connection(config) as conn:
            yield conn
