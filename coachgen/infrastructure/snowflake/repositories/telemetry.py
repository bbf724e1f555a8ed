"""
Snowflake sink for engine telemetry.

Plain inserts, one row per engine call. The engine wraps `record` so a
failing insert never fails the call it describes.
"""

import logging

from coachgen.core.generation.models import TelemetryEvent

from ..schema import TELEMETRY_COLUMNS
from .base import SnowflakeConnection


logger = logging.getLogger(__name__)


class TelemetryRepository:
    def __init__(self, connection: SnowflakeConnection) -> None:
        self._conn = connection

    def record(self, event: TelemetryEvent) -> None:
        cursor = self._conn.cursor()
        try:
            placeholders = ", ".join(["%s"] * len(TELEMETRY_COLUMNS))
            cursor.execute(
                f"INSERT INTO coaching_telemetry ({', '.join(TELEMETRY_COLUMNS)}) "
                f"VALUES ({placeholders})",
                tuple(getattr(event, column) for column in TELEMETRY_COLUMNS),
            )
            self._conn.commit()
        finally:
            cursor.close()
