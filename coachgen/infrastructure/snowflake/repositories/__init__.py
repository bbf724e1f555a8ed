"""
Repository pattern implementations for Snowflake.

Repositories translate between domain models and database representations.
"""

from .base import SnowflakeConfig, SnowflakeConnection
from .facts import FactRepository
from .pointers import PointerRepository
from .telemetry import TelemetryRepository
from .versions import VersionRepository

__all__ = [
    "SnowflakeConfig",
    "SnowflakeConnection",
    "FactRepository",
    "PointerRepository",
    "TelemetryRepository",
    "VersionRepository",
]
