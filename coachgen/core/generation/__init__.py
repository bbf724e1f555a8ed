"""
Content-addressable generation and versioning of coaching content.

Contains the engine, content kinds, validation schemas, the baseline and
collaborator producers, and the domain models they share.
"""

from .engine import GenerationEngine, PointerRegistry, TelemetrySink, ThreadListing, VersionStore
from .errors import (
    EngineError,
    GenerationError,
    InputMissing,
    InvalidRequest,
    SchemaViolation,
    Unauthorized,
    VersionNotFound,
    WriteConflict,
    WriteConflictExhausted,
)
from .generator import ContentGenerator
from .collaborator import CollaboratorReply, GenerativeCollaboratorAdapter, TextModelClient
from .kinds import CONTENT_KINDS, FactProvider, get_kind
from .models import (
    ActivePointer,
    AuthContext,
    CachePath,
    ContentKindName,
    ContentVersion,
    GeneratedBy,
    GenerationOutcome,
    Reason,
    Role,
    StatsSnapshot,
    TelemetryEvent,
)
from .validator import AllowedReferences, OutputValidator

__all__ = [
    "GenerationEngine",
    "PointerRegistry",
    "TelemetrySink",
    "ThreadListing",
    "VersionStore",
    "EngineError",
    "GenerationError",
    "InputMissing",
    "InvalidRequest",
    "SchemaViolation",
    "Unauthorized",
    "VersionNotFound",
    "WriteConflict",
    "WriteConflictExhausted",
    "ContentGenerator",
    "CollaboratorReply",
    "GenerativeCollaboratorAdapter",
    "TextModelClient",
    "CONTENT_KINDS",
    "FactProvider",
    "get_kind",
    "ActivePointer",
    "AuthContext",
    "CachePath",
    "ContentKindName",
    "ContentVersion",
    "GeneratedBy",
    "GenerationOutcome",
    "Reason",
    "Role",
    "StatsSnapshot",
    "TelemetryEvent",
    "AllowedReferences",
    "OutputValidator",
]
