"""
Domain models for versioned coaching content.

These models describe what the engine stores and returns. They have no
dependencies on the database, the HTTP layer or the text model. Stored
versions are frozen: once written they are values, not entities.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import uuid4


class ContentKindName(str, Enum):
    """The closed set of content kinds the engine can produce."""
    PLAN6M = "plan6m"
    PLAN3M = "plan3m"
    SESSIONCOACH = "sessioncoach"


class Reason(str, Enum):
    """Why a new version was written."""
    INITIAL = "initial"
    DATA_CHANGE = "data_change"
    MANUAL_REGEN = "manual_regen"


class GeneratedBy(str, Enum):
    """Which producer wrote the content."""
    DETERMINISTIC = "deterministic"
    EXTERNAL = "external"


class ActivationPolicy(str, Enum):
    """
    What happens to the active pointer after a new version is written.

    AUTO moves the pointer immediately. MANUAL leaves the new version as a
    draft until an admin activates it.
    """
    AUTO = "auto"
    MANUAL = "manual"


class CachePath(str, Enum):
    """Which branch of the cache protocol served a call."""
    HIT = "hit"
    REUSE = "reuse"
    MISS = "miss"


class Role(str, Enum):
    """Caller roles, from least to most trusted."""
    USER = "user"
    SERVICE = "service"
    ADMIN = "admin"


@dataclass(frozen=True)
class AuthContext:
    """
    Who is calling, resolved once at the edge and passed into the engine.

    The engine never looks at headers or secrets itself.
    """
    actor: str
    role: Role

    @property
    def can_force(self) -> bool:
        return self.role in (Role.SERVICE, Role.ADMIN)

    @property
    def can_activate(self) -> bool:
        return self.role == Role.ADMIN


@dataclass(frozen=True)
class ContentVersion:
    """
    One immutable, numbered content artifact within a thread.

    `content` is the validated payload as plain JSON data, tagged with its
    `schema_version`.
    """
    id: str
    subject_id: str
    thread_id: str
    content_kind: ContentKindName
    version_index: int
    data_hash: str
    content: dict[str, Any]
    reason: Reason
    generated_by: GeneratedBy
    created_at: datetime

    def __post_init__(self) -> None:
        if self.version_index < 1:
            raise ValueError("version_index must be positive")
        if not self.data_hash:
            raise ValueError("data_hash cannot be empty")


@dataclass(frozen=True)
class ActivePointer:
    """The mutable reference to the version considered current."""
    subject_id: str
    content_kind: str  # pointer slot, e.g. "plan3m" or "sessioncoach:<session>"
    active_version_id: str
    updated_at: Optional[datetime] = None
    updated_by: Optional[str] = None


@dataclass(frozen=True)
class StatsSnapshot:
    """
    A performance statistics snapshot for one session.

    Provided by ingestion (out of scope). `metrics` only holds numeric values
    keyed by metric id; anything else ingestion stored is dropped when the
    row is read.
    """
    subject_id: str
    session_id: str
    data_hash: str
    metrics: dict[str, float]
    created_at: datetime
    handicap: Optional[float] = None

    @property
    def as_of(self) -> date:
        return self.created_at.date()


@dataclass
class GenerationOutcome:
    """The result of one `generate` call."""
    path: CachePath
    version: ContentVersion
    activated: bool = False
    fallback_cause: Optional[str] = None

    @property
    def cached(self) -> bool:
        """True when no new version was written."""
        return self.path in (CachePath.HIT, CachePath.REUSE)

    @property
    def reused(self) -> bool:
        return self.path == CachePath.REUSE


@dataclass
class TelemetryEvent:
    """One best-effort observability record per engine call."""
    route: str
    status: str  # "ok" or "error"
    subject_id: Optional[str] = None
    thread_id: Optional[str] = None
    cache_status: Optional[str] = None
    generated_by: Optional[str] = None
    fallback_cause: Optional[str] = None
    duration_ms: int = 0
    model: Optional[str] = None
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    cost_usd: Optional[float] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    request_id: str = field(default_factory=lambda: str(uuid4()))
    created_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc).replace(tzinfo=None)
    )
