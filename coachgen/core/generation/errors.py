"""
Error taxonomy for the generation engine.

Only a few of these ever reach a caller. The rest describe why an external
generation attempt was discarded and are absorbed by the baseline fallback.

Caller-visible:
- Unauthorized, InputMissing, InvalidRequest, WriteConflictExhausted,
  VersionNotFound

Absorbed (GenerationError and subclasses):
- CollaboratorDisabled, CollaboratorTimeout, CollaboratorError,
  MalformedOutput, SchemaViolation
"""


class EngineError(Exception):
    """Base class for everything the engine raises."""
    pass


class Unauthorized(EngineError):
    """The caller's auth context does not allow the requested operation."""

    def __init__(self, message: str, authenticated: bool = True) -> None:
        super().__init__(message)
        self.authenticated = authenticated


class InputMissing(EngineError):
    """
    A required upstream fact is absent (e.g. no stats snapshot yet).

    Not retriable until the underlying data exists.
    """

    def __init__(self, fact: str, message: str) -> None:
        super().__init__(message)
        self.fact = fact


class InvalidRequest(EngineError):
    """The request itself is malformed for the kind (e.g. no session_id)."""
    pass


class WriteConflict(EngineError):
    """The version index was taken by a concurrent writer."""

    def __init__(self, subject_id: str, thread_id: str, version_index: int) -> None:
        super().__init__(
            f"version_index {version_index} already exists for "
            f"subject={subject_id} thread={thread_id}"
        )
        self.subject_id = subject_id
        self.thread_id = thread_id
        self.version_index = version_index


class WriteConflictExhausted(EngineError):
    """Index collisions persisted past the retry budget. Transient."""
    pass


class VersionNotFound(EngineError):
    """A version id does not resolve for the given subject and kind."""
    pass


class GenerationError(EngineError):
    """
    An external generation attempt failed.

    `cause` is a short machine-readable label recorded in telemetry.
    `reply` is the collaborator reply the failure came from, when there was one.
    """

    cause = "generation_error"

    def __init__(self, message: str = "", reply=None) -> None:
        super().__init__(message)
        self.reply = reply


class CollaboratorDisabled(GenerationError):
    """The collaborator is switched off by configuration."""

    cause = "collaborator_disabled"


class CollaboratorTimeout(GenerationError):
    """The collaborator did not answer within the configured timeout."""

    cause = "collaborator_timeout"


class CollaboratorError(GenerationError):
    """The collaborator call raised (network, rate limit, API error)."""

    cause = "collaborator_error"


class MalformedOutput(GenerationError):
    """The collaborator answered, but not with a JSON object."""

    cause = "malformed_output"


class SchemaViolation(GenerationError):
    """
    Candidate content failed validation.

    `reason` names the rule that failed: `schema`, `reference_not_allowed`
    or `reserved_field`.
    """

    cause = "schema_violation"

    def __init__(self, reason: str, message: str, reply=None) -> None:
        super().__init__(message, reply=reply)
        self.reason = reason
