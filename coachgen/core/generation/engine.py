"""
Generation engine: the cache protocol and version bookkeeping.

This module is the only place that decides whether content is reused or
regenerated. It is framework-agnostic and doesn't know about HTTP or
Snowflake; storage, facts and telemetry come in through the protocols
below.

One `generate` call goes:
1. Authorize (before any work)
2. Build the input snapshot from upstream facts and hash it
3. Cached hit: the valid active version already has this hash
4. Reuse hit: some earlier version on the thread has this hash
5. Miss (or force): generate, validate, append the next version index
6. Apply the kind's activation policy, then record telemetry
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Optional, Protocol

from .errors import (
    InvalidRequest,
    Unauthorized,
    VersionNotFound,
    WriteConflict,
    WriteConflictExhausted,
)
from .generator import ContentGenerator
from .hashing import stable_hash
from .kinds import ContentKind, FactProvider, SnapshotSources, get_kind
from .models import (
    ActivationPolicy,
    ActivePointer,
    AuthContext,
    CachePath,
    ContentKindName,
    ContentVersion,
    GeneratedBy,
    GenerationOutcome,
    Reason,
    TelemetryEvent,
)


logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocols (interfaces)
# ---------------------------------------------------------------------------

class VersionStore(Protocol):
    """
    Append-only storage of content versions.

    There is deliberately no update or delete. `append` must raise
    WriteConflict when the index is already taken for (subject, thread).
    """

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
        ...

    def latest(self, subject_id: str, thread_id: str) -> Optional[ContentVersion]:
        ...

    def find_by_hash(
        self, subject_id: str, thread_id: str, data_hash: str
    ) -> Optional[ContentVersion]:
        ...

    def get(self, version_id: str) -> Optional[ContentVersion]:
        ...

    def list_thread(
        self, subject_id: str, thread_id: str, limit: int = 20
    ) -> list[ContentVersion]:
        ...


class PointerRegistry(Protocol):
    """One mutable pointer per (subject, slot). Last writer wins."""

    def get(self, subject_id: str, content_kind: str) -> Optional[ActivePointer]:
        ...

    def set(self, subject_id: str, content_kind: str, version_id: str, actor: str) -> None:
        ...


class TelemetrySink(Protocol):
    """Where engine events go. Failures here never fail a call."""

    def record(self, event: TelemetryEvent) -> None:
        ...


@dataclass
class ThreadListing:
    """Versions on one thread, newest first, with the active one marked."""
    versions: list[ContentVersion]
    active_version_id: Optional[str] = None

    def is_active(self, version: ContentVersion) -> bool:
        return version.id == self.active_version_id


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class GenerationEngine:
    """
    Orchestrates snapshot, cache lookup, generation and activation.

    Every call is independent: all durable state lives in the version
    store and pointer registry, so any number of engines can run side by
    side against the same tables.
    """

    def __init__(
        self,
        versions: VersionStore,
        pointers: PointerRegistry,
        facts: FactProvider,
        generator: ContentGenerator,
        telemetry: Optional[TelemetrySink] = None,
        max_write_attempts: int = 3,
    ) -> None:
        if max_write_attempts < 1:
            raise ValueError("max_write_attempts must be at least 1")
        self._versions = versions
        self._pointers = pointers
        self._facts = facts
        self._generator = generator
        self._telemetry = telemetry
        self._max_write_attempts = max_write_attempts

    # ---- generate ---------------------------------------------------------

    async def generate(
        self,
        auth: Optional[AuthContext],
        kind: ContentKindName,
        subject_id: str,
        session_id: Optional[str] = None,
        force: bool = False,
    ) -> GenerationOutcome:
        """
        Return the current content for (kind, subject, session).

        Raises Unauthorized, InvalidRequest, InputMissing or
        WriteConflictExhausted. Collaborator and validation failures are
        absorbed by the baseline fallback.
        """
        kind_def = get_kind(kind)
        event = TelemetryEvent(route=f"{kind_def.name.value}.generate", status="ok", subject_id=subject_id)
        started = time.monotonic()

        try:
            outcome = await self._generate(auth, kind_def, subject_id, session_id, force, event)
        except Exception as e:
            event.status = "error"
            event.error_code = type(e).__name__
            event.error_message = str(e)[:500]
            raise
        finally:
            event.duration_ms = int((time.monotonic() - started) * 1000)
            self._emit(event)

        logger.info(
            "Generate finished",
            extra={
                "kind": kind_def.name.value,
                "subject_id": subject_id,
                "path": outcome.path.value,
                "version_index": outcome.version.version_index,
                "generated_by": outcome.version.generated_by.value,
            },
        )
        return outcome

    async def _generate(
        self,
        auth: Optional[AuthContext],
        kind: ContentKind,
        subject_id: str,
        session_id: Optional[str],
        force: bool,
        event: TelemetryEvent,
    ) -> GenerationOutcome:
        self._authorize_generate(auth, force)
        if not subject_id:
            raise InvalidRequest("subject_id is required")
        kind.check_request(session_id)

        thread_id = kind.thread_id(session_id)
        slot = kind.pointer_slot(session_id)
        event.thread_id = thread_id

        sources = SnapshotSources(facts=self._facts, active_version=self._active_for)
        snapshot = kind.build_snapshot(subject_id, session_id, sources)
        data_hash = stable_hash(snapshot)
        current = self._resolve_pointer(subject_id, slot, thread_id)

        if not force:
            if current is not None and current.data_hash == data_hash:
                event.cache_status = CachePath.HIT.value
                event.generated_by = current.generated_by.value
                return GenerationOutcome(path=CachePath.HIT, version=current, activated=True)

            existing = self._versions.find_by_hash(subject_id, thread_id, data_hash)
            if existing is not None:
                activated = self._apply_activation(kind, auth, subject_id, slot, existing, current)
                event.cache_status = CachePath.REUSE.value
                event.generated_by = existing.generated_by.value
                return GenerationOutcome(path=CachePath.REUSE, version=existing, activated=activated)

        if current is None:
            reason = Reason.INITIAL
        elif force:
            reason = Reason.MANUAL_REGEN
        else:
            reason = Reason.DATA_CHANGE

        allowed = kind.allowed_references(snapshot)
        generated = await self._generator.generate(kind, snapshot, allowed)
        if generated.reply is not None:
            event.model = generated.reply.model
            event.prompt_tokens = generated.reply.input_tokens
            event.completion_tokens = generated.reply.output_tokens
            event.cost_usd = generated.reply.cost_usd

        version, path = self._append_next(
            kind, subject_id, thread_id, data_hash, generated.content,
            reason, generated.generated_by, force,
        )
        activated = self._apply_activation(kind, auth, subject_id, slot, version, current)
        # a concurrent winner's version says nothing about our fallback
        fallback_cause = generated.fallback_cause if path == CachePath.MISS else None

        event.cache_status = path.value
        event.generated_by = version.generated_by.value
        event.fallback_cause = fallback_cause
        return GenerationOutcome(
            path=path,
            version=version,
            activated=activated,
            fallback_cause=fallback_cause,
        )

    def _append_next(
        self,
        kind: ContentKind,
        subject_id: str,
        thread_id: str,
        data_hash: str,
        content: dict[str, Any],
        reason: Reason,
        generated_by: GeneratedBy,
        force: bool,
    ) -> tuple[ContentVersion, CachePath]:
        """
        Append at latest+1, retrying on index collisions.

        Before each attempt a non-forced call checks whether a concurrent
        writer already stored the same hash, and reuses that version
        instead of writing a duplicate.
        """
        for attempt in range(1, self._max_write_attempts + 1):
            if not force:
                winner = self._versions.find_by_hash(subject_id, thread_id, data_hash)
                if winner is not None:
                    return winner, CachePath.REUSE

            latest = self._versions.latest(subject_id, thread_id)
            index = latest.version_index + 1 if latest else 1
            try:
                version = self._versions.append(
                    subject_id=subject_id,
                    thread_id=thread_id,
                    content_kind=kind.name,
                    version_index=index,
                    data_hash=data_hash,
                    content=content,
                    reason=reason,
                    generated_by=generated_by,
                )
                return version, CachePath.MISS
            except WriteConflict as e:
                logger.info(
                    "Version index taken by a concurrent writer",
                    extra={
                        "subject_id": subject_id,
                        "thread_id": thread_id,
                        "version_index": e.version_index,
                        "attempt": attempt,
                    },
                )

        raise WriteConflictExhausted(
            f"could not append to {thread_id} for subject {subject_id} "
            f"after {self._max_write_attempts} attempts"
        )

    def _apply_activation(
        self,
        kind: ContentKind,
        auth: Optional[AuthContext],
        subject_id: str,
        slot: str,
        version: ContentVersion,
        current: Optional[ContentVersion],
    ) -> bool:
        """
        Move the pointer if the kind's policy says so.

        Manual kinds only get activated automatically when nothing is
        active yet. Returns whether `version` is active afterwards.
        """
        if current is not None and current.id == version.id:
            return True
        if kind.activation == ActivationPolicy.AUTO or current is None:
            self._pointers.set(subject_id, slot, version.id, self._actor(auth))
            return True
        return False

    # ---- activation and lookup -------------------------------------------

    def activate(
        self,
        auth: Optional[AuthContext],
        kind: ContentKindName,
        subject_id: str,
        version_id: str,
    ) -> ContentVersion:
        """Point the kind's slot at an existing version. Admin only."""
        kind_def = get_kind(kind)
        event = TelemetryEvent(route=f"{kind_def.name.value}.activate", status="ok", subject_id=subject_id)
        started = time.monotonic()

        try:
            if auth is None:
                raise Unauthorized("authentication required", authenticated=False)
            if not auth.can_activate:
                raise Unauthorized("activation requires the admin role")

            version = self._versions.get(version_id)
            if (
                version is None
                or version.subject_id != subject_id
                or version.content_kind != kind_def.name
                or not kind_def.owns_thread(version.thread_id)
            ):
                raise VersionNotFound(f"version {version_id} not found for {kind_def.name.value}")

            event.thread_id = version.thread_id
            slot = kind_def.pointer_slot(kind_def.session_from_thread(version.thread_id))
            self._pointers.set(subject_id, slot, version.id, auth.actor)
        except Exception as e:
            event.status = "error"
            event.error_code = type(e).__name__
            event.error_message = str(e)[:500]
            raise
        finally:
            event.duration_ms = int((time.monotonic() - started) * 1000)
            self._emit(event)

        logger.info(
            "Version activated",
            extra={"kind": kind_def.name.value, "subject_id": subject_id, "version_id": version.id, "actor": auth.actor},
        )
        return version

    def active(
        self,
        kind: ContentKindName,
        subject_id: str,
        session_id: Optional[str] = None,
    ) -> Optional[ContentVersion]:
        """The valid active version, or None."""
        kind_def = get_kind(kind)
        kind_def.check_request(session_id)
        return self._resolve_pointer(
            subject_id,
            kind_def.pointer_slot(session_id),
            kind_def.thread_id(session_id),
        )

    def versions(
        self,
        kind: ContentKindName,
        subject_id: str,
        session_id: Optional[str] = None,
        limit: int = 20,
    ) -> ThreadListing:
        """Audit listing of a thread, newest first."""
        kind_def = get_kind(kind)
        kind_def.check_request(session_id)
        thread_id = kind_def.thread_id(session_id)
        current = self._resolve_pointer(subject_id, kind_def.pointer_slot(session_id), thread_id)
        return ThreadListing(
            versions=self._versions.list_thread(subject_id, thread_id, limit),
            active_version_id=current.id if current else None,
        )

    def version(self, subject_id: str, version_id: str) -> ContentVersion:
        version = self._versions.get(version_id)
        if version is None or version.subject_id != subject_id:
            raise VersionNotFound(f"version {version_id} not found")
        return version

    # ---- helpers ----------------------------------------------------------

    def _authorize_generate(self, auth: Optional[AuthContext], force: bool) -> None:
        if auth is None:
            raise Unauthorized("authentication required", authenticated=False)
        if force and not auth.can_force:
            raise Unauthorized("force requires the service or admin role")

    def _resolve_pointer(
        self,
        subject_id: str,
        slot: str,
        thread_id: str,
    ) -> Optional[ContentVersion]:
        """
        Follow the pointer for `slot`, or None if unset or invalid.

        An invalid pointer (dangling, other subject, other thread) is not
        an error. It is logged and treated as if there were no pointer.
        """
        pointer = self._pointers.get(subject_id, slot)
        if pointer is None:
            return None

        version = self._versions.get(pointer.active_version_id)
        if version is None or version.subject_id != subject_id or version.thread_id != thread_id:
            logger.warning(
                "Active pointer is invalid, treating as unset",
                extra={
                    "subject_id": subject_id,
                    "slot": slot,
                    "active_version_id": pointer.active_version_id,
                    "dangling": version is None,
                },
            )
            return None
        return version

    def _active_for(self, kind: ContentKindName, subject_id: str) -> Optional[ContentVersion]:
        kind_def = get_kind(kind)
        return self._resolve_pointer(subject_id, kind_def.pointer_slot(None), kind_def.thread_id(None))

    def _actor(self, auth: Optional[AuthContext]) -> str:
        return auth.actor if auth is not None else "system"

    def _emit(self, event: TelemetryEvent) -> None:
        if self._telemetry is None:
            return
        try:
            self._telemetry.record(event)
        except Exception as e:
            # Telemetry is best-effort and never fails the call
            logger.warning(
                "Telemetry write failed",
                extra={"route": event.route, "error": str(e)},
            )
