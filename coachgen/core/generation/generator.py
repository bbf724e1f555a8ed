"""
Two-stage content generation: external attempt, deterministic fallback.

The generator always returns validated content. If the collaborator is
off, slow, wrong, or broken, the baseline is used instead and the reason
is recorded as `fallback_cause`. The caller never sees the difference
except in `generated_by`.
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional

from .collaborator import CollaboratorReply, GenerativeCollaboratorAdapter
from .errors import CollaboratorDisabled, GenerationError, SchemaViolation
from .models import GeneratedBy
from .validator import AllowedReferences, OutputValidator

if TYPE_CHECKING:
    from .kinds import ContentKind


logger = logging.getLogger(__name__)


@dataclass
class GeneratedContent:
    """Validated content plus how it was produced."""
    content: dict[str, Any]
    generated_by: GeneratedBy
    fallback_cause: Optional[str] = None
    reply: Optional[CollaboratorReply] = None


def assemble(body: dict[str, Any], envelope: dict[str, Any]) -> dict[str, Any]:
    """
    Merge server-supplied envelope fields into a candidate body.

    A body that already carries an envelope field is rejected rather than
    silently overwritten.
    """
    clashes = set(body) & set(envelope)
    if clashes:
        raise SchemaViolation(
            "reserved_field",
            f"candidate sets server-supplied fields: {sorted(clashes)}",
        )
    return {**body, **envelope}


class ContentGenerator:
    """Runs the external attempt and falls back to the baseline on any failure."""

    def __init__(
        self,
        validator: OutputValidator,
        collaborator: GenerativeCollaboratorAdapter,
    ) -> None:
        self._validator = validator
        self._collaborator = collaborator

    async def generate(
        self,
        kind: "ContentKind",
        snapshot: dict[str, Any],
        allowed: AllowedReferences,
    ) -> GeneratedContent:
        envelope = kind.envelope(snapshot)
        reply: Optional[CollaboratorReply] = None

        try:
            proposal = await self._collaborator.propose(
                kind.instructions, snapshot, allowed, kind.reserved_fields
            )
            reply = proposal.reply
            content = assemble(proposal.content, envelope)
            self._validator.validate(content, kind.name, allowed)
            return GeneratedContent(
                content=content,
                generated_by=GeneratedBy.EXTERNAL,
                reply=reply,
            )
        except CollaboratorDisabled as e:
            cause = e.cause
        except GenerationError as e:
            cause = e.cause
            reply = reply or e.reply
            logger.warning(
                "External generation rejected, using baseline",
                extra={
                    "kind": kind.name.value,
                    "cause": cause,
                    "reason": getattr(e, "reason", None),
                    "error": str(e),
                },
            )

        # A baseline that fails validation is a bug, so let it raise.
        content = assemble(kind.baseline(snapshot, allowed), envelope)
        self._validator.validate(content, kind.name, allowed)
        return GeneratedContent(
            content=content,
            generated_by=GeneratedBy.DETERMINISTIC,
            fallback_cause=cause,
            reply=reply,
        )
