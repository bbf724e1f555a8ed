"""
Adapter around the external text-generation collaborator.

The collaborator is optional and untrusted. This module turns an input
snapshot into a prompt, calls the text model under a hard timeout, and
hands back a parsed JSON object. It does not validate the object; that
is the validator's job.

Every failure is raised as a GenerationError subclass so the generator
can fall back to the baseline. None of them ever reach the caller.
"""

import asyncio
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Optional, Protocol

from .errors import (
    CollaboratorDisabled,
    CollaboratorError,
    CollaboratorTimeout,
    MalformedOutput,
)
from .hashing import stable_stringify
from .validator import AllowedReferences


logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocols (interfaces)
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CollaboratorReply:
    """Raw text from the model plus what it cost to get it."""
    text: str
    model: Optional[str] = None
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None
    latency_ms: Optional[int] = None
    cost_usd: Optional[float] = None


class TextModelClient(Protocol):
    """
    Interface for text-generation clients.

    The adapter doesn't know or care whether this is Claude or a fake used
    in tests. It needs something that takes two prompts and returns text.
    """

    async def complete(self, system_prompt: str, user_prompt: str) -> CollaboratorReply:
        """Return the model's reply to one prompt pair."""
        ...


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------

SYSTEM_PROMPT = """You are an experienced golf coach writing structured coaching content from launch monitor statistics.

## Rules
- Respond with a single JSON object and nothing else. No markdown, no commentary.
- Only use theme ids and metric ids from the allowed lists you are given.
- Never include the fields listed as server-supplied; the server adds them.
- Keep every string short and concrete. Players read this on a phone.

## Content
{instructions}"""


USER_PROMPT_TEMPLATE = """Input snapshot (JSON):
{snapshot}

Allowed theme ids: {themes}
Allowed metric ids: {metrics}
Server-supplied fields (do not include): {reserved}

Return the JSON object now."""


def build_prompts(
    instructions: str,
    snapshot: dict[str, Any],
    allowed: AllowedReferences,
    reserved_fields: frozenset[str],
) -> tuple[str, str]:
    """Build the (system, user) prompt pair for one generation attempt."""
    system_prompt = SYSTEM_PROMPT.format(instructions=instructions)
    user_prompt = USER_PROMPT_TEMPLATE.format(
        snapshot=stable_stringify(snapshot),
        themes=", ".join(sorted(allowed.themes)) or "(none)",
        metrics=", ".join(sorted(allowed.metrics)) or "(none)",
        reserved=", ".join(sorted(reserved_fields)),
    )
    return system_prompt, user_prompt


# ---------------------------------------------------------------------------
# Reply parsing
# ---------------------------------------------------------------------------

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def parse_json_object(text: str) -> dict[str, Any]:
    """
    Extract a JSON object from model output.

    Tries the text as-is, then with a markdown code fence stripped, then the
    slice from the first `{` to the last `}`. Anything else is malformed.
    """
    stripped = text.strip()
    attempts = [stripped, _FENCE.sub("", stripped).strip()]
    start, end = stripped.find("{"), stripped.rfind("}")
    if start != -1 and end > start:
        attempts.append(stripped[start:end + 1])

    for attempt in attempts:
        try:
            parsed = json.loads(attempt)
        except ValueError:
            continue
        if isinstance(parsed, dict):
            return parsed

    raise MalformedOutput("collaborator reply is not a JSON object")


# ---------------------------------------------------------------------------
# Adapter
# ---------------------------------------------------------------------------

@dataclass
class CollaboratorProposal:
    """A parsed, not yet validated, candidate body."""
    content: dict[str, Any]
    reply: CollaboratorReply


class GenerativeCollaboratorAdapter:
    """
    Calls the text model and parses its reply into a candidate.

    When `enabled` is False or no client is configured, `propose` raises
    CollaboratorDisabled without doing any work.
    """

    def __init__(
        self,
        client: Optional[TextModelClient],
        enabled: bool = True,
        timeout_seconds: float = 8.0,
    ) -> None:
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        self._client = client
        self._enabled = enabled and client is not None
        self._timeout = timeout_seconds

    @property
    def enabled(self) -> bool:
        return self._enabled

    async def propose(
        self,
        instructions: str,
        snapshot: dict[str, Any],
        allowed: AllowedReferences,
        reserved_fields: frozenset[str],
    ) -> CollaboratorProposal:
        if not self._enabled:
            raise CollaboratorDisabled("collaborator is disabled")

        system_prompt, user_prompt = build_prompts(
            instructions, snapshot, allowed, reserved_fields
        )

        try:
            # wait_for cancels the in-flight call on expiry
            reply = await asyncio.wait_for(
                self._client.complete(system_prompt, user_prompt),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            raise CollaboratorTimeout(
                f"collaborator did not answer within {self._timeout}s"
            )
        except Exception as e:
            logger.warning(
                "Collaborator call failed",
                extra={"error": str(e), "error_type": type(e).__name__},
            )
            raise CollaboratorError(f"collaborator call failed: {e}") from e

        try:
            content = parse_json_object(reply.text)
        except MalformedOutput as e:
            e.reply = reply
            raise
        return CollaboratorProposal(content=content, reply=reply)
