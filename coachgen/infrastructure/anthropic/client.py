"""
Anthropic Claude API client wrapper.

This module provides a thin wrapper around the Anthropic SDK that:
1. Implements our TextModelClient protocol
2. Handles API-specific details (message format, usage accounting)
3. Provides consistent error handling
4. Enables easy mocking for tests

The wrapper is intentionally thin. It knows about Anthropic's API format
but not about golf, plans or validation.
"""

import logging
import time
from dataclasses import dataclass
from typing import Optional

import anthropic
from anthropic import APIError, RateLimitError

from coachgen.core.generation.collaborator import CollaboratorReply, TextModelClient

from .pricing import estimate_cost_usd


logger = logging.getLogger(__name__)


class AnthropicClientError(Exception):
    """Raised when API calls fail."""
    pass


class RateLimitExceeded(AnthropicClientError):
    """Raised when we hit rate limits."""
    pass


@dataclass
class AnthropicConfig:
    """
    Configuration for the Anthropic client.

    Validated at construction time so a bad config fails at startup,
    not on the first generation request.
    """
    api_key: str
    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 4096
    temperature: float = 0.2  # Plans should be stable, not creative

    def __post_init__(self) -> None:
        if not self.api_key:
            raise ValueError("API key is required")
        if self.max_tokens < 1:
            raise ValueError("max_tokens must be positive")
        if not 0 <= self.temperature <= 1:
            raise ValueError("temperature must be between 0 and 1")


class AnthropicTextClient(TextModelClient):
    """
    Implementation of TextModelClient using Claude.

    Uses the async SDK client so a timeout in the adapter cancels the
    HTTP request instead of leaving it running in a thread.
    """

    def __init__(self, config: AnthropicConfig) -> None:
        self._config = config
        self._client = anthropic.AsyncAnthropic(api_key=config.api_key)

    async def complete(self, system_prompt: str, user_prompt: str) -> CollaboratorReply:
        started = time.monotonic()

        try:
            response = await self._client.messages.create(
                model=self._config.model,
                max_tokens=self._config.max_tokens,
                temperature=self._config.temperature,
                system=system_prompt,
                messages=[
                    {"role": "user", "content": user_prompt}
                ],
            )
        except RateLimitError as e:
            logger.warning("Rate limit hit", extra={"error": str(e)})
            raise RateLimitExceeded("API rate limit exceeded. Please try again later.")
        except APIError as e:
            logger.error("API error", extra={"error": str(e), "status": getattr(e, "status_code", None)})
            raise AnthropicClientError(f"API error: {e.message}")

        usage = getattr(response, "usage", None)
        input_tokens = getattr(usage, "input_tokens", None)
        output_tokens = getattr(usage, "output_tokens", None)
        model = getattr(response, "model", None) or self._config.model

        return CollaboratorReply(
            text=self._extract_text_response(response),
            model=model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            latency_ms=int((time.monotonic() - started) * 1000),
            cost_usd=estimate_cost_usd(model, input_tokens, output_tokens),
        )

    def _extract_text_response(self, response) -> str:
        """Extract text content from API response."""
        if not response.content:
            return ""

        # Response content is a list of blocks
        text_blocks = [
            block.text
            for block in response.content
            if hasattr(block, 'text')
        ]

        return "\n".join(text_blocks)


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

def create_anthropic_client(
    api_key: str,
    model: str = "claude-sonnet-4-20250514",
    max_tokens: int = 4096,
    temperature: float = 0.2,
) -> Optional[AnthropicTextClient]:
    """
    Create a configured client, or None when no key is set.

    Returning None rather than raising lets the app start with the
    collaborator off; the adapter then always falls back to the baseline.
    """
    if not api_key:
        return None

    config = AnthropicConfig(
        api_key=api_key,
        model=model,
        max_tokens=max_tokens,
        temperature=temperature,
    )
    return AnthropicTextClient(config)
