"""
Anthropic Claude API client wrapper.

Implements the TextModelClient protocol from core.generation.collaborator.
"""

from .client import AnthropicTextClient, AnthropicConfig, create_anthropic_client

__all__ = ["AnthropicTextClient", "AnthropicConfig", "create_anthropic_client"]
