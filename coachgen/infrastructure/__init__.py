"""
Infrastructure layer - external service integrations.

Each subdirectory wraps an external dependency:
- anthropic: Claude API client
- snowflake: Database persistence

These wrappers translate between external formats and our domain models.
"""
