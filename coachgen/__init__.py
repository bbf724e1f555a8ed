"""
Coachgen - versioned coaching content generation.

This package contains the complete application:
- core: Framework-agnostic generation and versioning logic
- infrastructure: External service integrations
- api: FastAPI routes and dependencies
- config: Application configuration
"""

__version__ = "0.1.0"
