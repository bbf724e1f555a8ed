"""
FastAPI dependency injection.

Dependencies provide instances of services, clients, and configuration
to route handlers. Using dependency injection means:
- Routes don't instantiate their own dependencies (easier to test)
- Dependencies can be overridden in tests
- Resource lifecycle (connections, clients) is managed in one place

Authorization is resolved here, once, into an AuthContext that is passed
explicitly into the engine. The engine never reads headers.
"""

import hmac
import logging
from typing import Annotated, Generator, Optional

from fastapi import Depends, Header, HTTPException, Security, status
from fastapi.security import APIKeyHeader

from ..config.settings import Settings, get_settings
from ..core.generation.collaborator import GenerativeCollaboratorAdapter, TextModelClient
from ..core.generation.engine import GenerationEngine
from ..core.generation.generator import ContentGenerator
from ..core.generation.models import AuthContext, Role
from ..core.generation.validator import OutputValidator
from ..infrastructure.anthropic.client import create_anthropic_client
from ..infrastructure.snowflake.client import MockSnowflakeConnection, create_snowflake_connection
from ..infrastructure.snowflake.repositories import (
    FactRepository,
    PointerRepository,
    SnowflakeConfig,
    SnowflakeConnection,
    TelemetryRepository,
    VersionRepository,
)

logger = logging.getLogger(__name__)

# Security schemes
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)
generate_secret_header = APIKeyHeader(name="X-Coaching-Generate-Secret", auto_error=False)

# Global instances shared across requests
_mock_snowflake_connection: Optional[MockSnowflakeConnection] = None
_text_client: Optional[TextModelClient] = None


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

async def get_auth_context(
    settings: Annotated[Settings, Depends(get_settings)],
    api_key: Optional[str] = Security(api_key_header),
    generate_secret: Optional[str] = Security(generate_secret_header),
    x_user_id: Annotated[Optional[str], Header()] = None,
) -> AuthContext:
    """
    Resolve the caller into an AuthContext.

    - X-Coaching-Generate-Secret matching the configured secret: service
    - X-API-Key plus an X-User-Id listed in ADMIN_USER_IDS: admin
    - X-API-Key alone (or with a non-admin user id): user

    Raises 401 when no credentials are supplied and 403 when they are wrong.
    """
    if generate_secret:
        expected = settings.coaching_generate_secret
        if expected and hmac.compare_digest(generate_secret, expected):
            return AuthContext(actor="service", role=Role.SERVICE)
        logger.warning("Invalid generate secret attempt")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid generate secret",
        )

    if not api_key:
        logger.warning("Request missing API key")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="API key required. Provide X-API-Key header.",
        )

    if api_key not in settings.api_keys_list:
        logger.warning(
            "Invalid API key attempt",
            extra={"key_prefix": api_key[:8]}
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid API key",
        )

    if x_user_id and x_user_id in settings.admin_user_ids_list:
        return AuthContext(actor=x_user_id, role=Role.ADMIN)

    return AuthContext(actor=x_user_id or f"api-key:{api_key[:8]}", role=Role.USER)


# ---------------------------------------------------------------------------
# Service Dependencies
# ---------------------------------------------------------------------------

def _snowflake_config(settings: Settings) -> SnowflakeConfig:
    return SnowflakeConfig(
        account=settings.snowflake_account,
        user=settings.snowflake_user,
        password=settings.snowflake_password or None,
        private_key_path=settings.snowflake_private_key_path,
        private_key_base64=settings.snowflake_private_key_base64,
        database=settings.snowflake_database,
        schema=settings.snowflake_schema,
        warehouse=settings.snowflake_warehouse,
        role=settings.snowflake_role,
    )


def get_connection(
    settings: Annotated[Settings, Depends(get_settings)],
) -> Generator[SnowflakeConnection, None, None]:
    """
    Provide a database connection for the request.

    In mock mode, we reuse the same connection across requests
    so that data persists during the process lifetime.
    """
    global _mock_snowflake_connection

    if settings.snowflake_mock_mode:
        if _mock_snowflake_connection is None:
            _mock_snowflake_connection = MockSnowflakeConnection()
            logger.info("Created shared mock Snowflake connection")
        yield _mock_snowflake_connection
    else:
        with create_snowflake_connection(config=_snowflake_config(settings)) as conn:
            yield conn


def get_text_client(
    settings: Annotated[Settings, Depends(get_settings)],
) -> Optional[TextModelClient]:
    """
    Provide the shared Claude client, or None when the collaborator is off.

    The client holds an HTTP connection pool, so one instance is reused
    across requests.
    """
    global _text_client

    if not settings.collaborator_enabled:
        return None

    if _text_client is None:
        _text_client = create_anthropic_client(
            api_key=settings.anthropic_api_key,
            model=settings.anthropic_model,
            max_tokens=settings.anthropic_max_tokens,
            temperature=settings.anthropic_temperature,
        )
        logger.info("Created Anthropic text client", extra={"model": settings.anthropic_model})
    return _text_client


def build_engine(
    connection: SnowflakeConnection,
    settings: Settings,
    text_client: Optional[TextModelClient] = None,
) -> GenerationEngine:
    """Wire repositories, collaborator and generator into an engine."""
    collaborator = GenerativeCollaboratorAdapter(
        client=text_client,
        enabled=settings.collaborator_enabled,
        timeout_seconds=settings.coaching_ai_timeout_seconds,
    )
    return GenerationEngine(
        versions=VersionRepository(connection),
        pointers=PointerRepository(connection),
        facts=FactRepository(connection),
        generator=ContentGenerator(OutputValidator(), collaborator),
        telemetry=TelemetryRepository(connection),
        max_write_attempts=settings.version_write_max_attempts,
    )


def get_generation_engine(
    settings: Annotated[Settings, Depends(get_settings)],
    connection: Annotated[SnowflakeConnection, Depends(get_connection)],
    text_client: Annotated[Optional[TextModelClient], Depends(get_text_client)],
) -> GenerationEngine:
    """The engine is cheap to build, so we create one per request."""
    return build_engine(connection, settings, text_client)


# ---------------------------------------------------------------------------
# Convenience Type Aliases
# ---------------------------------------------------------------------------

# These type aliases make route signatures cleaner
AuthContextDep = Annotated[AuthContext, Depends(get_auth_context)]
ConnectionDep = Annotated[SnowflakeConnection, Depends(get_connection)]
GenerationEngineDep = Annotated[GenerationEngine, Depends(get_generation_engine)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
