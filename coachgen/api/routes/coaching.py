"""
Coaching content API endpoints.

One generate operation per content kind, plus activation and audit
lookups. Routes are thin: they resolve auth, call the engine, and map
engine errors to HTTP status codes.

Workflow:
1. Ingestion writes session stats (out of scope here)
2. POST /{kind}/generate returns the current content, generating it
   only when the inputs changed
3. Admins review plan6m drafts via GET /{kind}/versions and promote one
   with POST /{kind}/activate
"""

import logging
from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, Field

from ...core.generation.errors import (
    EngineError,
    InputMissing,
    InvalidRequest,
    Unauthorized,
    VersionNotFound,
    WriteConflictExhausted,
)
from ...core.generation.models import ContentKindName, ContentVersion
from ..dependencies import AuthContextDep, GenerationEngineDep

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Request/Response Models
# ---------------------------------------------------------------------------

class GenerateRequest(BaseModel):
    """Request to generate (or fetch cached) content."""
    subject_id: str = Field(description="Player identifier", min_length=1, max_length=64)
    session_id: Optional[str] = Field(
        None,
        description="Session identifier (required for sessioncoach)",
        min_length=1,
        max_length=64,
    )
    force: bool = Field(False, description="Regenerate even if inputs are unchanged (service/admin only)")


class GenerateResponse(BaseModel):
    """The current content and how it was obtained."""
    cached: bool = Field(description="True when no new version was written")
    reused: bool = Field(description="True when an earlier version with the same inputs was reused")
    version_id: str
    version_index: int
    content: dict[str, Any]
    generated_by: str = Field(description="deterministic or external")
    reason: str = Field(description="initial, data_change or manual_regen")
    data_hash: str
    activated: bool = Field(description="Whether this version is now the active one")


class ActivateRequest(BaseModel):
    """Request to promote a stored version to active."""
    subject_id: str = Field(min_length=1, max_length=64)
    version_id: str = Field(min_length=1, max_length=64)


class VersionResponse(BaseModel):
    """One stored version."""
    version_id: str
    subject_id: str
    thread_id: str
    content_kind: str
    version_index: int
    data_hash: str
    reason: str
    generated_by: str
    created_at: Optional[datetime] = None
    content: dict[str, Any]
    active: Optional[bool] = None


class VersionListResponse(BaseModel):
    """Versions on one thread, newest first."""
    content_kind: str
    subject_id: str
    active_version_id: Optional[str] = None
    versions: list[VersionResponse]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _http_error(error: EngineError) -> HTTPException:
    if isinstance(error, Unauthorized):
        code = status.HTTP_403_FORBIDDEN if error.authenticated else status.HTTP_401_UNAUTHORIZED
        return HTTPException(status_code=code, detail=str(error))
    if isinstance(error, InputMissing):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"error": "input_missing", "fact": error.fact, "message": str(error)},
        )
    if isinstance(error, InvalidRequest):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))
    if isinstance(error, VersionNotFound):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error))
    if isinstance(error, WriteConflictExhausted):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Concurrent writes kept colliding. Please retry.",
            headers={"Retry-After": "1"},
        )
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Internal server error. Please contact support if this persists.",
    )


def _version_response(version: ContentVersion, active: Optional[bool] = None) -> VersionResponse:
    return VersionResponse(
        version_id=version.id,
        subject_id=version.subject_id,
        thread_id=version.thread_id,
        content_kind=version.content_kind.value,
        version_index=version.version_index,
        data_hash=version.data_hash,
        reason=version.reason.value,
        generated_by=version.generated_by.value,
        created_at=version.created_at,
        content=version.content,
        active=active,
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get(
    "/versions/{version_id}",
    response_model=VersionResponse,
    status_code=status.HTTP_200_OK,
    summary="Get one stored version",
)
async def get_version(
    version_id: str,
    auth: AuthContextDep,
    engine: GenerationEngineDep,
    subject_id: str = Query(min_length=1, max_length=64),
) -> VersionResponse:
    try:
        version = engine.version(subject_id, version_id)
    except EngineError as e:
        raise _http_error(e)
    return _version_response(version)


@router.post(
    "/{kind}/generate",
    response_model=GenerateResponse,
    status_code=status.HTTP_200_OK,
    summary="Generate or fetch coaching content",
    description="Returns cached content when the inputs are unchanged; otherwise writes a new version.",
)
async def generate_content(
    kind: ContentKindName,
    request: GenerateRequest,
    auth: AuthContextDep,
    engine: GenerationEngineDep,
) -> GenerateResponse:
    """
    Generate content for one kind.

    The response is the same shape whether the content was cached, reused
    or freshly written. `force` requires a service or admin caller.
    """
    logger.info(
        "Generate requested",
        extra={
            "kind": kind.value,
            "subject_id": request.subject_id,
            "session_id": request.session_id,
            "force": request.force,
            "role": auth.role.value,
        }
    )

    try:
        outcome = await engine.generate(
            auth,
            kind,
            request.subject_id,
            session_id=request.session_id,
            force=request.force,
        )
    except EngineError as e:
        logger.warning(
            "Generate rejected",
            extra={"kind": kind.value, "subject_id": request.subject_id, "error": str(e)}
        )
        raise _http_error(e)

    version = outcome.version
    return GenerateResponse(
        cached=outcome.cached,
        reused=outcome.reused,
        version_id=version.id,
        version_index=version.version_index,
        content=version.content,
        generated_by=version.generated_by.value,
        reason=version.reason.value,
        data_hash=version.data_hash,
        activated=outcome.activated,
    )


@router.post(
    "/{kind}/activate",
    response_model=VersionResponse,
    status_code=status.HTTP_200_OK,
    summary="Activate a stored version (admin)",
)
async def activate_version(
    kind: ContentKindName,
    request: ActivateRequest,
    auth: AuthContextDep,
    engine: GenerationEngineDep,
) -> VersionResponse:
    try:
        version = engine.activate(auth, kind, request.subject_id, request.version_id)
    except EngineError as e:
        raise _http_error(e)
    return _version_response(version, active=True)


@router.get(
    "/{kind}/active",
    response_model=VersionResponse,
    status_code=status.HTTP_200_OK,
    summary="Get the active version",
)
async def get_active_version(
    kind: ContentKindName,
    auth: AuthContextDep,
    engine: GenerationEngineDep,
    subject_id: str = Query(min_length=1, max_length=64),
    session_id: Optional[str] = Query(None, min_length=1, max_length=64),
) -> VersionResponse:
    try:
        version = engine.active(kind, subject_id, session_id)
    except EngineError as e:
        raise _http_error(e)

    if version is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No active {kind.value} for subject {subject_id}",
        )
    return _version_response(version, active=True)


@router.get(
    "/{kind}/versions",
    response_model=VersionListResponse,
    status_code=status.HTTP_200_OK,
    summary="List versions (audit trail)",
)
async def list_versions(
    kind: ContentKindName,
    auth: AuthContextDep,
    engine: GenerationEngineDep,
    subject_id: str = Query(min_length=1, max_length=64),
    session_id: Optional[str] = Query(None, min_length=1, max_length=64),
    limit: int = Query(20, ge=1, le=100),
) -> VersionListResponse:
    try:
        listing = engine.versions(kind, subject_id, session_id, limit)
    except EngineError as e:
        raise _http_error(e)

    return VersionListResponse(
        content_kind=kind.value,
        subject_id=subject_id,
        active_version_id=listing.active_version_id,
        versions=[_version_response(v, active=listing.is_active(v)) for v in listing.versions],
    )
