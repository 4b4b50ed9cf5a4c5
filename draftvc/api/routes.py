"""
API routes for the draft versioning service.

Every route is owner-scoped: the caller identifies itself with the
X-Owner-ID header and can only see its own drafts. Domain errors are
raised unchanged and turned into JSON responses by the handlers
registered in app.py.
"""

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, Header, Query, Request, Response
from pydantic import BaseModel, Field

from ..engine import CreateOutcome
from ..service import DraftVersioningService
from ..store.base import OriginSource

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Draft Versions"])


# --- Request/Response Models ---


class DraftCreateRequest(BaseModel):
    """Request to create a new draft."""

    name: str = Field(..., description="Display name")
    content: dict[str, Any] = Field(..., description="Document content")
    metadata: dict[str, Any] | None = Field(None, description="Free-form metadata")
    template_id: str | None = Field(None, description="Rendering template")
    origin_source: OriginSource = Field(OriginSource.MANUAL, description="How the draft was produced")


class VersionSaveRequest(BaseModel):
    """Request to save content as a new version."""

    content: dict[str, Any] = Field(..., description="New document content")
    metadata: dict[str, Any] | None = Field(None, description="New metadata")
    origin_source: OriginSource = Field(OriginSource.MANUAL, description="How the content was produced")


class VersionResponse(BaseModel):
    """A single draft version."""

    id: str
    owner_id: str
    name: str
    version_number: int
    is_active: bool
    parent_id: str | None = None
    root_id: str
    origin_source: str
    template_id: str | None = None
    content: dict[str, Any]
    metadata: dict[str, Any]
    content_hash: str
    created_at: int
    updated_at: int


class SaveResponse(BaseModel):
    """Outcome of a save or restore."""

    created: bool
    version: VersionResponse


class HistoryResponse(BaseModel):
    """All versions of a draft, oldest first."""

    root_id: str
    versions: list[VersionResponse]


class CompareResponse(BaseModel):
    """Differences between two versions."""

    version1: VersionResponse
    version2: VersionResponse
    same_family: bool
    template_changed: bool
    differences: dict[str, Any]


# --- Dependencies ---


def get_service(request: Request) -> DraftVersioningService:
    """Get the versioning service from app state."""
    return request.app.state.service


def get_owner_id(x_owner_id: str = Header(..., alias="X-Owner-ID", min_length=1)) -> str:
    """Get the owner from the X-Owner-ID header."""
    return x_owner_id


def _outcome_response(outcome: CreateOutcome, response: Response) -> SaveResponse:
    response.status_code = 201 if outcome.created else 200
    version = outcome.version if outcome.created else outcome.current
    return SaveResponse(created=outcome.created, version=version.to_dict())


# --- Draft Routes ---


@router.post("/drafts", response_model=VersionResponse, status_code=201)
async def create_draft(
    request: DraftCreateRequest,
    service: DraftVersioningService = Depends(get_service),
    owner_id: str = Depends(get_owner_id),
):
    """
    Create a new draft.

    The draft is the root (version 1) of a new version family.
    """
    version = await service.create_draft(
        owner_id,
        request.name,
        request.content,
        metadata=request.metadata,
        template_id=request.template_id,
        origin_source=request.origin_source,
    )
    return version.to_dict()


@router.get("/drafts/{draft_id}", response_model=VersionResponse)
async def get_draft(
    draft_id: str,
    service: DraftVersioningService = Depends(get_service),
    owner_id: str = Depends(get_owner_id),
):
    """Get a single version by ID, deleted or not."""
    version = await service.get_version(draft_id, owner_id)
    return version.to_dict()


@router.patch("/drafts/{draft_id}", response_model=VersionResponse)
async def update_draft(
    draft_id: str,
    partial: dict[str, Any] = Body(..., description="Subset of name, template_id, metadata"),
    service: DraftVersioningService = Depends(get_service),
    owner_id: str = Depends(get_owner_id),
):
    """
    Update display fields of a version in place.

    Content changes must go through POST /drafts/{id}/versions.
    """
    version = await service.update_draft_in_place(draft_id, partial, owner_id)
    return version.to_dict()


@router.delete("/drafts/{draft_id}", status_code=204)
async def delete_draft(
    draft_id: str,
    service: DraftVersioningService = Depends(get_service),
    owner_id: str = Depends(get_owner_id),
):
    """
    Soft-delete a version.

    The last active version of a draft cannot be deleted.
    """
    await service.delete_version(draft_id, owner_id)
    return Response(status_code=204)


# --- Version Routes ---


@router.post("/drafts/{draft_id}/versions", response_model=SaveResponse)
async def save_version(
    draft_id: str,
    request: VersionSaveRequest,
    response: Response,
    service: DraftVersioningService = Depends(get_service),
    owner_id: str = Depends(get_owner_id),
):
    """
    Save content derived from a version.

    Returns 201 with the new version, or 200 with the existing one when
    the content is unchanged.
    """
    outcome = await service.create_version_if_changed(
        draft_id,
        request.content,
        request.metadata,
        owner_id,
        origin_source=request.origin_source,
    )
    return _outcome_response(outcome, response)


@router.get("/drafts/{draft_id}/history", response_model=HistoryResponse)
async def get_history(
    draft_id: str,
    service: DraftVersioningService = Depends(get_service),
    owner_id: str = Depends(get_owner_id),
):
    """Get every version of the draft, ascending by version number."""
    versions = await service.get_version_history(draft_id, owner_id)
    return HistoryResponse(
        root_id=versions[0].root_id,
        versions=[v.to_dict() for v in versions],
    )


@router.get("/drafts/{draft_id}/head", response_model=VersionResponse)
async def get_head(
    draft_id: str,
    service: DraftVersioningService = Depends(get_service),
    owner_id: str = Depends(get_owner_id),
):
    """Get the latest active version of the draft."""
    version = await service.get_latest_version(draft_id, owner_id)
    return version.to_dict()


@router.post("/drafts/{draft_id}/restore", response_model=SaveResponse)
async def restore_version(
    draft_id: str,
    response: Response,
    service: DraftVersioningService = Depends(get_service),
    owner_id: str = Depends(get_owner_id),
):
    """
    Restore the content of a version as the draft's newest version.

    History is kept; the restored content is appended on top of the head.
    """
    outcome = await service.restore_version(draft_id, owner_id)
    return _outcome_response(outcome, response)


@router.get("/compare", response_model=CompareResponse)
async def compare_versions(
    a: str = Query(..., description="Old side version ID"),
    b: str = Query(..., description="New side version ID"),
    service: DraftVersioningService = Depends(get_service),
    owner_id: str = Depends(get_owner_id),
):
    """Compare two versions side by side."""
    comparison = await service.compare_versions(a, b, owner_id)
    return CompareResponse(
        version1=comparison.version1.to_dict(),
        version2=comparison.version2.to_dict(),
        same_family=comparison.same_family,
        template_changed=comparison.template_changed,
        differences=comparison.differences(),
    )
