"""Generated file routes: save, retry, and generation context."""

import logging
from typing import Annotated

from fastapi import APIRouter, Path, Query, status
from pydantic import BaseModel

from sitebuilder.api.deps import CurrentUser, Generation, Store
from sitebuilder.errors import Forbidden
from sitebuilder.services.generation import GenerationRequest, GenerationResult
from sitebuilder.services.revision_store import RevisionStore

logger = logging.getLogger(__name__)

router = APIRouter()

ProjectId = Annotated[str, Path(max_length=32)]


class SaveFileRequest(BaseModel):
    """A generated file to store as a new revision."""

    destination: str
    content: str
    is_modification: bool = False


class SaveFileResponse(BaseModel):
    """Stored revision information."""

    revision_id: int
    revision_number: int
    path: str
    role: str
    content: str
    fixes_applied: list[str]


class ContextFileResponse(BaseModel):
    path: str
    role: str
    content: str
    revision_number: int


class GenerationContextResponse(BaseModel):
    """Stored files to show the agent before generating a path."""

    path: str
    is_modification: bool
    files: list[ContextFileResponse]


def _to_response(result: GenerationResult) -> SaveFileResponse:
    return SaveFileResponse(
        revision_id=result.revision_id,
        revision_number=result.revision_number,
        path=result.path,
        role=result.role,
        content=result.content,
        fixes_applied=result.fixes_applied,
    )


async def ensure_project_access(store: RevisionStore, project_id: str, user_id: str) -> None:
    """A project with history belongs to whoever created its latest revision."""
    latest = await store.get_latest_revision(project_id)
    if latest is not None and latest.user_id != user_id:
        raise Forbidden(f"Project {project_id} belongs to another user")


@router.post(
    "/{project_id}/files",
    response_model=SaveFileResponse,
    status_code=status.HTTP_201_CREATED,
)
async def save_generated_file(
    project_id: ProjectId,
    request: SaveFileRequest,
    user_id: CurrentUser,
    store: Store,
    generation: Generation,
) -> SaveFileResponse:
    """Validate a generated file and store it as a new revision."""
    await ensure_project_access(store, project_id, user_id)
    result = await generation.save_generated_file(
        GenerationRequest(
            project_id=project_id,
            user_id=user_id,
            content=request.content,
            destination=request.destination,
            is_modification=request.is_modification,
        )
    )
    return _to_response(result)


@router.post(
    "/{project_id}/files/retry",
    response_model=SaveFileResponse,
    status_code=status.HTTP_201_CREATED,
)
async def retry_pending_save(
    project_id: ProjectId,
    user_id: CurrentUser,
    generation: Generation,
) -> SaveFileResponse:
    """Replay a save that failed after validation."""
    result = await generation.retry_pending_save(user_id, project_id)
    return _to_response(result)


@router.get("/{project_id}/context", response_model=GenerationContextResponse)
async def get_generation_context(
    project_id: ProjectId,
    user_id: CurrentUser,
    store: Store,
    generation: Generation,
    path: str = Query(..., description="Destination about to be generated"),
    is_modification: bool = Query(False),
) -> GenerationContextResponse:
    """Latest stored content relevant to the next generation."""
    await ensure_project_access(store, project_id, user_id)
    context = await generation.get_generation_context(project_id, path, is_modification)
    return GenerationContextResponse(
        path=context.path,
        is_modification=context.is_modification,
        files=[
            ContextFileResponse(
                path=f.path,
                role=f.role,
                content=f.content,
                revision_number=f.revision_number,
            )
            for f in context.files
        ],
    )
