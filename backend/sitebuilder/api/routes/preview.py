"""Preview routes: compose a stored revision for the live preview."""

import logging
from typing import Annotated
from urllib.parse import urlencode

from fastapi import APIRouter, HTTPException, Path, Query, Request
from fastapi.responses import HTMLResponse, Response
from pydantic import BaseModel

from sitebuilder.api.deps import AppSettings, Composer, CurrentUser, OptionalUser, PreviewTokens, Store
from sitebuilder.errors import ComposeUnavailable, Forbidden, NotFound
from sitebuilder.models import SiteRevision
from sitebuilder.services.artifacts import ComposedDocument
from sitebuilder.services.bundler import browser_shell_html
from sitebuilder.services.composer import SiteComposer
from sitebuilder.services.paths import infer_mode, normalize_path
from sitebuilder.services.revision_store import RevisionStore

logger = logging.getLogger(__name__)

router = APIRouter()

ProjectId = Annotated[str, Path(max_length=32)]


class RevisionResponse(BaseModel):
    """Revision information response."""

    project_id: str
    revision_id: int
    revision_number: int
    created_at: str


class CodeFileSummary(BaseModel):
    path: str
    role: str
    revision_number: int


class CodeListResponse(BaseModel):
    """Files visible at a revision."""

    revision_number: int
    files: list[CodeFileSummary]


class CodeFileResponse(BaseModel):
    path: str
    role: str
    content: str
    revision_number: int


async def get_owned_latest(store: RevisionStore, project_id: str, user_id: str) -> SiteRevision:
    """Latest revision of a project the caller owns.

    Raises:
        NotFound: The project has no revisions
        Forbidden: The latest revision was created by someone else
    """
    latest = await store.get_latest_revision(project_id)
    if latest is None:
        raise NotFound(f"No revisions for project {project_id}")
    if latest.user_id != user_id:
        raise Forbidden(f"Project {project_id} belongs to another user")
    return latest


def resolve_revision_number(requested: int | None, latest: SiteRevision) -> int:
    """Zero, negative or missing revision numbers mean the latest revision.

    Raises:
        NotFound: The requested revision has not been created yet
    """
    if requested is None or requested <= 0:
        return latest.revision_number
    if requested > latest.revision_number:
        raise NotFound(
            f"Revision {requested} does not exist for project {latest.project_id} "
            f"(latest is {latest.revision_number})"
        )
    return requested


async def compose_or_raise(composer: SiteComposer, project_id: str, revision_number: int) -> ComposedDocument:
    """Compose a revision's document.

    Raises:
        NotFound: No entry file exists at the revision
        ComposeUnavailable: An entry exists but composition failed
    """
    selected = await composer.select(project_id, revision_number)
    if selected is None:
        raise NotFound(f"No composable content for project {project_id} at revision {revision_number}")
    document = await composer.compose_selected(selected, project_id, revision_number)
    if document is None:
        raise ComposeUnavailable(f"Preview for revision {revision_number} is not available right now")
    return document


def artifact_response(document: ComposedDocument) -> Response:
    headers = {
        "Cache-Control": "no-store",
        "X-Revision-Number": str(document.revision_number),
    }
    if document.degraded:
        headers["X-Compose-Warnings"] = str(len(document.warnings))
    return Response(content=document.content, media_type=document.media_type, headers=headers)


@router.get("/{project_id}/latest", response_model=RevisionResponse)
async def get_latest_revision(
    project_id: ProjectId,
    user_id: CurrentUser,
    store: Store,
) -> RevisionResponse:
    """Latest revision of a project."""
    latest = await get_owned_latest(store, project_id, user_id)
    return RevisionResponse(
        project_id=project_id,
        revision_id=latest.id,
        revision_number=latest.revision_number,
        created_at=latest.created_at.isoformat(),
    )


@router.get("/{project_id}/code", response_model=CodeListResponse)
async def list_code_files(
    project_id: ProjectId,
    user_id: CurrentUser,
    store: Store,
    revision: int | None = Query(None, description="Revision number; latest if omitted"),
) -> CodeListResponse:
    """Files visible at a revision, for the code browser."""
    latest = await get_owned_latest(store, project_id, user_id)
    revision_number = resolve_revision_number(revision, latest)
    files = await store.list_files_at(project_id, revision_number)
    return CodeListResponse(
        revision_number=revision_number,
        files=[
            CodeFileSummary(path=f.path, role=f.role, revision_number=f.revision_number)
            for f in files
        ],
    )


@router.get("/{project_id}/code-file", response_model=CodeFileResponse)
async def get_code_file(
    project_id: ProjectId,
    user_id: CurrentUser,
    store: Store,
    path: str = Query(...),
    revision: int | None = Query(None),
) -> CodeFileResponse:
    """Content of one file at a revision."""
    latest = await get_owned_latest(store, project_id, user_id)
    revision_number = resolve_revision_number(revision, latest)

    mode = infer_mode(path)
    normalized = normalize_path(path, mode) if mode else None
    if normalized is None:
        raise NotFound(f"File not found: {path}")

    stored = await store.get_content_at_or_before(project_id, normalized, revision_number)
    if stored is None:
        raise NotFound(f"File not found: {normalized}")
    return CodeFileResponse(
        path=stored.path,
        role=stored.role,
        content=stored.content,
        revision_number=stored.revision_number,
    )


@router.get("/{project_id}/{revision_number}", response_class=HTMLResponse)
async def preview_document(
    project_id: ProjectId,
    revision_number: int,
    user_id: CurrentUser,
    store: Store,
    composer: Composer,
) -> Response:
    """Composed HTML document for a revision (n <= 0 means latest)."""
    latest = await get_owned_latest(store, project_id, user_id)
    number = resolve_revision_number(revision_number, latest)

    document = await compose_or_raise(composer, project_id, number)
    return artifact_response(document)


@router.get("/{project_id}/{revision_number}/bundle")
async def preview_bundle(
    project_id: ProjectId,
    revision_number: int,
    viewer: OptionalUser,
    store: Store,
    composer: Composer,
    preview_tokens: PreviewTokens,
    token: str | None = Query(None, description="Signed access token minted by the app shell"),
) -> Response:
    """Self-contained browser module for a component site.

    Browsers fetch this from the app shell's module script, which cannot
    carry the identity header, so a shell-issued token is accepted instead.
    """
    user_id = viewer
    if user_id is None and token:
        grant = preview_tokens.verify(token, project_id, revision_number)
        user_id = grant.user_id if grant else None
    if user_id is None:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header or valid preview token")

    latest = await get_owned_latest(store, project_id, user_id)
    number = resolve_revision_number(revision_number, latest)

    if await composer.select(project_id, number) is not composer.bundle_composer:
        raise NotFound(f"No component entry for project {project_id} at revision {number}")
    bundle = await composer.compose_browser_bundle(project_id, number)
    if bundle is None:
        raise ComposeUnavailable(f"Browser bundle for revision {number} is not available right now")
    return artifact_response(bundle)


@router.get("/{project_id}/{revision_number}/app", response_class=HTMLResponse)
async def preview_app_shell(
    request: Request,
    project_id: ProjectId,
    revision_number: int,
    user_id: CurrentUser,
    store: Store,
    settings: AppSettings,
    preview_tokens: PreviewTokens,
) -> HTMLResponse:
    """Companion document that loads the browser bundle."""
    latest = await get_owned_latest(store, project_id, user_id)
    number = resolve_revision_number(revision_number, latest)

    bundle_path = request.url_for(
        "preview_bundle", project_id=project_id, revision_number=str(number)
    ).path
    token = preview_tokens.issue(project_id, number, user_id)
    bundle_url = f"{bundle_path}?{urlencode({'token': token})}"
    return HTMLResponse(
        content=browser_shell_html(bundle_url, settings.styling_cdn_url),
        headers={"Cache-Control": "no-store", "X-Revision-Number": str(number)},
    )
