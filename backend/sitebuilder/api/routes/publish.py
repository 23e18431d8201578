"""Publishing routes: pin a revision behind a public id and serve it."""

import logging

from fastapi import APIRouter, Query
from fastapi.responses import Response
from pydantic import BaseModel, Field

from sitebuilder.api.deps import Composer, CurrentUser, DbSession, Store
from sitebuilder.api.routes.preview import (
    artifact_response,
    compose_or_raise,
    get_owned_latest,
    resolve_revision_number,
)
from sitebuilder.errors import NotFound
from sitebuilder.models import PublishedSite
from sitebuilder.repositories import PostgresPublishedSiteRepository

logger = logging.getLogger(__name__)

router = APIRouter()


class PublishRequest(BaseModel):
    """Request to publish a project revision."""

    project_id: str = Field(max_length=32)
    revision_number: int | None = None  # None or <= 0 -> latest


class PublishedSiteResponse(BaseModel):
    """Published site information response."""

    public_id: str
    project_id: str
    revision_number: int
    url: str
    published_at: str


def _to_response(published: PublishedSite) -> PublishedSiteResponse:
    return PublishedSiteResponse(
        public_id=published.public_id,
        project_id=published.project_id,
        revision_number=published.revision_number,
        url=f"/api/published/{published.public_id}",
        published_at=published.updated_at.isoformat(),
    )


@router.post("/publish", response_model=PublishedSiteResponse)
async def publish_site(
    request: PublishRequest,
    user_id: CurrentUser,
    db: DbSession,
    store: Store,
    composer: Composer,
) -> PublishedSiteResponse:
    """Publish a revision, or re-point an existing publication."""
    latest = await get_owned_latest(store, request.project_id, user_id)
    number = resolve_revision_number(request.revision_number, latest)

    if await composer.select(request.project_id, number) is None:
        raise NotFound(f"Nothing to publish for project {request.project_id} at revision {number}")

    published = await PostgresPublishedSiteRepository(db).save(request.project_id, user_id, number)
    logger.info(f"Published project {request.project_id} revision {number} as {published.public_id}")
    return _to_response(published)


@router.get("/publish", response_model=PublishedSiteResponse)
async def get_published_site(
    user_id: CurrentUser,
    db: DbSession,
    project_id: str = Query(..., max_length=32),
) -> PublishedSiteResponse:
    """Publication status of a project."""
    published = await PostgresPublishedSiteRepository(db).get_by_project(project_id, user_id)
    if published is None:
        raise NotFound(f"Project {project_id} is not published")
    return _to_response(published)


@router.get("/published/{public_id}")
async def serve_published_site(
    public_id: str,
    db: DbSession,
    composer: Composer,
) -> Response:
    """Composed document of a published site. No authentication."""
    published = await PostgresPublishedSiteRepository(db).get_by_public_id(public_id)
    if published is None:
        raise NotFound("Published site not found")

    document = await compose_or_raise(composer, published.project_id, published.revision_number)

    response = artifact_response(document)
    response.headers["Cache-Control"] = "public, max-age=60"
    return response
