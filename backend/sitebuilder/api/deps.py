"""Dependency injection for FastAPI routes."""

from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from sitebuilder.config import Settings, get_settings
from sitebuilder.database import get_db
from sitebuilder.services.composer import SiteComposer
from sitebuilder.services.container import ServiceContainer
from sitebuilder.services.generation import GenerationService
from sitebuilder.services.preview_tokens import PreviewTokenSigner
from sitebuilder.services.revision_store import RevisionStore


def get_services(request: Request) -> ServiceContainer:
    """Services built by the application lifespan."""
    return request.app.state.services


def get_current_user(x_user_id: Annotated[str | None, Header()] = None) -> str:
    """Caller identity, established upstream and forwarded as a header."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return x_user_id.strip()


def get_optional_user(x_user_id: Annotated[str | None, Header()] = None) -> str | None:
    """Caller identity when present; routes with another credential decide."""
    if not x_user_id or not x_user_id.strip():
        return None
    return x_user_id.strip()


def get_store(services: Annotated[ServiceContainer, Depends(get_services)]) -> RevisionStore:
    return services.store


def get_generation_service(
    services: Annotated[ServiceContainer, Depends(get_services)],
) -> GenerationService:
    return services.generation


def get_composer(services: Annotated[ServiceContainer, Depends(get_services)]) -> SiteComposer:
    return services.composer


def get_preview_tokens(
    services: Annotated[ServiceContainer, Depends(get_services)],
) -> PreviewTokenSigner:
    return services.preview_tokens


# Type aliases for dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db)]
AppSettings = Annotated[Settings, Depends(get_settings)]
CurrentUser = Annotated[str, Depends(get_current_user)]
OptionalUser = Annotated[str | None, Depends(get_optional_user)]
Store = Annotated[RevisionStore, Depends(get_store)]
Generation = Annotated[GenerationService, Depends(get_generation_service)]
Composer = Annotated[SiteComposer, Depends(get_composer)]
PreviewTokens = Annotated[PreviewTokenSigner, Depends(get_preview_tokens)]
