"""Business logic services."""

from sitebuilder.services.composer import SiteComposer
from sitebuilder.services.generation import GenerationService
from sitebuilder.services.revision_store import RevisionStore

__all__ = [
    "GenerationService",
    "RevisionStore",
    "SiteComposer",
]
