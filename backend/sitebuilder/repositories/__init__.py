"""Repository implementations for data access."""

from sitebuilder.repositories.postgres import (
    PostgresPublishedSiteRepository,
    PostgresSiteFileRepository,
    PostgresSiteRevisionRepository,
    StoredFile,
)

__all__ = [
    "PostgresSiteRevisionRepository",
    "PostgresSiteFileRepository",
    "PostgresPublishedSiteRepository",
    "StoredFile",
]
