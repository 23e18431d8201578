"""SQLAlchemy models."""

from sitebuilder.models.published_site import PublishedSite
from sitebuilder.models.site_file import FileRole, SiteFile
from sitebuilder.models.site_file_version import SiteFileVersion
from sitebuilder.models.site_revision import SiteRevision

__all__ = [
    "FileRole",
    "SiteRevision",
    "SiteFile",
    "SiteFileVersion",
    "PublishedSite",
]
