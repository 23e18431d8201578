"""SiteFile model for stable source-path identities."""

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import DateTime, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sitebuilder.database import Base


class FileRole(str, Enum):
    """Role of a file inside the site tree."""

    LAYOUT = "layout"
    PAGE = "page"
    SECTION = "section"
    OTHER = "other"


class SiteFile(Base):
    """A logical path within a project, independent of its content."""

    __tablename__ = "site_files"
    __table_args__ = (
        UniqueConstraint("project_id", "path", name="uq_site_files_project_path"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id: Mapped[str] = mapped_column(String(32), index=True)
    path: Mapped[str] = mapped_column(String(512))
    role: Mapped[str] = mapped_column(String(20), default=FileRole.OTHER.value)  # layout, page, section, other

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    versions: Mapped[list["SiteFileVersion"]] = relationship(
        "SiteFileVersion", back_populates="file"
    )


# Forward reference
from sitebuilder.models.site_file_version import SiteFileVersion  # noqa: E402
