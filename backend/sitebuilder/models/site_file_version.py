"""SiteFileVersion model for append-only file contents."""

from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sitebuilder.database import Base


class SiteFileVersion(Base):
    """Content of a file as of one revision. Never edited or removed."""

    __tablename__ = "site_file_versions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    file_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("site_files.id"),
        index=True,
    )
    revision_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("site_revisions.id"),
        index=True,
    )

    # Content
    content: Mapped[str] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    file: Mapped["SiteFile"] = relationship("SiteFile", back_populates="versions")
    revision: Mapped["SiteRevision"] = relationship("SiteRevision", back_populates="file_versions")


# Forward references
from sitebuilder.models.site_file import SiteFile  # noqa: E402
from sitebuilder.models.site_revision import SiteRevision  # noqa: E402
