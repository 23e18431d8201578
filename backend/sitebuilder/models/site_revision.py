"""SiteRevision model for numbered project snapshots."""

from datetime import datetime, timezone

from sqlalchemy import DateTime, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sitebuilder.database import Base


class SiteRevision(Base):
    """An immutable snapshot point for a project's files.

    ``revision_number`` is unique per project. Numbers are allocated
    optimistically, so gaps are possible but duplicates are not.
    """

    __tablename__ = "site_revisions"
    __table_args__ = (
        UniqueConstraint("project_id", "revision_number", name="uq_site_revisions_project_number"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id: Mapped[str] = mapped_column(String(32), index=True)
    revision_number: Mapped[int] = mapped_column(Integer)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    file_versions: Mapped[list["SiteFileVersion"]] = relationship(
        "SiteFileVersion", back_populates="revision"
    )


# Forward reference
from sitebuilder.models.site_file_version import SiteFileVersion  # noqa: E402
