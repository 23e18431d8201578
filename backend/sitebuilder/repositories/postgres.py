"""PostgreSQL repository implementations.

These implement the revision/file/version contracts for PostgreSQL.
Every method runs inside the caller's session; committing is the caller's job.
"""

from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from sitebuilder.models import PublishedSite, SiteFile, SiteFileVersion, SiteRevision


@dataclass(frozen=True)
class StoredFile:
    """Content of one path as seen from a revision."""
    path: str
    role: str
    content: str
    revision_number: int


class PostgresSiteRevisionRepository:
    """PostgreSQL implementation of site revision repository."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_max_revision_number(self, project_id: str) -> int:
        """Get the highest revision number for a project (0 if none)."""
        result = await self.session.execute(
            select(func.max(SiteRevision.revision_number)).where(
                SiteRevision.project_id == project_id
            )
        )
        return result.scalar_one() or 0

    async def insert(self, project_id: str, revision_number: int, user_id: str) -> SiteRevision:
        """Insert a revision row. Raises IntegrityError if the number is taken."""
        revision = SiteRevision(
            project_id=project_id,
            revision_number=revision_number,
            user_id=user_id,
        )
        self.session.add(revision)
        await self.session.flush()
        return revision

    async def get_latest(self, project_id: str) -> SiteRevision | None:
        """Get the newest revision for a project."""
        result = await self.session.execute(
            select(SiteRevision)
            .where(SiteRevision.project_id == project_id)
            .order_by(SiteRevision.revision_number.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_by_number(self, project_id: str, revision_number: int) -> SiteRevision | None:
        """Get a specific revision."""
        result = await self.session.execute(
            select(SiteRevision).where(
                SiteRevision.project_id == project_id,
                SiteRevision.revision_number == revision_number,
            )
        )
        return result.scalar_one_or_none()


class PostgresSiteFileRepository:
    """PostgreSQL implementation of site file and file version repository."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_path(self, project_id: str, path: str) -> SiteFile | None:
        """Get a file identity by its path."""
        result = await self.session.execute(
            select(SiteFile).where(
                SiteFile.project_id == project_id,
                SiteFile.path == path,
            )
        )
        return result.scalar_one_or_none()

    async def upsert(self, project_id: str, path: str, role: str) -> SiteFile:
        """Insert a file or update the role/timestamp of an existing one."""
        existing = await self.get_by_path(project_id, path)
        if existing:
            existing.role = role
            existing.updated_at = datetime.now(timezone.utc)
            await self.session.flush()
            return existing
        site_file = SiteFile(project_id=project_id, path=path, role=role)
        self.session.add(site_file)
        await self.session.flush()
        return site_file

    async def add_version(self, file_id: int, revision_id: int, content: str) -> SiteFileVersion:
        """Append a file version. No deduplication."""
        version = SiteFileVersion(file_id=file_id, revision_id=revision_id, content=content)
        self.session.add(version)
        await self.session.flush()
        return version

    def _versions_query(self, project_id: str):
        return (
            select(
                SiteFile.path,
                SiteFile.role,
                SiteFileVersion.content,
                SiteRevision.revision_number,
            )
            .select_from(SiteFileVersion)
            .join(SiteFile, SiteFile.id == SiteFileVersion.file_id)
            .join(SiteRevision, SiteRevision.id == SiteFileVersion.revision_id)
            .where(
                SiteFile.project_id == project_id,
                SiteRevision.project_id == project_id,
            )
        )

    async def get_content_at_or_before(
        self, project_id: str, path: str, revision_number: int
    ) -> StoredFile | None:
        """Get the newest version of a path whose revision is <= revision_number."""
        result = await self.session.execute(
            self._versions_query(project_id)
            .where(
                SiteFile.path == path,
                SiteRevision.revision_number <= revision_number,
            )
            .order_by(SiteRevision.revision_number.desc(), SiteFileVersion.id.desc())
            .limit(1)
        )
        row = result.first()
        if row is None:
            return None
        return StoredFile(path=row.path, role=row.role, content=row.content, revision_number=row.revision_number)

    async def _latest_per_path(self, project_id: str, *conditions) -> list[StoredFile]:
        latest = (
            select(
                SiteFileVersion.file_id.label("file_id"),
                func.max(SiteRevision.revision_number).label("max_revision"),
            )
            .select_from(SiteFileVersion)
            .join(SiteRevision, SiteRevision.id == SiteFileVersion.revision_id)
            .join(SiteFile, SiteFile.id == SiteFileVersion.file_id)
            .where(SiteFile.project_id == project_id, *conditions)
            .group_by(SiteFileVersion.file_id)
            .subquery()
        )
        result = await self.session.execute(
            self._versions_query(project_id)
            .join(
                latest,
                and_(
                    latest.c.file_id == SiteFileVersion.file_id,
                    latest.c.max_revision == SiteRevision.revision_number,
                ),
            )
            .order_by(SiteFile.path.asc(), SiteFileVersion.id.asc())
        )
        # Two versions of one path in the same revision: the later insert wins
        files: dict[str, StoredFile] = {}
        for row in result:
            files[row.path] = StoredFile(
                path=row.path,
                role=row.role,
                content=row.content,
                revision_number=row.revision_number,
            )
        return list(files.values())

    async def get_all_at_or_before(self, project_id: str, revision_number: int) -> list[StoredFile]:
        """Get the per-path latest version of every file at or before a revision."""
        return await self._latest_per_path(
            project_id, SiteRevision.revision_number <= revision_number
        )

    async def get_all_latest_excluding(self, project_id: str, exclude_path: str) -> list[StoredFile]:
        """Get the newest version of every path except one."""
        return await self._latest_per_path(project_id, SiteFile.path != exclude_path)


class PostgresPublishedSiteRepository:
    """PostgreSQL implementation of published site repository."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_public_id(self, public_id: str) -> PublishedSite | None:
        """Get a published site by its public id."""
        result = await self.session.execute(
            select(PublishedSite).where(PublishedSite.public_id == public_id)
        )
        return result.scalar_one_or_none()

    async def get_by_project(self, project_id: str, user_id: str) -> PublishedSite | None:
        """Get the published site for a project owned by a user."""
        result = await self.session.execute(
            select(PublishedSite).where(
                PublishedSite.project_id == project_id,
                PublishedSite.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def save(self, project_id: str, user_id: str, revision_number: int) -> PublishedSite:
        """Create the published site or re-point it at a new revision."""
        existing = await self.get_by_project(project_id, user_id)
        if existing:
            existing.revision_number = revision_number
            existing.updated_at = datetime.now(timezone.utc)
            await self.session.flush()
            return existing
        published = PublishedSite(
            project_id=project_id,
            user_id=user_id,
            revision_number=revision_number,
        )
        self.session.add(published)
        await self.session.flush()
        return published
