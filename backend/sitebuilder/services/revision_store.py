"""Revision store: optimistic revision allocation and append-only file versions.

Each operation runs in its own short transaction. Revision numbers are
allocated without locks: the unique (project_id, revision_number) constraint
is the only arbiter, and a losing writer simply recomputes and retries.
"""

import logging
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sitebuilder.models import SiteFile, SiteFileVersion, SiteRevision
from sitebuilder.repositories import (
    PostgresSiteFileRepository,
    PostgresSiteRevisionRepository,
    StoredFile,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 5


@dataclass(frozen=True)
class Allocated:
    """A revision row was inserted."""
    revision: SiteRevision


@dataclass(frozen=True)
class ConflictExhausted:
    """Every attempt lost the race for a revision number."""
    attempts: int
    last_tried: int


RevisionAllocation = Allocated | ConflictExhausted


class RevisionStore:
    """Allocates revisions and persists file content snapshots."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ):
        self.session_factory = session_factory
        self.max_attempts = max_attempts

    async def next_revision_number(self, project_id: str) -> int:
        """One greater than the current maximum revision number."""
        async with self.session_factory() as session:
            return await PostgresSiteRevisionRepository(session).get_max_revision_number(project_id) + 1

    async def create_revision(self, project_id: str, actor_id: str) -> RevisionAllocation:
        """Insert a revision with a freshly computed number, retrying on conflicts."""
        number = 0
        for attempt in range(1, self.max_attempts + 1):
            number = await self.next_revision_number(project_id)
            try:
                async with self.session_factory() as session:
                    async with session.begin():
                        revision = await PostgresSiteRevisionRepository(session).insert(
                            project_id, number, actor_id
                        )
                return Allocated(revision=revision)
            except IntegrityError:
                logger.warning(
                    f"Revision {number} for project {project_id} already taken "
                    f"(attempt {attempt}/{self.max_attempts}), retrying"
                )

        logger.error(
            f"Revision allocation for project {project_id} exhausted "
            f"{self.max_attempts} attempts (last tried {number})"
        )
        return ConflictExhausted(attempts=self.max_attempts, last_tried=number)

    async def upsert_file(self, project_id: str, path: str, role: str) -> SiteFile:
        """Insert or update the file identity keyed by (project_id, path).

        Two first writes to the same path can both miss the existing row; the
        loser hits the unique constraint and re-reads the winner's row.
        """
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    return await PostgresSiteFileRepository(session).upsert(project_id, path, role)
        except IntegrityError:
            logger.warning(f"File {path} in project {project_id} was created concurrently, re-reading")
        async with self.session_factory() as session:
            async with session.begin():
                return await PostgresSiteFileRepository(session).upsert(project_id, path, role)

    async def create_file_version(self, file_id: int, revision_id: int, content: str) -> SiteFileVersion:
        """Append one immutable file version."""
        async with self.session_factory() as session:
            async with session.begin():
                return await PostgresSiteFileRepository(session).add_version(file_id, revision_id, content)

    async def get_content_at_or_before(
        self, project_id: str, path: str, revision_number: int
    ) -> StoredFile | None:
        """Newest content of a path at or before a revision, or None if absent."""
        async with self.session_factory() as session:
            return await PostgresSiteFileRepository(session).get_content_at_or_before(
                project_id, path, revision_number
            )

    async def get_all_at_or_before(self, project_id: str, revision_number: int) -> list[StoredFile]:
        """Bulk snapshot of every path at or before a revision, latest wins."""
        async with self.session_factory() as session:
            return await PostgresSiteFileRepository(session).get_all_at_or_before(
                project_id, revision_number
            )

    async def get_all_latest_excluding(self, project_id: str, exclude_path: str) -> list[StoredFile]:
        """Newest content of every path except ``exclude_path``."""
        async with self.session_factory() as session:
            return await PostgresSiteFileRepository(session).get_all_latest_excluding(
                project_id, exclude_path
            )

    async def get_latest_revision(self, project_id: str) -> SiteRevision | None:
        async with self.session_factory() as session:
            return await PostgresSiteRevisionRepository(session).get_latest(project_id)

    async def get_revision(self, project_id: str, revision_number: int) -> SiteRevision | None:
        async with self.session_factory() as session:
            return await PostgresSiteRevisionRepository(session).get_by_number(project_id, revision_number)

    async def list_files_at(self, project_id: str, revision_number: int) -> list[StoredFile]:
        """Every path visible at a revision, sorted by path."""
        files = await self.get_all_at_or_before(project_id, revision_number)
        return sorted(files, key=lambda f: f.path)
