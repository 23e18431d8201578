"""Generation pipeline: validate a generated file and store it as a new revision.

Flow for one call: rate limit -> normalize and classify the destination ->
validate/repair the text for its extension and role -> allocate a revision ->
upsert the file identity -> append the version.
"""

import logging
from dataclasses import dataclass, field

from sqlalchemy.exc import SQLAlchemyError

from sitebuilder.errors import (
    ContentTooLarge,
    InvalidDestination,
    MarkupInvalid,
    NestedDocumentInFragment,
    NotFound,
    PersistenceFailed,
    RateLimited,
    RevisionAllocationFailed,
)
from sitebuilder.models import FileRole
from sitebuilder.repositories import StoredFile
from sitebuilder.services.markup import (
    MAX_CONTENT_BYTES,
    MarkupMode,
    ValidationResult,
    validate_and_fix,
    validate_component_source,
)
from sitebuilder.services.paths import PathMode, classify_path, infer_mode, normalize_path
from sitebuilder.services.pending_saves import PendingSaveCache
from sitebuilder.services.rate_limit import RateLimiter, RedisRateLimiter
from sitebuilder.services.revision_store import ConflictExhausted, RevisionStore

logger = logging.getLogger(__name__)


@dataclass
class GenerationRequest:
    """One generated file as produced by the agent."""
    project_id: str
    user_id: str
    content: str
    destination: str
    is_modification: bool = False


@dataclass
class GenerationResult:
    """What a successful save hands back to the caller."""
    revision_id: int
    revision_number: int
    path: str
    role: str
    content: str
    fixes_applied: list[str] = field(default_factory=list)


@dataclass
class GenerationContext:
    """Stored files the agent should see before generating ``path``."""
    path: str
    is_modification: bool
    files: list[StoredFile] = field(default_factory=list)


def markup_mode_for(role: FileRole) -> MarkupMode:
    """The entry layout owns the document root; everything else is embedded."""
    return MarkupMode.DOCUMENT if role == FileRole.LAYOUT else MarkupMode.FRAGMENT


def resolve_destination(raw: str) -> tuple[str, PathMode]:
    """Normalize a raw destination.

    Raises:
        InvalidDestination: If the path is unsafe or has an unsupported extension
    """
    mode = infer_mode(raw)
    path = normalize_path(raw, mode) if mode else None
    if path is None:
        raise InvalidDestination(f"Invalid destination path: {raw!r}")
    return path, mode


def validate_for_destination(
    content: str,
    path_mode: PathMode,
    role: FileRole,
    max_bytes: int = MAX_CONTENT_BYTES,
) -> ValidationResult:
    """Run the validator matching the destination's extension and role."""
    markup_mode = markup_mode_for(role)
    if path_mode == PathMode.DOCUMENT:
        return validate_and_fix(content, markup_mode, max_bytes)
    return validate_component_source(content, markup_mode, max_bytes)


def raise_for_validation(path: str, result: ValidationResult) -> None:
    """Map a failed validation onto the matching domain error."""
    if result.is_valid:
        return
    if result.too_large:
        raise ContentTooLarge(result.errors[0] if result.errors else "Content too large")
    if result.nested_document:
        raise NestedDocumentInFragment(
            f"{path} is embedded in another document and must not contain its own document root"
        )
    raise MarkupInvalid(f"Generated content for {path} is invalid", errors=result.errors)


class GenerationService:
    """Stores generated files as append-only revisions."""

    def __init__(
        self,
        store: RevisionStore,
        limiter: RateLimiter | RedisRateLimiter,
        pending_saves: PendingSaveCache,
        max_content_bytes: int = MAX_CONTENT_BYTES,
    ):
        self.store = store
        self.limiter = limiter
        self.pending_saves = pending_saves
        self.max_content_bytes = max_content_bytes

    async def save_generated_file(self, request: GenerationRequest) -> GenerationResult:
        """Validate and persist one generated file.

        Raises:
            RateLimited: The user exhausted the current window
            InvalidDestination: The destination path was rejected
            ContentTooLarge: The content exceeds the size ceiling
            NestedDocumentInFragment: A page/section carries a document root
            MarkupInvalid: Validation failed after the repair pass
            RevisionAllocationFailed: Every allocation attempt conflicted
            PersistenceFailed: The file write failed; the payload is kept for retry
        """
        decision = self.limiter.check_and_admit(request.user_id)
        if not decision.allowed:
            raise RateLimited(
                "Too many generation requests, please wait before trying again",
                reset_epoch_millis=decision.reset_epoch_millis,
                retry_after_seconds=decision.retry_after_seconds(),
            )

        path, path_mode = resolve_destination(request.destination)
        role = classify_path(path)

        result = validate_for_destination(request.content, path_mode, role, self.max_content_bytes)
        if not result.is_valid:
            logger.warning(
                f"Rejected generated {path} for project {request.project_id}: {'; '.join(result.errors)}"
            )
        raise_for_validation(path, result)
        if result.fixes_applied:
            logger.info(f"Repaired {path}: {', '.join(result.fixes_applied)}")

        return await self._persist(
            request.project_id,
            request.user_id,
            path,
            role,
            result.fixed_code,
            result.fixes_applied,
        )

    async def retry_pending_save(self, user_id: str, project_id: str) -> GenerationResult:
        """Replay a deferred save under a fresh revision.

        Raises:
            NotFound: Nothing is pending for this user and project
        """
        pending = self.pending_saves.get(user_id, project_id)
        if pending is None:
            raise NotFound(f"No pending save for project {project_id}")

        logger.info(f"Retrying pending save of {pending.path} for project {project_id}")
        result = await self._persist(
            project_id,
            user_id,
            pending.path,
            FileRole(pending.role),
            pending.content,
            list(pending.fixes_applied),
        )
        self.pending_saves.discard(user_id, project_id)
        return result

    async def get_generation_context(
        self, project_id: str, path: str, is_modification: bool
    ) -> GenerationContext:
        """Stored content to show the agent before it generates ``path``.

        A modification sees the target's latest content; a new file sees the
        latest content of every other path.
        """
        target, _ = resolve_destination(path)

        if not is_modification:
            files = await self.store.get_all_latest_excluding(project_id, target)
            return GenerationContext(path=target, is_modification=False, files=files)

        latest = await self.store.get_latest_revision(project_id)
        if latest is None:
            return GenerationContext(path=target, is_modification=True)
        current = await self.store.get_content_at_or_before(project_id, target, latest.revision_number)
        return GenerationContext(
            path=target,
            is_modification=True,
            files=[current] if current else [],
        )

    async def _persist(
        self,
        project_id: str,
        user_id: str,
        path: str,
        role: FileRole,
        content: str,
        fixes_applied: list[str],
    ) -> GenerationResult:
        allocation = await self.store.create_revision(project_id, user_id)
        if isinstance(allocation, ConflictExhausted):
            raise RevisionAllocationFailed(
                f"Could not allocate a revision for project {project_id} "
                f"after {allocation.attempts} attempts"
            )
        revision = allocation.revision

        try:
            site_file = await self.store.upsert_file(project_id, path, role.value)
            await self.store.create_file_version(site_file.id, revision.id, content)
        except SQLAlchemyError as e:
            logger.error(
                f"Failed to store {path} for project {project_id} at revision "
                f"{revision.revision_number}: {e}"
            )
            self.pending_saves.put(user_id, project_id, path, role.value, content, fixes_applied)
            raise PersistenceFailed(
                f"Could not save {path}; the generated content was kept and can be retried"
            ) from e

        logger.info(
            f"Saved {path} ({role.value}) for project {project_id} as revision {revision.revision_number}"
        )
        return GenerationResult(
            revision_id=revision.id,
            revision_number=revision.revision_number,
            path=path,
            role=role.value,
            content=content,
            fixes_applied=fixes_applied,
        )
