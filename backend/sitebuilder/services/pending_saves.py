"""Deferred saves for validated files whose database write failed.

The payload is kept in process memory so the caller can replay it under a
fresh revision instead of regenerating it. Entries expire after a TTL.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 60 * 60


@dataclass(frozen=True)
class PendingSave:
    """A validated file write waiting to be retried."""
    user_id: str
    project_id: str
    path: str
    role: str
    content: str
    fixes_applied: tuple[str, ...]
    created_at: float


class PendingSaveCache:
    """Process-local map of pending saves, one per (user, project)."""

    def __init__(self, ttl_seconds: int = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.time):
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._pending: dict[tuple[str, str], PendingSave] = {}

    def put(
        self,
        user_id: str,
        project_id: str,
        path: str,
        role: str,
        content: str,
        fixes_applied: list[str] | None = None,
    ) -> PendingSave:
        pending = PendingSave(
            user_id=user_id,
            project_id=project_id,
            path=path,
            role=role,
            content=content,
            fixes_applied=tuple(fixes_applied or ()),
            created_at=self.clock(),
        )
        self._pending[(user_id, project_id)] = pending
        return pending

    def get(self, user_id: str, project_id: str) -> PendingSave | None:
        pending = self._pending.get((user_id, project_id))
        if pending is None:
            return None
        if self.clock() - pending.created_at >= self.ttl_seconds:
            del self._pending[(user_id, project_id)]
            return None
        return pending

    def discard(self, user_id: str, project_id: str) -> None:
        self._pending.pop((user_id, project_id), None)

    def sweep(self) -> int:
        """Drop expired entries. Returns the number dropped."""
        cutoff = self.clock() - self.ttl_seconds
        expired = [key for key, pending in self._pending.items() if pending.created_at <= cutoff]
        for key in expired:
            del self._pending[key]
        return len(expired)

    async def run_sweeper(self, interval_seconds: float | None = None) -> None:
        interval = interval_seconds if interval_seconds is not None else self.ttl_seconds
        while True:
            await asyncio.sleep(interval)
            dropped = self.sweep()
            if dropped:
                logger.info(f"Dropped {dropped} expired pending save(s)")

    def __len__(self) -> int:
        return len(self._pending)
