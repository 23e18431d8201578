"""Composition of HTML sites from include directives.

The entry document may pull in other stored documents with
``<!-- include: landing/sections/hero.html -->``. Every include resolves
against the same fixed revision number, so composing a revision is a pure
function of stored content.
"""

import html
import logging
import re
from dataclasses import dataclass, field
from typing import Protocol

from sitebuilder.repositories import StoredFile
from sitebuilder.services.artifacts import HTML_MEDIA_TYPE, ComposedDocument
from sitebuilder.services.paths import HTML_ENTRY_PATH, PathMode, normalize_path

logger = logging.getLogger(__name__)

INCLUDE_RE = re.compile(r"<!--\s*include:\s*([^\s]+)\s*-->", re.IGNORECASE)
MAX_INCLUDE_DEPTH = 10
MAX_INCLUDES_TOTAL = 100


class ContentReader(Protocol):
    """Anything that can read a path's content at or before a revision."""

    async def get_content_at_or_before(
        self, project_id: str, path: str, revision_number: int
    ) -> StoredFile | None: ...


def missing_include_placeholder(path: str) -> str:
    return (
        '<div class="mx-auto max-w-6xl px-4 py-8">'
        '<div class="rounded-md border border-red-300 bg-red-50 p-4 text-sm text-red-800">'
        f'Missing include: <span class="font-mono">{html.escape(path)}</span></div></div>'
    )


def circular_include_placeholder(path: str) -> str:
    return (
        '<div class="mx-auto max-w-6xl px-4 py-8">'
        '<div class="rounded-md border border-amber-300 bg-amber-50 p-4 text-sm text-amber-900">'
        f'Circular include detected: <span class="font-mono">{html.escape(path)}</span></div></div>'
    )


@dataclass
class _Pass:
    """Mutable state shared across one composition."""
    project_id: str
    revision_number: int
    include_count: int = 0
    warnings: list[str] = field(default_factory=list)

    def warn(self, message: str) -> None:
        if message not in self.warnings:
            self.warnings.append(message)


class HtmlComposer:
    """Resolves include directives across stored HTML fragments."""

    def __init__(
        self,
        reader: ContentReader,
        entry_path: str = HTML_ENTRY_PATH,
        max_depth: int = MAX_INCLUDE_DEPTH,
        max_includes: int = MAX_INCLUDES_TOTAL,
    ):
        self.reader = reader
        self.entry_path = entry_path
        self.max_depth = max_depth
        self.max_includes = max_includes

    async def compose(self, project_id: str, revision_number: int) -> ComposedDocument | None:
        """Compose the entry document at a revision.

        Returns:
            The composed document, or None if no entry exists at that point.
        """
        entry = await self.reader.get_content_at_or_before(project_id, self.entry_path, revision_number)
        if entry is None or not entry.content:
            return None

        state = _Pass(project_id=project_id, revision_number=revision_number)
        content = await self._resolve(state, entry.content, depth=0, stack=(self.entry_path,))

        if state.warnings:
            logger.warning(
                f"Composed {project_id}@{revision_number} with degradation: {'; '.join(state.warnings)}"
            )
        return ComposedDocument(
            content=content,
            media_type=HTML_MEDIA_TYPE,
            revision_number=revision_number,
            warnings=state.warnings,
        )

    async def _resolve(self, state: _Pass, content: str, depth: int, stack: tuple[str, ...]) -> str:
        if depth > self.max_depth:
            state.warn(f"Include depth limit {self.max_depth} reached; directives left unresolved")
            return content

        parts: list[str] = []
        cursor = 0
        for match in INCLUDE_RE.finditer(content):
            parts.append(content[cursor:match.start()])
            cursor = match.end()
            parts.append(await self._resolve_directive(state, match, depth, stack))
        parts.append(content[cursor:])
        return "".join(parts)

    async def _resolve_directive(
        self, state: _Pass, match: re.Match, depth: int, stack: tuple[str, ...]
    ) -> str:
        if state.include_count >= self.max_includes:
            state.warn(f"Include limit {self.max_includes} reached; directives left unresolved")
            return match.group(0)

        raw_path = match.group(1)
        include_path = normalize_path(raw_path, PathMode.DOCUMENT)
        if include_path is None:
            state.warn(f"Invalid include path: {raw_path}")
            return missing_include_placeholder(raw_path)

        if include_path in stack:
            state.warn(f"Circular include: {include_path}")
            return circular_include_placeholder(include_path)

        state.include_count += 1
        included = await self.reader.get_content_at_or_before(
            state.project_id, include_path, state.revision_number
        )
        if included is None or not included.content:
            state.warn(f"Missing include: {include_path}")
            return missing_include_placeholder(include_path)

        return await self._resolve(state, included.content, depth + 1, stack + (include_path,))
