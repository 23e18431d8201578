"""Composer selection for a project revision.

Two site flavours coexist: legacy HTML sites stitched together with include
directives, and component sites bundled from an import graph. The flavour is
chosen per revision by which entry file exists at that point.
"""

import logging
from typing import Protocol

from sitebuilder.repositories import StoredFile
from sitebuilder.services.artifacts import ComposedDocument
from sitebuilder.services.bundler import ComponentBundler
from sitebuilder.services.html_composer import HtmlComposer
from sitebuilder.services.paths import COMPONENT_ENTRY_PATH, HTML_ENTRY_PATH

logger = logging.getLogger(__name__)


class Composer(Protocol):
    """Derives a servable document from the files stored at a revision."""

    async def compose(self, project_id: str, revision_number: int) -> ComposedDocument | None: ...


class EntryReader(Protocol):
    async def get_content_at_or_before(
        self, project_id: str, path: str, revision_number: int
    ) -> StoredFile | None: ...


class BundleComposer:
    """Component-site variant: server render through the bundler."""

    def __init__(self, bundler: ComponentBundler):
        self.bundler = bundler

    async def compose(self, project_id: str, revision_number: int) -> ComposedDocument | None:
        return await self.bundler.render_document(project_id, revision_number)


class SiteComposer:
    """Picks the composer variant by entry file and falls back when it fails."""

    def __init__(self, reader: EntryReader, html_composer: HtmlComposer, bundler: ComponentBundler):
        self.reader = reader
        self.html_composer = html_composer
        self.bundler = bundler
        self.bundle_composer = BundleComposer(bundler)

    async def select(self, project_id: str, revision_number: int) -> Composer | None:
        """Choose the composer for a revision, or None if it has no entry."""
        component_entry = await self.reader.get_content_at_or_before(
            project_id, COMPONENT_ENTRY_PATH, revision_number
        )
        if component_entry is not None:
            return self.bundle_composer
        html_entry = await self.reader.get_content_at_or_before(
            project_id, HTML_ENTRY_PATH, revision_number
        )
        if html_entry is not None:
            return self.html_composer
        return None

    async def compose_document(self, project_id: str, revision_number: int) -> ComposedDocument | None:
        """Compose the revision's HTML document.

        A component site whose render fails falls back to the include
        composer when an HTML entry also exists at that revision.
        """
        composer = await self.select(project_id, revision_number)
        if composer is None:
            return None
        return await self.compose_selected(composer, project_id, revision_number)

    async def compose_selected(
        self, composer: Composer, project_id: str, revision_number: int
    ) -> ComposedDocument | None:
        """Compose with a variant already returned by select()."""
        document = await composer.compose(project_id, revision_number)
        if document is None and composer is self.bundle_composer:
            logger.warning(
                f"Bundle render unavailable for {project_id}@{revision_number}, trying HTML includes"
            )
            document = await self.html_composer.compose(project_id, revision_number)
        return document

    async def compose_browser_bundle(self, project_id: str, revision_number: int) -> ComposedDocument | None:
        """Browser module for component sites; None for HTML sites."""
        return await self.bundler.browser_bundle(project_id, revision_number)
