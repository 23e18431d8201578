"""Component bundling and server rendering for component-based sites.

One import graph, read from a single pinned revision, feeds two builds:

- a server bundle (runtime packages external) rendered to static markup
  inside a :class:`RenderSandbox` and wrapped in a minimal document shell;
- a self-contained browser module that mounts the entry component into
  ``#root``, served alongside :func:`browser_shell_html`.

Every failure (snapshot, build, load, render) is logged and degrades to
``None``. Nothing raises past this module's public methods.
"""

import html
import logging
from typing import Protocol

from sitebuilder.repositories import StoredFile
from sitebuilder.services.artifacts import HTML_MEDIA_TYPE, JAVASCRIPT_MEDIA_TYPE, ComposedDocument
from sitebuilder.services.import_graph import (
    MAX_GRAPH_DEPTH,
    MAX_GRAPH_FILES,
    ImportGraph,
    collect_import_graph,
)
from sitebuilder.services.node_toolchain import BuildRequest, BuildTarget, NodeToolchain
from sitebuilder.services.paths import COMPONENT_ENTRY_PATH
from sitebuilder.services.render_sandbox import RenderSandbox

logger = logging.getLogger(__name__)

DEFAULT_STYLING_CDN = "https://cdn.tailwindcss.com"


class SnapshotReader(Protocol):
    """Bulk reader for every path visible at a revision."""

    async def get_all_at_or_before(self, project_id: str, revision_number: int) -> list[StoredFile]: ...


def wrap_in_html(body_html: str, styling_cdn_url: str = DEFAULT_STYLING_CDN) -> str:
    """Minimal document shell around server-rendered markup."""
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8" />
  <meta name="viewport" content="width=device-width, initial-scale=1.0" />
  <title>Landing Page</title>
  <script src="{html.escape(styling_cdn_url)}"></script>
</head>
<body>
  <div id="root">{body_html}</div>
</body>
</html>"""


def browser_shell_html(bundle_url: str, styling_cdn_url: str = DEFAULT_STYLING_CDN) -> str:
    """Companion document that loads a browser bundle as a module script."""
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8" />
  <meta name="viewport" content="width=device-width, initial-scale=1.0" />
  <title>Landing Page</title>
  <script src="{html.escape(styling_cdn_url)}"></script>
</head>
<body>
  <div id="root"></div>
  <script type="module" src="{html.escape(bundle_url)}"></script>
</body>
</html>"""


class ComponentBundler:
    """Builds and renders the component tree of one project revision."""

    def __init__(
        self,
        reader: SnapshotReader,
        toolchain: NodeToolchain,
        sandbox: RenderSandbox,
        entry_path: str = COMPONENT_ENTRY_PATH,
        max_depth: int = MAX_GRAPH_DEPTH,
        max_files: int = MAX_GRAPH_FILES,
        styling_cdn_url: str = DEFAULT_STYLING_CDN,
        debug: bool = False,
    ):
        self.reader = reader
        self.toolchain = toolchain
        self.sandbox = sandbox
        self.entry_path = entry_path
        self.max_depth = max_depth
        self.max_files = max_files
        self.styling_cdn_url = styling_cdn_url
        self.debug = debug

    async def load_graph(self, project_id: str, revision_number: int) -> ImportGraph | None:
        """Snapshot the revision and walk the import graph from the entry.

        Returns:
            The graph, or None if the entry does not exist at that revision.
        """
        stored = await self.reader.get_all_at_or_before(project_id, revision_number)
        snapshot = {f.path: f.content for f in stored}
        if self.entry_path not in snapshot or not snapshot[self.entry_path]:
            return None

        graph = collect_import_graph(
            self.entry_path,
            snapshot,
            max_depth=self.max_depth,
            max_files=self.max_files,
            debug=self.debug,
        )
        if self.debug:
            logger.info(
                f"Graph for {project_id}@{revision_number}: {list(graph.files)} "
                f"(of {len(snapshot)} stored paths)"
            )
        return graph

    async def render_document(self, project_id: str, revision_number: int) -> ComposedDocument | None:
        """Server-render the entry component into a full HTML document."""
        try:
            graph = await self.load_graph(project_id, revision_number)
            if graph is None:
                return None
            output = await self.toolchain.build(self._build_request("server", graph))
            if not output.code:
                logger.error(f"Server build for {project_id}@{revision_number} produced no output")
                return None
            markup = await self.sandbox.render(project_id, revision_number, output.code)
        except Exception as e:
            logger.error(f"Server render failed for {project_id}@{revision_number}: {e}")
            return None

        return ComposedDocument(
            content=wrap_in_html(markup, self.styling_cdn_url),
            media_type=HTML_MEDIA_TYPE,
            revision_number=revision_number,
            warnings=_merge_warnings(graph.warnings, output.warnings),
        )

    async def browser_bundle(self, project_id: str, revision_number: int) -> ComposedDocument | None:
        """Build the self-contained browser module for the revision."""
        try:
            graph = await self.load_graph(project_id, revision_number)
            if graph is None:
                return None
            output = await self.toolchain.build(self._build_request("browser", graph))
            if not output.code:
                logger.error(f"Browser build for {project_id}@{revision_number} produced no output")
                return None
        except Exception as e:
            logger.error(f"Browser bundle failed for {project_id}@{revision_number}: {e}")
            return None

        return ComposedDocument(
            content=output.code,
            media_type=JAVASCRIPT_MEDIA_TYPE,
            revision_number=revision_number,
            warnings=_merge_warnings(graph.warnings, output.warnings),
        )

    def _build_request(self, target: BuildTarget, graph: ImportGraph) -> BuildRequest:
        return BuildRequest(
            target=target,
            entry_path=graph.entry_path,
            files=graph.files,
            resolutions=graph.resolutions,
        )


def _merge_warnings(*groups: list[str]) -> list[str]:
    merged: list[str] = []
    for group in groups:
        for warning in group:
            if warning not in merged:
                merged.append(warning)
    return merged
