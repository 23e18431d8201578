"""Isolated server rendering of compiled component bundles.

A compiled server bundle is written to a module file whose name is unique
per render attempt (project, revision, content digest and a random suffix)
and rendered by a fresh Node process, so no module cache or patched global
can leak between builds. The module file is removed on every exit path
unless artifacts are kept for debugging.
"""

import hashlib
import logging
import re
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from uuid import uuid4

from sitebuilder.services.node_toolchain import NodeToolchain

logger = logging.getLogger(__name__)

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9_-]")


def render_module_name(project_id: str, revision_number: int, bundle: str) -> str:
    """Unique module file name for one render attempt."""
    safe_project = _UNSAFE_NAME_CHARS.sub("_", project_id)[:32]
    digest = hashlib.sha256(bundle.encode("utf-8")).hexdigest()[:12]
    return f"landing-{safe_project}-{revision_number}-{digest}-{uuid4().hex[:8]}.mjs"


class RenderSandbox:
    """Scoped acquisition of a render module plus a fresh renderer process."""

    def __init__(self, toolchain: NodeToolchain, work_dir: Path, keep_artifacts: bool = False):
        self.toolchain = toolchain
        self.work_dir = Path(work_dir)
        self.keep_artifacts = keep_artifacts

    @asynccontextmanager
    async def module_file(self, project_id: str, revision_number: int, bundle: str) -> AsyncIterator[Path]:
        """Write ``bundle`` to a unique module file and remove it afterwards."""
        self.work_dir.mkdir(parents=True, exist_ok=True)
        module_path = self.work_dir / render_module_name(project_id, revision_number, bundle)
        module_path.write_text(bundle, encoding="utf-8")
        try:
            yield module_path
        finally:
            if self.keep_artifacts:
                logger.info(f"Keeping render module {module_path}")
            else:
                module_path.unlink(missing_ok=True)

    async def render(self, project_id: str, revision_number: int, bundle: str) -> str:
        """Render the bundle's default export to static markup.

        Raises:
            ToolchainError: If the module fails to load or render
        """
        async with self.module_file(project_id, revision_number, bundle) as module_path:
            return await self.toolchain.render(module_path)
