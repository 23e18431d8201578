"""Node.js toolchain driven as subprocesses.

Bundling (esbuild) and server rendering (react-dom/server) need a JavaScript
runtime, so they run as short-lived Node processes executing the runner
scripts in ``services/node``. Every call gets a fresh process: no module
cache, globals or React state survives from one build or render to the next.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal, Protocol

from sitebuilder.config import Settings

logger = logging.getLogger(__name__)

RUNNER_DIR = Path(__file__).parent / "node"
WARNING_PREFIX = "WARN "

BuildTarget = Literal["server", "browser"]


class ToolchainError(Exception):
    """A Node runner failed, timed out or could not be started."""


@dataclass
class BuildRequest:
    """Everything the bundler needs; no project content is read from disk."""
    target: BuildTarget
    entry_path: str
    files: dict[str, str]
    resolutions: dict[str, dict[str, str]]

    def to_payload(self) -> dict[str, Any]:
        return {
            "target": self.target,
            "entryPath": self.entry_path,
            "files": self.files,
            "resolutions": self.resolutions,
        }


@dataclass
class BuildOutput:
    code: str
    warnings: list[str] = field(default_factory=list)


class NodeToolchain(Protocol):
    """Compiles snapshots and renders compiled server modules."""

    async def build(self, request: BuildRequest) -> BuildOutput: ...

    async def render(self, module_path: Path) -> str: ...


class EsbuildToolchain:
    """Runs ``build.mjs`` and ``render.mjs`` with the configured Node binary."""

    def __init__(self, settings: Settings):
        self.node_binary = settings.node_binary
        self.project_dir = Path(settings.node_project_dir)
        self.timeout = settings.node_timeout_seconds

    async def build(self, request: BuildRequest) -> BuildOutput:
        stdout, stderr = await self._run(
            RUNNER_DIR / "build.mjs",
            stdin=json.dumps(request.to_payload()).encode("utf-8"),
        )
        warnings = [
            line[len(WARNING_PREFIX):].strip()
            for line in stderr.splitlines()
            if line.startswith(WARNING_PREFIX)
        ]
        return BuildOutput(code=stdout, warnings=warnings)

    async def render(self, module_path: Path) -> str:
        stdout, _ = await self._run(RUNNER_DIR / "render.mjs", str(module_path))
        return stdout

    async def _run(self, script: Path, *args: str, stdin: bytes | None = None) -> tuple[str, str]:
        try:
            process = await asyncio.create_subprocess_exec(
                self.node_binary,
                str(script),
                *args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(self.project_dir),
            )
        except OSError as e:
            raise ToolchainError(f"Could not start {self.node_binary}: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(input=stdin), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise ToolchainError(f"{script.name} timed out after {self.timeout} seconds")

        stderr_text = stderr.decode("utf-8", errors="replace")
        for line in stderr_text.strip().split("\n"):
            if line.strip():
                logger.debug(f"{script.name}: {line}")

        if process.returncode != 0:
            tail = stderr_text.strip()[-2000:]
            raise ToolchainError(f"{script.name} exited with code {process.returncode}: {tail}")

        return stdout.decode("utf-8"), stderr_text
