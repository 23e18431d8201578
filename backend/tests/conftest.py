"""Shared fixtures: a throwaway SQLite database and a fake Node toolchain."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("LOG_JSON", "false")

from pathlib import Path

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from sitebuilder import models  # noqa: F401  (registers tables on Base.metadata)
from sitebuilder.database import Base
from sitebuilder.services.generation import GenerationRequest, GenerationService
from sitebuilder.services.node_toolchain import BuildOutput, BuildRequest, ToolchainError
from sitebuilder.services.pending_saves import PendingSaveCache
from sitebuilder.services.rate_limit import RateLimiter
from sitebuilder.services.revision_store import RevisionStore


class FakeToolchain:
    """Stands in for the Node runners.

    ``build`` concatenates the snapshot into one fake module and ``render``
    echoes the module text back as markup, so tests can trace output to the
    source files that went in.
    """

    def __init__(self, fail_build: bool = False, fail_render: bool = False):
        self.fail_build = fail_build
        self.fail_render = fail_render
        self.builds: list[BuildRequest] = []
        self.rendered: list[Path] = []

    async def build(self, request: BuildRequest) -> BuildOutput:
        self.builds.append(request)
        if self.fail_build:
            raise ToolchainError("build.mjs exited with code 1: syntax error")
        parts = [f"// target: {request.target}"]
        for path, source in request.files.items():
            parts.append(f"// file: {path}\n{source}")
        return BuildOutput(code="\n".join(parts), warnings=[])

    async def render(self, module_path: Path) -> str:
        assert module_path.exists()
        self.rendered.append(module_path)
        if self.fail_render:
            raise ToolchainError("render.mjs exited with code 1: window is not defined")
        return f"<main>{module_path.read_text(encoding='utf-8')}</main>"


@pytest.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'sitebuilder.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def store(session_factory) -> RevisionStore:
    return RevisionStore(session_factory)


@pytest.fixture
def make_toolchain():
    return FakeToolchain


@pytest.fixture
def toolchain() -> FakeToolchain:
    return FakeToolchain()


@pytest.fixture
def generation(store) -> GenerationService:
    return GenerationService(store, RateLimiter(max_requests=1000), PendingSaveCache())


@pytest.fixture
def save_file(generation):
    """Store one file for a project and return the result."""

    async def _save(project_id: str, destination: str, content: str, user_id: str = "user-1"):
        return await generation.save_generated_file(
            GenerationRequest(
                project_id=project_id,
                user_id=user_id,
                content=content,
                destination=destination,
            )
        )

    return _save
