"""Process-wide service wiring.

Everything here is constructed once at start-up and shared by reference.
The rate-limit and pending-save tables are process-local; run a single API
process or switch ``rate_limit_backend`` to ``redis``.
"""

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sitebuilder.config import Settings
from sitebuilder.services.bundler import ComponentBundler
from sitebuilder.services.composer import SiteComposer
from sitebuilder.services.generation import GenerationService
from sitebuilder.services.html_composer import HtmlComposer
from sitebuilder.services.node_toolchain import EsbuildToolchain, NodeToolchain
from sitebuilder.services.pending_saves import PendingSaveCache
from sitebuilder.services.preview_tokens import PreviewTokenSigner
from sitebuilder.services.rate_limit import RateLimiter, RedisRateLimiter
from sitebuilder.services.render_sandbox import RenderSandbox
from sitebuilder.services.revision_store import RevisionStore

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    store: RevisionStore
    limiter: RateLimiter | RedisRateLimiter
    pending_saves: PendingSaveCache
    generation: GenerationService
    composer: SiteComposer
    preview_tokens: PreviewTokenSigner


def build_limiter(settings: Settings) -> RateLimiter | RedisRateLimiter:
    if settings.rate_limit_backend == "redis":
        logger.info("Using Redis-backed generation rate limiter")
        return RedisRateLimiter.from_url(
            settings.redis_url,
            window_seconds=settings.rate_limit_window_seconds,
            max_requests=settings.rate_limit_max_requests,
        )
    return RateLimiter(
        window_seconds=settings.rate_limit_window_seconds,
        max_requests=settings.rate_limit_max_requests,
    )


def build_services(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    toolchain: NodeToolchain | None = None,
) -> ServiceContainer:
    """Wire the store, limiter, caches, and composers for one process."""
    store = RevisionStore(session_factory, max_attempts=settings.revision_allocation_attempts)
    limiter = build_limiter(settings)
    pending_saves = PendingSaveCache(ttl_seconds=settings.pending_save_ttl_seconds)

    toolchain = toolchain or EsbuildToolchain(settings)
    sandbox = RenderSandbox(
        toolchain,
        work_dir=settings.render_work_dir,
        keep_artifacts=settings.keep_render_artifacts,
    )
    bundler = ComponentBundler(
        store,
        toolchain,
        sandbox,
        max_depth=settings.max_bundle_depth,
        max_files=settings.max_bundle_files,
        styling_cdn_url=settings.styling_cdn_url,
        debug=settings.compose_debug,
    )
    html_composer = HtmlComposer(
        store,
        max_depth=settings.max_include_depth,
        max_includes=settings.max_includes_total,
    )

    return ServiceContainer(
        store=store,
        limiter=limiter,
        pending_saves=pending_saves,
        generation=GenerationService(
            store,
            limiter,
            pending_saves,
            max_content_bytes=settings.max_content_bytes,
        ),
        composer=SiteComposer(store, html_composer, bundler),
        preview_tokens=PreviewTokenSigner(
            settings.preview_token_secret,
            ttl_seconds=settings.preview_token_ttl_seconds,
        ),
    )
