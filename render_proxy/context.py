import logging
from dataclasses import dataclass
from typing import Optional

from render_proxy.browser.cookie_jar import CookieJarBase, cookie_jar
from render_proxy.browser.fetch_controller import FetchController
from render_proxy.browser.renderer import PlaywrightRenderer, Renderer
from render_proxy.cache.asset_cache import AssetCacheBase, asset_cache
from render_proxy.relay.asset_fetcher import AssetFetcher

logger = logging.getLogger("uvicorn.error")


@dataclass
class ProxyContext:
    """Long-lived collaborators shared by every request of the process."""

    renderer: Renderer
    cookie_jar: CookieJarBase
    asset_cache: AssetCacheBase
    fetch_controller: FetchController
    asset_fetcher: AssetFetcher

    async def close(self) -> None:
        await self.renderer.close()


def build_proxy_context(
    renderer: Optional[Renderer] = None,
    jar: Optional[CookieJarBase] = None,
    cache: Optional[AssetCacheBase] = None,
    asset_fetcher: Optional[AssetFetcher] = None,
    **controller_options,
) -> ProxyContext:
    renderer = renderer or PlaywrightRenderer()
    jar = jar if jar is not None else cookie_jar()
    cache = cache if cache is not None else asset_cache()
    return ProxyContext(
        renderer=renderer,
        cookie_jar=jar,
        asset_cache=cache,
        fetch_controller=FetchController(renderer, jar, **controller_options),
        asset_fetcher=asset_fetcher or AssetFetcher(),
    )


_context: Optional[ProxyContext] = None


def get_proxy_context() -> ProxyContext:
    """FastAPI dependency returning the process-wide context."""
    global _context
    if _context is None:
        logger.info("[Context] Creating proxy context")
        _context = build_proxy_context()
    return _context


async def close_proxy_context() -> None:
    global _context
    if _context is not None:
        await _context.close()
        _context = None
