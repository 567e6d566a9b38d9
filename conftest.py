import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from render_proxy.browser.cookie_jar import InMemoryCookieJar
from render_proxy.cache.asset_cache import InMemoryAssetCache
from render_proxy.context import build_proxy_context, get_proxy_context
from render_proxy.relay.route import router as relay_router
from render_proxy.utils_tests.stub_renderer import StubRenderer, StubSession


class SleepRecorder:
    """Stands in for asyncio.sleep and records the requested delays."""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay: float):
        self.delays.append(delay)


@pytest.fixture
def sleep_recorder():
    return SleepRecorder()


@pytest.fixture
def make_context(sleep_recorder):
    """Build a ProxyContext around scripted render sessions."""

    def _make(sessions=None, asset_fetcher=None, **controller_options):
        controller_options.setdefault("sleep", sleep_recorder)
        return build_proxy_context(
            renderer=StubRenderer(sessions or [StubSession()]),
            jar=InMemoryCookieJar(),
            cache=InMemoryAssetCache(ttl=3600),
            asset_fetcher=asset_fetcher,
            **controller_options,
        )

    return _make


@pytest.fixture
def make_client():
    """TestClient for the relay router with the given context injected."""

    def _make(context):
        test_app = FastAPI()
        test_app.include_router(relay_router)
        test_app.dependency_overrides[get_proxy_context] = lambda: context
        return TestClient(test_app)

    return _make
