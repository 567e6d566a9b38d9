import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from playwright.async_api import async_playwright

from render_proxy.errors import RendererBusyError
from render_proxy.vars import (
    RENDER_HEADLESS,
    RENDER_MAX_SESSIONS,
    RENDER_QUEUE_TIMEOUT,
)

logger = logging.getLogger("uvicorn.error")

BROWSER_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-web-security",
]


class RenderSession(ABC):
    """One isolated page in the renderer. Closing it releases its slot."""

    @property
    @abstractmethod
    def url(self) -> str:
        pass

    @abstractmethod
    async def set_extra_http_headers(self, headers: Dict[str, str]) -> None:
        pass

    @abstractmethod
    async def cookies(self) -> List[Dict[str, Any]]:
        pass

    @abstractmethod
    async def add_cookies(self, cookies: List[Dict[str, Any]]) -> None:
        pass

    @abstractmethod
    async def goto(self, url: str, wait_until: str, timeout: int):
        """Navigate and return the main resource response (or None)."""

    @abstractmethod
    async def wait_for_load_state(self, state: str, timeout: int) -> None:
        pass

    @abstractmethod
    async def wait_for_timeout(self, timeout: int) -> None:
        pass

    @abstractmethod
    async def content(self) -> str:
        pass

    @abstractmethod
    async def close(self) -> None:
        pass


class Renderer(ABC):
    @abstractmethod
    async def new_session(self) -> RenderSession:
        pass

    @abstractmethod
    async def close(self) -> None:
        pass


class SessionPool:
    """
    Caps the number of open render sessions.

    Callers wait up to queue_timeout seconds for a free slot and get a
    RendererBusyError after that.
    """

    def __init__(self, max_sessions: int, queue_timeout: float):
        self.max_sessions = max_sessions
        self.queue_timeout = queue_timeout
        self._semaphore = asyncio.Semaphore(max_sessions)
        self._in_use = 0

    @property
    def in_use(self) -> int:
        return self._in_use

    async def acquire(self) -> None:
        waiter = asyncio.ensure_future(self._semaphore.acquire())
        try:
            done, _ = await asyncio.wait({waiter}, timeout=self.queue_timeout)
        except asyncio.CancelledError:
            await self._abandon(waiter)
            raise
        if waiter not in done:
            await self._abandon(waiter)
            raise RendererBusyError(
                f"No render session available within {self.queue_timeout}s "
                f"({self.max_sessions} in use)"
            )
        self._in_use += 1

    async def _abandon(self, waiter: "asyncio.Future") -> None:
        """Cancel a pending acquire; a slot granted in the meantime goes back."""
        waiter.cancel()
        try:
            await waiter
        except asyncio.CancelledError:
            return
        self._semaphore.release()

    def release(self) -> None:
        self._in_use -= 1
        self._semaphore.release()


class PlaywrightSession(RenderSession):
    def __init__(self, page, pool: SessionPool):
        self._page = page
        self._pool = pool
        self._closed = False

    @property
    def url(self) -> str:
        return self._page.url

    async def set_extra_http_headers(self, headers: Dict[str, str]) -> None:
        await self._page.set_extra_http_headers(headers)

    async def cookies(self) -> List[Dict[str, Any]]:
        return await self._page.context.cookies()

    async def add_cookies(self, cookies: List[Dict[str, Any]]) -> None:
        await self._page.context.add_cookies(cookies)

    async def goto(self, url: str, wait_until: str, timeout: int):
        return await self._page.goto(url, wait_until=wait_until, timeout=timeout)

    async def wait_for_load_state(self, state: str, timeout: int) -> None:
        await self._page.wait_for_load_state(state, timeout=timeout)

    async def wait_for_timeout(self, timeout: int) -> None:
        await self._page.wait_for_timeout(timeout)

    async def content(self) -> str:
        return await self._page.content()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            # Pages from browser.new_page() own their context; closing the
            # page closes the context as well.
            await self._page.close()
        finally:
            self._pool.release()


class PlaywrightRenderer(Renderer):
    """
    Shared Chromium instance, launched on first use and reused by every
    request. Each session is a fresh page with its own browser context.
    """

    def __init__(
        self,
        headless: bool = RENDER_HEADLESS,
        max_sessions: int = RENDER_MAX_SESSIONS,
        queue_timeout: float = RENDER_QUEUE_TIMEOUT,
    ):
        self.headless = headless
        self.pool = SessionPool(max_sessions, queue_timeout)
        self._playwright = None
        self._browser = None
        self._start_lock = asyncio.Lock()

    async def _ensure_browser(self):
        async with self._start_lock:
            if self._browser is None:
                logger.info(
                    f"[Renderer] Launching chromium (headless={self.headless})"
                )
                self._playwright = await async_playwright().start()
                self._browser = await self._playwright.chromium.launch(
                    headless=self.headless, args=BROWSER_ARGS
                )
        return self._browser

    async def new_session(self) -> RenderSession:
        await self.pool.acquire()
        try:
            browser = await self._ensure_browser()
            page = await browser.new_page(ignore_https_errors=True)
        except BaseException:
            self.pool.release()
            raise
        return PlaywrightSession(page, self.pool)

    async def close(self) -> None:
        browser: Optional[Any] = self._browser
        self._browser = None
        if browser is not None:
            logger.info("[Renderer] Closing chromium")
            await browser.close()
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None
