import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from render_proxy.browser.renderer import RenderSession
from render_proxy.rewrite.normalizer import host_of
from render_proxy.vars import COOKIE_JAR

logger = logging.getLogger("uvicorn.error")

CookieList = List[Dict[str, Any]]


class CookieJarBase(ABC):
    """Per-host cookie store replayed into every new render session."""

    @abstractmethod
    def get(self, host: str) -> Optional[CookieList]:
        pass

    @abstractmethod
    def set(self, host: str, cookies: CookieList):
        pass

    @abstractmethod
    def clear(self):
        pass

    @abstractmethod
    def __len__(self) -> int:
        pass

    async def save(self, session: RenderSession, url: str) -> CookieList:
        """Capture every cookie the session can see under the host of url."""
        cookies = await session.cookies()
        self.set(host_of(url), cookies)
        return cookies

    async def apply(self, session: RenderSession, url: str) -> RenderSession:
        """Inject stored cookies for the host of url; no-op for unseen hosts."""
        host = host_of(url)
        cookies = self.get(host) or []
        if cookies:
            await session.add_cookies(cookies)
            logger.info(f"[CookieJar] Applied {len(cookies)} cookies for {host}")
        return session


def cookie_jar(name: str = COOKIE_JAR) -> CookieJarBase:
    if name == "InMemoryCookieJar":
        return InMemoryCookieJar()
    cls = globals().get(name)
    if isinstance(cls, type) and issubclass(cls, CookieJarBase):
        return cls()
    else:
        raise ValueError(f"Unknown cookie jar type: {name}")


class InMemoryCookieJar(CookieJarBase):
    def __init__(self):
        self._jars: dict[str, CookieList] = {}

    def get(self, host: str) -> Optional[CookieList]:
        return self._jars.get(host)

    def set(self, host: str, cookies: CookieList):
        self._jars[host] = list(cookies)

    def clear(self):
        self._jars.clear()

    def __len__(self) -> int:
        return len(self._jars)
