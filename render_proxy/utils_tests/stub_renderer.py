from typing import Any, Dict, List, Optional

from render_proxy.browser.renderer import Renderer, RenderSession


class StubResponse:
    def __init__(self, headers: Optional[Dict[str, str]] = None, body: str = ""):
        self.headers = headers or {}
        self._body = body

    async def text(self) -> str:
        return self._body


class StubSession(RenderSession):
    """Scripted render session recording every call made to it."""

    def __init__(
        self,
        content: str = "<html><head></head><body></body></html>",
        final_url: Optional[str] = None,
        response: Optional[StubResponse] = None,
        goto_error: Optional[Exception] = None,
        idle_error: Optional[Exception] = None,
        cookies: Optional[List[Dict[str, Any]]] = None,
        contents: Optional[List[str]] = None,
    ):
        self._content = content
        self._contents = list(contents or [])
        self._final_url = final_url
        self._url = ""
        self.response = response
        self.goto_error = goto_error
        self.idle_error = idle_error
        self.session_cookies = list(cookies or [])
        self.added_cookies: List[Dict[str, Any]] = []
        self.extra_headers: Dict[str, str] = {}
        self.calls: List[tuple] = []
        self.closed = False

    @property
    def url(self) -> str:
        return self._url

    async def set_extra_http_headers(self, headers: Dict[str, str]) -> None:
        self.calls.append(("set_extra_http_headers",))
        self.extra_headers = dict(headers)

    async def cookies(self) -> List[Dict[str, Any]]:
        return list(self.session_cookies) + list(self.added_cookies)

    async def add_cookies(self, cookies: List[Dict[str, Any]]) -> None:
        self.calls.append(("add_cookies", len(cookies)))
        self.added_cookies.extend(cookies)

    async def goto(self, url: str, wait_until: str, timeout: int):
        self.calls.append(("goto", url, wait_until, timeout))
        if self.goto_error is not None:
            raise self.goto_error
        self._url = self._final_url or url
        return self.response

    async def wait_for_load_state(self, state: str, timeout: int) -> None:
        self.calls.append(("wait_for_load_state", state, timeout))
        if self.idle_error is not None:
            raise self.idle_error

    async def wait_for_timeout(self, timeout: int) -> None:
        self.calls.append(("wait_for_timeout", timeout))

    async def content(self) -> str:
        if self._contents:
            return self._contents.pop(0)
        return self._content

    async def close(self) -> None:
        self.closed = True


class StubRenderer(Renderer):
    """Hands out pre-built sessions in order, repeating the last one."""

    def __init__(self, sessions: Optional[List[StubSession]] = None):
        self._queue = list(sessions or [StubSession()])
        self.issued: List[StubSession] = []
        self.closed = False

    async def new_session(self) -> RenderSession:
        if len(self._queue) > 1:
            session = self._queue.pop(0)
        else:
            template = self._queue[0]
            session = template if template not in self.issued else StubSession(
                content=template._content,
                final_url=template._final_url,
                response=template.response,
                goto_error=template.goto_error,
                idle_error=template.idle_error,
                cookies=template.session_cookies,
            )
        self.issued.append(session)
        return session

    async def close(self) -> None:
        self.closed = True
