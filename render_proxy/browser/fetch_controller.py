import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from opentelemetry import trace
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from render_proxy.browser.cookie_jar import CookieJarBase
from render_proxy.browser.renderer import Renderer, RenderSession
from render_proxy.errors import FetchError
from render_proxy.utils import random_user_agent
from render_proxy.utils.exception_logging import (
    format_exception_message,
    log_exception_with_details,
)
from render_proxy.vars import (
    CHALLENGE_DELAY_MS,
    CHALLENGE_IDLE_TIMEOUT_MS,
    CHALLENGE_MARKERS,
    FETCH_BACKOFF_BASE,
    FETCH_DEADLINE,
    FETCH_MAX_ATTEMPTS,
    NAVIGATION_TIMEOUT_MS,
    NETWORK_IDLE_TIMEOUT_MS,
)

logger = logging.getLogger("uvicorn.error")
tracer = trace.get_tracer(__name__)


class FetchState(str, Enum):
    STARTING = "starting"
    HEADERS_APPLIED = "headers_applied"
    COOKIES_APPLIED = "cookies_applied"
    NAVIGATED = "navigated"
    CHALLENGE_CHECK = "challenge_check"
    CHALLENGE_WAIT = "challenge_wait"
    SETTLED = "settled"
    COOKIES_SAVED = "cookies_saved"
    SUCCESS = "success"
    FAILED = "failed"
    BACKOFF_WAIT = "backoff_wait"
    EXHAUSTED = "exhausted"


def build_request_headers(user_agent: str) -> Dict[str, str]:
    """Header set of a desktop browser making a top-level navigation."""
    return {
        "Accept-Language": "en-US,en;q=0.9",
        "Accept-Encoding": "gzip, deflate, br",
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
        "User-Agent": user_agent,
        "Sec-Fetch-Dest": "document",
        "Sec-Fetch-Mode": "navigate",
        "Sec-Fetch-Site": "none",
        "Sec-Fetch-User": "?1",
        "Upgrade-Insecure-Requests": "1",
    }


async def wait_for_network_idle(session: RenderSession, timeout: int) -> None:
    """Wait for network idle; a timeout here is not fatal."""
    try:
        await session.wait_for_load_state("networkidle", timeout=timeout)
    except PlaywrightTimeoutError:
        logger.info(
            f"[Fetch] Timeout waiting for networkidle after {timeout}ms, continuing anyway"
        )


def contains_challenge(content: str, markers: Sequence[str] = CHALLENGE_MARKERS) -> bool:
    return any(marker in content for marker in markers)


@dataclass
class RenderedPage:
    """
    A successfully loaded page. The session is still open: read what you
    need from it, then close() it.
    """

    session: RenderSession
    response: Any
    requested_url: str
    attempts: int
    challenge_detected: bool = False
    states: List[FetchState] = field(default_factory=list)

    @property
    def final_url(self) -> str:
        return self.session.url or self.requested_url

    @property
    def redirected(self) -> bool:
        return self.final_url != self.requested_url

    @property
    def content_type(self) -> str:
        if self.response is None:
            return "text/html"
        headers = self.response.headers or {}
        return headers.get("content-type") or "text/html"

    async def content(self) -> str:
        """Serialized DOM of the rendered page."""
        return await self.session.content()

    async def body_text(self) -> str:
        """Raw body of the navigation response, falling back to the DOM."""
        if self.response is None:
            return await self.session.content()
        return await self.response.text()

    async def close(self) -> None:
        await self.session.close()


class FetchController:
    """
    Loads one page through the renderer with retries.

    Every attempt runs in a fresh session: headers and stored cookies are
    applied, the page is navigated and given time to settle, an anti-bot
    interstitial gets one extra wait, and the resulting cookies are saved
    for the host the page ended up on. A failed attempt discards its session
    and the next one starts after an exponential backoff delay
    (backoff_base, then doubled each time).
    """

    def __init__(
        self,
        renderer: Renderer,
        cookie_jar: CookieJarBase,
        max_attempts: int = FETCH_MAX_ATTEMPTS,
        backoff_base: float = FETCH_BACKOFF_BASE,
        deadline: float = FETCH_DEADLINE,
        navigation_timeout: int = NAVIGATION_TIMEOUT_MS,
        idle_timeout: int = NETWORK_IDLE_TIMEOUT_MS,
        challenge_delay: int = CHALLENGE_DELAY_MS,
        challenge_idle_timeout: int = CHALLENGE_IDLE_TIMEOUT_MS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        user_agents: Optional[Sequence[str]] = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.renderer = renderer
        self.cookie_jar = cookie_jar
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self.deadline = deadline
        self.navigation_timeout = navigation_timeout
        self.idle_timeout = idle_timeout
        self.challenge_delay = challenge_delay
        self.challenge_idle_timeout = challenge_idle_timeout
        self._sleep = sleep
        self._clock = clock
        self._user_agents = user_agents

    def backoff_delay(self, attempt: int) -> float:
        return self.backoff_base * (2 ** (attempt - 1))

    async def fetch(self, url: str) -> RenderedPage:
        with tracer.start_as_current_span("fetch_page") as span:
            span.set_attribute("fetch.url", url)
            started = self._clock()
            states: List[FetchState] = []
            last_error: Optional[BaseException] = None
            attempt = 0

            while attempt < self.max_attempts:
                attempt += 1
                session: Optional[RenderSession] = None
                states.append(FetchState.STARTING)
                logger.info(
                    f"[Fetch] Attempt {attempt}/{self.max_attempts} to fetch {url}"
                )
                try:
                    session = await self.renderer.new_session()
                    page = await self._attempt(session, url, attempt, states)
                    span.set_attribute("fetch.attempts", attempt)
                    span.set_attribute("fetch.final_url", page.final_url)
                    span.set_attribute("fetch.challenge", page.challenge_detected)
                    span.set_attribute("fetch.states", [s.value for s in states])
                    return page
                except asyncio.CancelledError:
                    await self._discard(session)
                    raise
                except Exception as e:
                    states.append(FetchState.FAILED)
                    last_error = e
                    log_exception_with_details(
                        logger,
                        f"[Fetch] Attempt {attempt}/{self.max_attempts} failed for {url}.",
                        e,
                        logging.WARNING,
                    )
                    await self._discard(session)

                if attempt >= self.max_attempts:
                    break
                delay = self.backoff_delay(attempt)
                if self.deadline and self._clock() - started + delay >= self.deadline:
                    logger.warning(
                        f"[Fetch] Deadline of {self.deadline}s reached for {url}, giving up"
                    )
                    break
                states.append(FetchState.BACKOFF_WAIT)
                logger.info(f"[Fetch] Retrying {url} in {delay}s...")
                await self._sleep(delay)

            states.append(FetchState.EXHAUSTED)
            span.set_attribute("fetch.attempts", attempt)
            span.set_attribute("fetch.states", [s.value for s in states])
            raise FetchError(
                f"Failed to fetch page after {attempt} attempts: "
                f"{format_exception_message(last_error)}",
                url=url,
                attempts=attempt,
            ) from last_error

    async def _attempt(
        self,
        session: RenderSession,
        url: str,
        attempt: int,
        states: List[FetchState],
    ) -> RenderedPage:
        await session.set_extra_http_headers(
            build_request_headers(random_user_agent(self._user_agents))
        )
        states.append(FetchState.HEADERS_APPLIED)

        await self.cookie_jar.apply(session, url)
        states.append(FetchState.COOKIES_APPLIED)

        response = await session.goto(
            url, wait_until="domcontentloaded", timeout=self.navigation_timeout
        )
        states.append(FetchState.NAVIGATED)
        await wait_for_network_idle(session, self.idle_timeout)

        states.append(FetchState.CHALLENGE_CHECK)
        challenge = contains_challenge(await session.content())
        if challenge:
            states.append(FetchState.CHALLENGE_WAIT)
            logger.info(
                f"[Fetch] Challenge detected on {url}, waiting for resolution..."
            )
            await session.wait_for_timeout(self.challenge_delay)
            await wait_for_network_idle(session, self.challenge_idle_timeout)
        states.append(FetchState.SETTLED)

        final_url = session.url or url
        await self.cookie_jar.save(session, final_url)
        states.append(FetchState.COOKIES_SAVED)
        states.append(FetchState.SUCCESS)

        return RenderedPage(
            session=session,
            response=response,
            requested_url=url,
            attempts=attempt,
            challenge_detected=challenge,
            states=list(states),
        )

    @staticmethod
    async def _discard(session: Optional[RenderSession]) -> None:
        if session is None:
            return
        try:
            await session.close()
        except Exception as e:
            logger.debug(f"[Fetch] Ignoring error while closing session: {e}")
