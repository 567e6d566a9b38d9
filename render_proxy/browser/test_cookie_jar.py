import pytest

from render_proxy.browser.cookie_jar import (
    CookieJarBase,
    InMemoryCookieJar,
    cookie_jar,
)
from render_proxy.utils_tests.stub_renderer import StubSession

COOKIES = [
    {"name": "cf_clearance", "value": "abc", "domain": "a.example", "path": "/"},
    {"name": "session", "value": "42", "domain": "a.example", "path": "/", "httpOnly": True},
]


@pytest.mark.asyncio
async def test_save_then_apply_replays_cookies_for_same_host():
    jar = InMemoryCookieJar()
    await jar.save(StubSession(cookies=COOKIES), "https://a.example/x")

    fresh = StubSession()
    await jar.apply(fresh, "https://a.example/y")

    assert fresh.added_cookies == COOKIES


@pytest.mark.asyncio
async def test_apply_for_unseen_host_is_noop():
    jar = InMemoryCookieJar()
    session = StubSession()

    result = await jar.apply(session, "https://never-seen.example/")

    assert result is session
    assert session.added_cookies == []
    assert ("add_cookies", 0) not in session.calls


@pytest.mark.asyncio
async def test_apply_with_empty_entry_is_noop():
    jar = InMemoryCookieJar()
    await jar.save(StubSession(cookies=[]), "https://a.example/")

    session = StubSession()
    await jar.apply(session, "https://a.example/")

    assert session.calls == []


@pytest.mark.asyncio
async def test_save_overwrites_previous_entry():
    jar = InMemoryCookieJar()
    await jar.save(StubSession(cookies=COOKIES), "https://a.example/")
    await jar.save(StubSession(cookies=COOKIES[:1]), "https://a.example/other")

    assert jar.get("a.example") == COOKIES[:1]
    assert len(jar) == 1


@pytest.mark.asyncio
async def test_hosts_are_kept_apart():
    jar = InMemoryCookieJar()
    await jar.save(StubSession(cookies=COOKIES), "https://a.example/")

    session = StubSession()
    await jar.apply(session, "https://b.example/")

    assert session.added_cookies == []
    assert jar.get("b.example") is None


@pytest.mark.asyncio
async def test_keyed_by_hostname_not_port_or_scheme():
    jar = InMemoryCookieJar()
    await jar.save(StubSession(cookies=COOKIES), "http://a.example:8080/")

    session = StubSession()
    await jar.apply(session, "https://a.example/")

    assert session.added_cookies == COOKIES


def test_clear():
    jar = InMemoryCookieJar()
    jar.set("a.example", COOKIES)
    jar.clear()
    assert len(jar) == 0


def test_factory_default():
    assert isinstance(cookie_jar("InMemoryCookieJar"), InMemoryCookieJar)
    assert isinstance(cookie_jar(), CookieJarBase)


def test_factory_unknown_name():
    with pytest.raises(ValueError):
        cookie_jar("RedisCookieJar")
