import asyncio
from contextlib import asynccontextmanager

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from dishscout.capture import build_search_url, capture_search_request
from dishscout.errors import CaptureError

SEARCH_API = "https://www.swiggy.com/dapi/restaurants/search/v3?lat=12.9&lng=77.6&str=Biryani"


class FakeRequest:
    def __init__(self, url, method="GET", *, headers_delay=0, headers_error=None):
        self.url = url
        self.method = method
        self.headers = {"accept": "*/*"}
        self.headers_delay = headers_delay
        self.headers_error = headers_error

    async def all_headers(self):
        if self.headers_delay:
            await asyncio.sleep(self.headers_delay)
        if self.headers_error is not None:
            raise self.headers_error
        return {"accept": "*/*", "cookie": "_session_tid=xyz", "url-seen": self.url}


class FakeRoute:
    def __init__(self, url, **request_options):
        self.request = FakeRequest(url, **request_options)
        self.continued = False

    async def continue_(self):
        self.continued = True


class FakePage:
    def __init__(self, urls, error=None):
        self.urls = urls
        self.error = error
        self.routes = []
        self.handler = None
        self.visited = None
        self.goto_options = None
        self.closed = False

    async def route(self, pattern, handler):
        assert pattern == "**/*"
        self.handler = handler

    async def goto(self, url, **options):
        self.visited = url
        self.goto_options = options
        for request_url in self.urls:
            route = FakeRoute(request_url)
            self.routes.append(route)
            await self.handler(route)
        if self.error is not None:
            raise self.error


class FakeManager:
    def __init__(self, page):
        self._page = page

    @asynccontextmanager
    async def page(self):
        try:
            yield self._page
        finally:
            self._page.closed = True


def capture(page, query="Biryani", **kwargs):
    return asyncio.run(capture_search_request(FakeManager(page), query, **kwargs))


def test_build_search_url_encodes_query():
    assert build_search_url("Paneer Tikka") == "https://www.swiggy.com/search?query=Paneer+Tikka"


def test_captures_first_matching_request_and_continues_all():
    page = FakePage([
        "https://www.swiggy.com/search?query=Biryani",
        SEARCH_API,
        "https://media-assets.swiggy.com/logo.png",
        SEARCH_API + "&page=2",
    ])

    template = capture(page, timeout_ms=12000)

    assert template.url == SEARCH_API
    assert template.method == "GET"
    assert template.headers["cookie"] == "_session_tid=xyz"
    assert all(route.continued for route in page.routes)
    assert page.goto_options == {"wait_until": "networkidle", "timeout": 12000}
    assert page.visited == "https://www.swiggy.com/search?query=Biryani"
    assert page.closed


def test_no_matching_request_is_not_an_error():
    page = FakePage(["https://www.swiggy.com/search?query=Biryani"])
    assert capture(page) is None
    assert page.closed


def test_timeout_without_match_returns_none():
    page = FakePage(["https://www.swiggy.com/"], error=PlaywrightTimeoutError("Timeout 30000ms exceeded."))
    assert capture(page) is None
    assert page.closed


def test_timeout_after_match_keeps_template():
    page = FakePage([SEARCH_API], error=PlaywrightTimeoutError("Timeout 30000ms exceeded."))
    assert capture(page).url == SEARCH_API


def test_navigation_error_raises_capture_error():
    page = FakePage([], error=PlaywrightError("net::ERR_NAME_NOT_RESOLVED"))
    with pytest.raises(CaptureError, match="ERR_NAME_NOT_RESOLVED"):
        capture(page)
    assert page.closed


def test_custom_marker():
    page = FakePage([SEARCH_API, "https://www.swiggy.com/dapi/landing/PRE_SEARCH?lat=1"])
    template = capture(page, marker="PRE_SEARCH")
    assert "PRE_SEARCH" in template.url


class ConcurrentPage(FakePage):
    """Dispatches every route handler at once, as the browser does."""

    def __init__(self, routes):
        super().__init__([])
        self.routes = routes

    async def goto(self, url, **options):
        self.visited = url
        await asyncio.gather(*(self.handler(route) for route in self.routes))


def test_route_is_continued_when_headers_cannot_be_read():
    route = FakeRoute(SEARCH_API, headers_error=PlaywrightError("Target page has been closed"))
    page = ConcurrentPage([route])

    template = capture(page)

    assert route.continued
    assert template.url == SEARCH_API
    assert template.headers == {"accept": "*/*"}


def test_first_observed_match_wins_over_faster_later_match():
    first = FakeRoute(SEARCH_API + "&first=1", headers_delay=0.05)
    second = FakeRoute(SEARCH_API + "&second=1")
    page = ConcurrentPage([first, second])

    template = capture(page)

    assert template.url.endswith("&first=1")
    assert first.continued and second.continued
