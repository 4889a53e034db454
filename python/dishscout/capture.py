from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from urllib.parse import quote_plus

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .browser import BrowserSessionManager
from .config import API_MARKER, CAPTURE_TIMEOUT_MS, SEARCH_URL
from .errors import CaptureError

logger = logging.getLogger("dishscout.capture")


@dataclass(frozen=True)
class CapturedRequestTemplate:
    url: str
    method: str
    headers: Dict[str, str] = field(default_factory=dict)


def build_search_url(query: str, search_url: str = SEARCH_URL) -> str:
    return search_url.format(query=quote_plus(query))


async def capture_search_request(
    manager: BrowserSessionManager,
    query: str,
    *,
    timeout_ms: int = CAPTURE_TIMEOUT_MS,
    marker: str = API_MARKER,
    search_url: str = SEARCH_URL,
) -> Optional[CapturedRequestTemplate]:
    """
    Load the platform's search page for ``query`` and record the first
    outgoing request whose URL contains ``marker``.

    Returns None when no such request was seen before the page went idle or
    the timeout ran out. Navigation failures raise CaptureError.
    """
    claimed: List[Any] = []
    captured: List[CapturedRequestTemplate] = []

    async def handle_route(route):
        request = route.request
        try:
            # Claimed before any await so the first matching request wins even
            # when handlers for later requests resolve first.
            if not claimed and marker in request.url:
                claimed.append(request)
                try:
                    headers = await request.all_headers()
                except PlaywrightError as exc:
                    logger.debug("full headers unavailable for %s: %s", request.url, exc)
                    headers = request.headers
                captured.append(CapturedRequestTemplate(
                    url=request.url,
                    method=request.method,
                    headers=dict(headers),
                ))
                logger.debug("captured search request: %s", request.url)
        finally:
            # Every request has to be continued or navigation never settles.
            try:
                await route.continue_()
            except PlaywrightError as exc:
                logger.debug("route continue failed for %s: %s", request.url, exc)

    target = build_search_url(query, search_url)
    async with manager.page() as page:
        await page.route("**/*", handle_route)
        try:
            await page.goto(target, wait_until="networkidle", timeout=timeout_ms)
        except PlaywrightTimeoutError:
            logger.info("navigation to %s did not settle within %sms", target, timeout_ms)
        except PlaywrightError as exc:
            raise CaptureError(f"navigation to {target} failed: {exc}") from exc

    if not captured:
        logger.warning("no request matching %r seen for query %r", marker, query)
        return None
    return captured[0]
