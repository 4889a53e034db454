"""
Shared headless-browser session.

One Chromium process serves every capture in the host process. Playwright's
async API runs on a private event-loop thread so synchronous callers (Flask
request threads, batch workers) can submit coroutines with ``run()`` while
each capture still gets its own isolated page.

Launch is single-flight: callers arriving while a launch is in progress
await the same pending task and see the same browser or the same
``LaunchError``. A failed launch clears the pending task so the next caller
retries.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import threading
from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable, Coroutine, List, Optional, Tuple

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from .config import BROWSER_ARGS, HEADLESS, USER_AGENT
from .errors import BrowserShutdownError, LaunchError

logger = logging.getLogger("dishscout.browser")

Launcher = Callable[[], Awaitable[Tuple[Any, Any]]]

IDLE = "idle"
LAUNCHING = "launching"
READY = "ready"
SHUTTING_DOWN = "shutting_down"
CLOSED = "closed"


class BrowserSessionManager:
    def __init__(
        self,
        *,
        headless: bool = HEADLESS,
        launch_args: Optional[List[str]] = None,
        user_agent: str = USER_AGENT,
        launcher: Optional[Launcher] = None,
    ):
        self.headless = headless
        self.launch_args = list(BROWSER_ARGS if launch_args is None else launch_args)
        self.user_agent = user_agent
        self._launcher = launcher or self._launch_chromium

        self._playwright: Any = None
        self._browser: Any = None
        self._launch_task: Optional[asyncio.Task] = None
        self._state = IDLE

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._thread_lock = threading.Lock()

    @property
    def state(self) -> str:
        return self._state

    @property
    def is_shut_down(self) -> bool:
        return self._state in (SHUTTING_DOWN, CLOSED)

    # -- loop thread -------------------------------------------------------

    def _ensure_loop(self) -> asyncio.AbstractEventLoop:
        with self._thread_lock:
            if self.is_shut_down:
                raise BrowserShutdownError("browser session is shut down")
            if self._loop is None:
                loop = asyncio.new_event_loop()
                thread = threading.Thread(
                    target=self._run_loop,
                    args=(loop,),
                    name="dishscout-browser",
                    daemon=True,
                )
                thread.start()
                self._loop = loop
                self._thread = thread
            return self._loop

    @staticmethod
    def _run_loop(loop: asyncio.AbstractEventLoop) -> None:
        asyncio.set_event_loop(loop)
        try:
            loop.run_forever()
        finally:
            loop.close()

    def run(self, coro: Coroutine[Any, Any, Any], timeout: Optional[float] = None) -> Any:
        """Run ``coro`` on the browser loop and block until it finishes.

        On timeout the coroutine is cancelled on the loop before
        ``concurrent.futures.TimeoutError`` is re-raised to the caller.
        """
        try:
            loop = self._ensure_loop()
        except BrowserShutdownError:
            coro.close()
            raise
        future = asyncio.run_coroutine_threadsafe(coro, loop)
        try:
            return future.result(timeout)
        except concurrent.futures.TimeoutError:
            future.cancel()
            raise

    # -- browser lifecycle -------------------------------------------------

    async def acquire(self) -> Any:
        if self.is_shut_down:
            raise BrowserShutdownError("browser session is shut down")
        browser = self._browser
        if browser is not None:
            if browser.is_connected():
                return browser
            logger.warning("browser disconnected, relaunching")
            self._browser = None
            self._launch_task = None
            self._state = IDLE

        task = self._launch_task
        if task is None:
            task = asyncio.get_running_loop().create_task(self._launch())
            self._launch_task = task
        try:
            # Shielded so one caller's cancellation does not cancel the launch
            # the other waiters share.
            return await asyncio.shield(task)
        except LaunchError:
            if self._launch_task is task:
                self._launch_task = None
            raise

    async def _launch(self) -> Any:
        if self.is_shut_down:
            raise BrowserShutdownError("browser session is shut down")
        self._state = LAUNCHING
        logger.info("launching browser (headless=%s)", self.headless)
        try:
            playwright, browser = await self._launcher()
        except Exception as exc:
            if self._state == LAUNCHING:
                self._state = IDLE
            logger.error("browser launch failed: %s", exc)
            raise LaunchError(f"browser launch failed: {exc}") from exc

        if self._state != LAUNCHING:
            await self._close_handles(playwright, browser)
            raise BrowserShutdownError("browser session shut down during launch")

        self._playwright = playwright
        self._browser = browser
        self._state = READY
        logger.info("browser ready")
        return browser

    async def _launch_chromium(self) -> Tuple[Any, Any]:
        playwright = await async_playwright().start()
        try:
            browser = await playwright.chromium.launch(
                headless=self.headless,
                args=self.launch_args,
            )
        except Exception:
            await playwright.stop()
            raise
        return playwright, browser

    @asynccontextmanager
    async def page(self):
        """Yield a fresh page in its own context; closed on every exit path."""
        browser = await self.acquire()
        context = await browser.new_context(
            user_agent=self.user_agent,
            locale="en-IN",
            viewport={"width": 1400, "height": 900},
        )
        try:
            page = await context.new_page()
            try:
                yield page
            finally:
                await page.close()
        finally:
            await context.close()

    async def aclose(self) -> None:
        if self._state == CLOSED:
            return
        self._state = SHUTTING_DOWN
        task = self._launch_task
        if task is not None and not task.done():
            try:
                await task
            except LaunchError as exc:
                logger.debug("pending launch ended during shutdown: %s", exc)
        browser, playwright = self._browser, self._playwright
        self._browser = None
        self._playwright = None
        self._launch_task = None
        await self._close_handles(playwright, browser)
        self._state = CLOSED
        logger.info("browser closed")

    @staticmethod
    async def _close_handles(playwright: Any, browser: Any) -> None:
        if browser is not None:
            try:
                await browser.close()
            except PlaywrightError as exc:
                logger.warning("browser close failed: %s", exc)
        if playwright is not None:
            await playwright.stop()

    def shutdown(self, timeout: float = 10.0) -> None:
        """Close the browser and stop the loop thread. Safe to call twice."""
        with self._thread_lock:
            if self._state == CLOSED:
                return
            loop, thread = self._loop, self._thread
            self._state = SHUTTING_DOWN
        logger.info("shutting down browser session")
        if loop is None:
            self._state = CLOSED
            return
        try:
            asyncio.run_coroutine_threadsafe(self.aclose(), loop).result(timeout)
        except concurrent.futures.TimeoutError:
            logger.warning("browser did not close within %.1fs", timeout)
        finally:
            loop.call_soon_threadsafe(loop.stop)
            if thread is not None:
                thread.join(timeout)
            self._state = CLOSED
