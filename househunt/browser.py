"""Browser automation engine with stealth capabilities.

This module provides a Playwright wrapper owning exactly one rendering
session (browser + context + page) per flow attempt:
- Stealth context applied before the first navigation
- Readiness-aware navigation bounded by a Deadline
- Tolerant waiting for anti-automation challenge redirects
- Human-like typing with randomized per-keystroke delays
- In-page extraction returning plain serializable data
- Best-effort full-page screenshots for failure diagnostics

The async context manager guarantees the session is released on every
exit path, including cancellation.

Anti-Bot Measures:
    - Disables navigator.webdriver flag
    - Randomizes viewport dimensions within realistic bounds
    - Applies human-like timing jitter to navigation and typing
    - Rotates user-agents from a configurable pool
"""

import asyncio
import random
from contextlib import asynccontextmanager
from datetime import datetime
from enum import StrEnum
from pathlib import Path
from typing import Any, AsyncGenerator, Collection, Self

from playwright.async_api import (
    Browser,
    BrowserContext,
    ElementHandle,
    Page,
    Playwright,
    async_playwright,
)
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from config.settings import GlobalConfig, get_config
from househunt.deadline import Deadline
from househunt.exceptions import (
    BrowserInitializationError,
    ChallengeTimeoutError,
    FetchTimeoutError,
    HttpStatusError,
    NavigationError,
    SelectorNotFoundError,
)
from househunt.logger import get_logger

log = get_logger(__name__)

KEYSTROKE_DELAY_RANGE_SEC = (0.05, 0.15)

STEALTH_JS = """
// Override navigator.webdriver
Object.defineProperty(navigator, 'webdriver', {
    get: () => undefined,
});

// Override navigator.plugins to appear non-empty
Object.defineProperty(navigator, 'plugins', {
    get: () => [1, 2, 3, 4, 5],
});

Object.defineProperty(navigator, 'languages', {
    get: () => ['en-AU', 'en'],
});

// Override chrome runtime to appear as real Chrome
window.chrome = {
    runtime: {},
};

const originalQuery = window.navigator.permissions.query;
window.navigator.permissions.query = (parameters) => (
    parameters.name === 'notifications' ?
        Promise.resolve({ state: Notification.permission }) :
        originalQuery(parameters)
);
"""


class Readiness(StrEnum):
    """Page readiness conditions accepted by ``navigate``."""

    CONTENT_LOADED = "domcontentloaded"
    NETWORK_IDLE = "networkidle"


def keystroke_delay() -> float:
    """Independent random delay between two keystrokes, in seconds."""
    return random.uniform(*KEYSTROKE_DELAY_RANGE_SEC)


class BrowserSession:
    """One exclusive Playwright rendering session.

    Attributes:
        config: GlobalConfig instance for runtime configuration.
        _playwright: Playwright instance (initialized on open).
        _browser: Chromium browser instance.
        _context: BrowserContext with stealth settings applied.
        _page: The single active page.

    Example:
        async with BrowserSession.create() as session:
            await session.navigate("https://www.myschool.edu.au/", Readiness.NETWORK_IDLE)
            title = await session.extract("() => document.title")
    """

    def __init__(self, config: GlobalConfig) -> None:
        self.config = config
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._page: Page | None = None
        self._user_agent: str = random.choice(self.config.user_agents)

    @classmethod
    @asynccontextmanager
    async def create(
        cls, config: GlobalConfig | None = None
    ) -> AsyncGenerator[Self, None]:
        """Open a session and release it unconditionally on exit.

        Raises:
            BrowserInitializationError: If browser launch fails.
        """
        if config is None:
            config = get_config()

        instance = cls(config)
        try:
            await instance.open()
            yield instance
        finally:
            await instance.close()

    async def open(self) -> None:
        """Launch Chromium and prepare the stealth context and page.

        Raises:
            BrowserInitializationError: If any initialization step fails.
        """
        log.info("Opening browser session", headless=self.config.headless)

        try:
            self._playwright = await async_playwright().start()

            self._browser = await self._playwright.chromium.launch(
                headless=self.config.headless,
                args=[
                    "--disable-blink-features=AutomationControlled",
                    "--disable-dev-shm-usage",
                    "--no-sandbox",
                    "--disable-setuid-sandbox",
                    "--disable-infobars",
                    "--start-maximized",
                ],
            )

            self._context = await self._browser.new_context(
                viewport={
                    "width": random.randint(1280, 1920),
                    "height": random.randint(720, 1080),
                },
                user_agent=self._user_agent,
                locale=self.config.locale,
                timezone_id=self.config.timezone_id,
                java_script_enabled=True,
            )
            await self._context.add_init_script(STEALTH_JS)

            self._page = await self._context.new_page()
            self._page.set_default_timeout(self.config.step_timeout_ms)
            self._page.set_default_navigation_timeout(self.config.page_ready_timeout_ms)

            log.info("Browser session ready", user_agent=self._user_agent[:50] + "...")

        except Exception as exc:
            await self.close()
            raise BrowserInitializationError(reason=str(exc), browser_type="chromium") from exc

    async def close(self) -> None:
        """Release page, context, browser and driver in reverse order.

        Close failures are logged; this method never raises.
        """
        for name, closer in (
            ("page", self._page.close if self._page is not None else None),
            ("context", self._context.close if self._context is not None else None),
            ("browser", self._browser.close if self._browser is not None else None),
            ("playwright", self._playwright.stop if self._playwright is not None else None),
        ):
            if closer is None:
                continue
            try:
                await closer()
            except Exception as exc:
                log.warning("Error releasing browser resource", resource=name, error=str(exc))

        self._page = None
        self._context = None
        self._browser = None
        self._playwright = None
        log.debug("Browser session released")

    @property
    def page(self) -> Page:
        if self._page is None:
            raise BrowserInitializationError(reason="Session is not open")
        return self._page

    @property
    def is_open(self) -> bool:
        return self._page is not None

    @property
    def current_url(self) -> str:
        return self.page.url

    async def navigate(
        self,
        url: str,
        readiness: Readiness = Readiness.CONTENT_LOADED,
        deadline: Deadline | None = None,
        allowed_statuses: Collection[int] = (),
    ) -> int | None:
        """Navigate and suspend until ``readiness`` is met.

        Statuses in ``allowed_statuses`` are returned instead of raised, for
        pages that serve an interstitial with an error status.

        Returns:
            The document status, or None when Playwright reports no response.

        Raises:
            FetchTimeoutError: If readiness is not reached in time.
            HttpStatusError: If the document status is 400 or above and not allowed.
            NavigationError: On any other navigation failure.
        """
        jitter_ms = random.randint(100, 500)
        await asyncio.sleep(jitter_ms / 1000)

        timeout = self._timeout_ms(deadline, self.config.page_ready_timeout_ms)
        log.debug("Navigating", url=url, readiness=str(readiness), timeout_ms=timeout)

        try:
            response = await self.page.goto(url, wait_until=readiness.value, timeout=timeout)
        except PlaywrightTimeoutError as exc:
            raise FetchTimeoutError(operation="navigation", timeout=timeout, url=url) from exc
        except PlaywrightError as exc:
            raise NavigationError(url=url, reason=str(exc)) from exc

        status = response.status if response is not None else None
        if status is not None and status >= 400:
            if status not in allowed_statuses:
                raise HttpStatusError(url=url, status=status)
            log.info("Error status accepted", url=url, status=status)
            return status

        log.info("Navigation successful", url=url, status=status)
        return status

    async def await_challenge_resolution(self, timeout_ms: int | None = None) -> bool:
        """Race a main-frame navigation against ``timeout_ms``.

        A challenge page redirects to the real document once solved; some
        documents render without any challenge, so timing out is normal.

        Returns:
            True if a navigation happened, False if the wait timed out.
        """
        timeout = self.config.challenge_timeout_ms if timeout_ms is None else timeout_ms
        page = self.page
        try:
            await page.wait_for_event(
                "framenavigated",
                predicate=lambda frame: frame == page.main_frame,
                timeout=timeout,
            )
        except PlaywrightTimeoutError:
            tolerated = ChallengeTimeoutError(url=page.url, timeout_ms=timeout)
            log.info("No challenge navigation observed", reason=tolerated.message, timeout_ms=timeout)
            return False

        log.info("Challenge navigation observed", url=page.url)
        return True

    async def wait_for_readiness(self, readiness: Readiness, deadline: Deadline | None = None) -> bool:
        """Wait for a load state; a timeout is reported, not raised."""
        timeout = self._timeout_ms(deadline, self.config.page_ready_timeout_ms)
        try:
            await self.page.wait_for_load_state(readiness.value, timeout=timeout)
            return True
        except PlaywrightTimeoutError:
            log.debug("Readiness wait timed out", readiness=str(readiness), timeout_ms=timeout)
            return False

    async def wait_for_selector(
        self,
        selector: str,
        deadline: Deadline | None = None,
        state: str = "visible",
        step: str | None = None,
    ) -> ElementHandle:
        """Wait for ``selector`` to reach ``state``.

        Raises:
            SelectorNotFoundError: If the element does not appear in time.
        """
        timeout = self._timeout_ms(deadline, self.config.step_timeout_ms)
        try:
            handle = await self.page.wait_for_selector(selector, state=state, timeout=timeout)
        except PlaywrightTimeoutError as exc:
            raise SelectorNotFoundError(selector=selector, url=self.page.url, step=step) from exc
        if handle is None:
            raise SelectorNotFoundError(selector=selector, url=self.page.url, step=step)
        return handle

    async def query_first(self, selectors: list[str]) -> tuple[str, ElementHandle] | None:
        """Return the first candidate selector that matches, in order."""
        for selector in selectors:
            handle = await self.page.query_selector(selector)
            if handle is not None:
                log.debug("Candidate selector matched", selector=selector)
                return selector, handle
        return None

    async def query_all(self, selector: str) -> list[ElementHandle]:
        return await self.page.query_selector_all(selector)

    async def wait_for_condition(
        self,
        predicate_js: str,
        deadline: Deadline | None = None,
        arg: Any = None,
        step: str | None = None,
    ) -> None:
        """Poll an in-page predicate until it returns truthy.

        Raises:
            FetchTimeoutError: If the predicate never holds in time.
        """
        timeout = self._timeout_ms(deadline, self.config.step_timeout_ms)
        try:
            await self.page.wait_for_function(predicate_js, arg=arg, timeout=timeout, polling=100)
        except PlaywrightTimeoutError as exc:
            raise FetchTimeoutError(
                operation=step or "condition wait", timeout=timeout, url=self.page.url
            ) from exc

    async def click(self, selector: str, deadline: Deadline | None = None, step: str | None = None) -> None:
        """Click the element matching ``selector`` once it is visible."""
        handle = await self.wait_for_selector(selector, deadline, step=step)
        await handle.click()

    async def select_option(
        self,
        selector: str,
        label: str,
        deadline: Deadline | None = None,
        step: str | None = None,
    ) -> None:
        """Choose the option whose visible label is ``label``."""
        handle = await self.wait_for_selector(selector, deadline, step=step)
        timeout = self._timeout_ms(deadline, self.config.step_timeout_ms)
        try:
            await handle.select_option(label=label, timeout=timeout)
        except PlaywrightTimeoutError as exc:
            raise SelectorNotFoundError(selector=selector, url=self.page.url, step=step) from exc

    async def type_humanlike(
        self,
        selector: str,
        text: str,
        deadline: Deadline | None = None,
        step: str | None = None,
    ) -> None:
        """Clear the field and type ``text`` one character at a time.

        Each keystroke is followed by an independent 50-150ms delay.
        """
        handle = await self.wait_for_selector(selector, deadline, step=step)
        await handle.click(click_count=3)
        await self.type_into(handle, text, deadline)

    async def type_into(self, handle: ElementHandle, text: str, deadline: Deadline | None = None) -> None:
        for char in text:
            if deadline is not None:
                deadline.check("typing")
            await handle.type(char)
            await asyncio.sleep(keystroke_delay())

    async def press(self, key: str) -> None:
        await self.page.keyboard.press(key)

    async def pause(self, seconds: float, deadline: Deadline | None = None) -> None:
        """Fixed settle delay, shortened to fit the deadline."""
        if deadline is not None:
            seconds = min(seconds, deadline.remaining())
        await asyncio.sleep(seconds)

    async def extract(self, evaluator: str, arg: Any = None) -> Any:
        """Run an in-page routine and return its JSON-serializable result."""
        return await self.page.evaluate(evaluator, arg)

    async def content(self) -> str:
        """Serialized HTML of the current document."""
        return await self.page.content()

    async def capture_snapshot(self, prefix: str | None = None) -> Path:
        """Write a full-page screenshot to the diagnostics directory.

        Returns:
            Path of the written PNG.
        """
        directory = self.config.diagnostics_dir
        directory.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now().strftime("%Y%m%d-%H%M%S-%f")
        path = directory / f"{prefix or self.config.diagnostics_prefix}-{stamp}.png"
        await self.page.screenshot(path=str(path), full_page=True)
        log.info("Diagnostic snapshot saved", path=str(path))
        return path

    def _timeout_ms(self, deadline: Deadline | None, cap_ms: int) -> int:
        if deadline is None:
            return cap_ms
        return deadline.remaining_ms(cap_ms)
