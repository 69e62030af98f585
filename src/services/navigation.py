"""Page navigation and content extraction on a leased browser session.

One scrape drives a page through:
    OPENED -> NAVIGATING -> LOADED -> IDLE_WAIT -> EXTRACTED
or FAILED from any state. A failed page is closed and never reused.
"""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import logfire

from src.config import get_settings
from src.constants import (
    NAVIGATION_SUCCESS_STATUS,
    NAVIGATION_TIMEOUT_SECONDS,
    NETWORK_IDLE_CEILING_MS,
    SCREENSHOT_DEVICE_SCALE_FACTOR,
    SCREENSHOT_VIEWPORT_HEIGHT,
    SCREENSHOT_VIEWPORT_WIDTH,
)
from src.models.scrape_models import BrowserSession, ExtractedContent, ScrapeMode
from src.services.scrape_errors import (
    ExtractionFailedError,
    IdleTimeoutError,
    NavigationFailedError,
)


class PageState(str, Enum):
    OPENED = "opened"
    NAVIGATING = "navigating"
    LOADED = "loaded"
    IDLE_WAIT = "idle_wait"
    EXTRACTED = "extracted"
    FAILED = "failed"


class NetworkIdleWatcher:
    """Track in-flight requests of a page and wait for a quiet period.

    Must be attached before navigation starts so the document request
    itself is counted.
    """

    def __init__(self, page: Any):
        self._in_flight: set[Any] = set()
        self._activity = asyncio.Event()
        page.on("request", self._on_request)
        page.on("requestfinished", self._on_request_done)
        page.on("requestfailed", self._on_request_done)

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    def _on_request(self, request: Any) -> None:
        self._in_flight.add(request)
        self._activity.set()

    def _on_request_done(self, request: Any) -> None:
        self._in_flight.discard(request)
        self._activity.set()

    async def _settle(self, idle_seconds: float) -> None:
        while True:
            self._activity.clear()
            if self._in_flight:
                await self._activity.wait()
                continue
            try:
                await asyncio.wait_for(self._activity.wait(), timeout=idle_seconds)
            except asyncio.TimeoutError:
                return

    async def wait_for_idle(self, idle_ms: int, ceiling_ms: int) -> None:
        """
        Wait until no request has been in flight for idle_ms.

        Raises:
            asyncio.TimeoutError: If that never happens within ceiling_ms
        """
        await asyncio.wait_for(self._settle(idle_ms / 1000), timeout=ceiling_ms / 1000)


@dataclass
class PageHandle:
    """A page opened on a session, with its own browser context."""

    url: str
    context: Any
    page: Any
    state: PageState = PageState.OPENED
    watcher: NetworkIdleWatcher | None = field(default=None, repr=False)

    async def close(self) -> None:
        """Close the page context; safe to call more than once."""
        if self.context is None:
            return
        context, self.context = self.context, None
        try:
            await context.close()
        except Exception as e:
            logfire.warn(
                "Failed to close page context",
                url=self.url,
                error=str(e),
                error_type=type(e).__name__,
            )


class NavigationDriver:
    """Navigate a page to network idle and extract HTML and/or a screenshot."""

    def __init__(
        self,
        idle_ceiling_ms: int = NETWORK_IDLE_CEILING_MS,
        navigation_timeout: float = NAVIGATION_TIMEOUT_SECONDS,
        viewport_width: int = SCREENSHOT_VIEWPORT_WIDTH,
        viewport_height: int = SCREENSHOT_VIEWPORT_HEIGHT,
        device_scale_factor: int = SCREENSHOT_DEVICE_SCALE_FACTOR,
    ):
        """Initialize the driver.

        Args:
            idle_ceiling_ms: Absolute upper bound for the network-idle wait
            navigation_timeout: Timeout for page.goto() in seconds
            viewport_width: Fixed viewport width
            viewport_height: Fixed viewport height
            device_scale_factor: Fixed device scale factor
        """
        self._idle_ceiling_ms = idle_ceiling_ms
        self._navigation_timeout_ms = navigation_timeout * 1000
        self._viewport = {"width": viewport_width, "height": viewport_height}
        self._device_scale_factor = device_scale_factor

    async def navigate(
        self,
        session: BrowserSession,
        url: str,
        idle_window_ms: int,
        language: str | None = None,
    ) -> PageHandle:
        """
        Open a fresh page on the session, load the URL and wait for network idle.

        Args:
            session: Connected browser session owned by the caller
            url: URL to load, exactly as requested
            idle_window_ms: Quiet period required before returning
            language: Tag sent as the page locale and Accept-Language header

        Returns:
            PageHandle in the IDLE_WAIT-completed (ready to extract) state

        Raises:
            NavigationFailedError: If the page cannot be opened, navigation
                errors out, or the response status is not 200
            IdleTimeoutError: If the network never goes quiet within the ceiling
        """
        context_options: dict[str, Any] = {
            "viewport": self._viewport,
            "device_scale_factor": self._device_scale_factor,
        }
        if language:
            context_options["locale"] = language
            context_options["extra_http_headers"] = {"Accept-Language": language}

        try:
            context = await session.browser.new_context(**context_options)
            page = await context.new_page()
        except Exception as e:
            raise NavigationFailedError(f"Failed to open page: {e}") from e

        handle = PageHandle(url=url, context=context, page=page)
        handle.watcher = NetworkIdleWatcher(page)

        try:
            await self._load(handle)
            await self._wait_for_idle(handle, idle_window_ms)
        except BaseException:
            handle.state = PageState.FAILED
            await handle.close()
            raise

        return handle

    async def _load(self, handle: PageHandle) -> None:
        logfire.info("Loading page", url=handle.url)
        handle.state = PageState.NAVIGATING
        start_time = time.time()
        try:
            response = await handle.page.goto(
                handle.url, timeout=self._navigation_timeout_ms
            )
        except Exception as e:
            logfire.warn(
                "Navigation error",
                url=handle.url,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise NavigationFailedError(f"Failed to load page: {e}") from e

        status = response.status if response is not None else None
        if status != NAVIGATION_SUCCESS_STATUS:
            logfire.warn(
                "Failed to load page",
                url=handle.url,
                http_status=status,
            )
            raise NavigationFailedError(
                f"Failed to load page: HTTP status {status}", status=status
            )

        handle.state = PageState.LOADED
        logfire.info(
            "Page loaded",
            url=handle.url,
            http_status=status,
            response_time_ms=(time.time() - start_time) * 1000,
        )

    async def _wait_for_idle(self, handle: PageHandle, idle_window_ms: int) -> None:
        handle.state = PageState.IDLE_WAIT
        logfire.info(
            "Waiting for network idle",
            url=handle.url,
            idle_window_ms=idle_window_ms,
            ceiling_ms=self._idle_ceiling_ms,
        )
        try:
            await handle.watcher.wait_for_idle(idle_window_ms, self._idle_ceiling_ms)
        except asyncio.TimeoutError as e:
            logfire.warn(
                "Network never went idle",
                url=handle.url,
                in_flight=handle.watcher.in_flight,
                ceiling_ms=self._idle_ceiling_ms,
            )
            raise IdleTimeoutError(
                f"Network not idle for {idle_window_ms}ms within {self._idle_ceiling_ms}ms"
            ) from e

    async def extract(self, handle: PageHandle, mode: ScrapeMode) -> ExtractedContent:
        """
        Pull content from a loaded page according to mode (HTML first in ALL).

        Raises:
            ExtractionFailedError: If the page is not ready or extraction fails
        """
        if handle.state is not PageState.IDLE_WAIT:
            raise ExtractionFailedError(
                f"Page is not ready for extraction (state: {handle.state.value})"
            )

        content = ExtractedContent()
        try:
            content.title = await handle.page.title()
            if mode.wants_html:
                content.html = await handle.page.content()
            if mode.wants_screenshot:
                content.screenshot = await handle.page.screenshot(
                    type="png", full_page=True
                )
        except Exception as e:
            handle.state = PageState.FAILED
            logfire.warn(
                "Extraction failed",
                url=handle.url,
                mode=mode.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise ExtractionFailedError(f"Failed to extract {mode.value}: {e}") from e

        handle.state = PageState.EXTRACTED
        logfire.info(
            "Page content extracted",
            url=handle.url,
            mode=mode.value,
            html_length=len(content.html) if content.html is not None else None,
            screenshot_size=(
                len(content.screenshot) if content.screenshot is not None else None
            ),
        )
        return content


def get_navigation_driver() -> NavigationDriver:
    """Build the navigation driver from settings."""
    settings = get_settings()
    return NavigationDriver(
        idle_ceiling_ms=settings.network_idle_ceiling_ms,
        navigation_timeout=settings.navigation_timeout_seconds,
    )
