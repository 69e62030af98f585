"""Remote browser session pool.

This module provides:
- BrowserPool: Protocol for the remote browser capability
  (list / attach / provision / release)
- RemoteBrowserPool: implementation over an HTTP session API plus
  Playwright's CDP connection
- acquire_session: reuse a vacant session or provision a new one

The pool is shared with other processes and its size is unknown. A session
with an active connection belongs to someone else and is never attached.
"""

import random
import time
from typing import Protocol
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx
import logfire
from playwright.async_api import async_playwright

from src.config import get_settings
from src.constants import BROWSER_REQUEST_TIMEOUT_SECONDS
from src.models.scrape_models import ActiveSession, BrowserSession
from src.services.scrape_errors import SessionUnavailableError


class BrowserPool(Protocol):
    """Protocol for the remote browser session pool."""

    async def list_sessions(self) -> list[ActiveSession]:
        """List every session currently known to the pool."""
        ...

    async def attach(self, session_id: str) -> BrowserSession:
        """Connect to an existing session.

        Raises:
            Exception: If the session cannot be attached (e.g. taken by
                another holder in the meantime)
        """
        ...

    async def provision(self) -> BrowserSession:
        """Start a brand-new session and connect to it."""
        ...

    async def release(self, session: BrowserSession) -> None:
        """Disconnect from a session, leaving it running for reuse."""
        ...


class RemoteBrowserPool:
    """Browser pool backed by a remote browser service.

    Session management goes over HTTP:
    - GET  {service_url}/sessions -> [{"sessionId": ..., "connectionId": ...}]
    - POST {service_url}/sessions -> {"sessionId": ...}

    Page automation goes over CDP at ``{ws_url}?sessionId=<id>``.
    """

    def __init__(
        self,
        service_url: str,
        ws_url: str,
        api_token: str | None = None,
        timeout: float = BROWSER_REQUEST_TIMEOUT_SECONDS,
    ):
        """Initialize the pool client.

        Args:
            service_url: HTTP base URL of the browser service
            ws_url: CDP websocket endpoint of the browser service
            api_token: Optional bearer token for the service
            timeout: Timeout for HTTP calls and CDP connects (seconds)
        """
        self.service_url = service_url.rstrip("/")
        self.ws_url = ws_url
        self._timeout = timeout
        self._headers = {"Authorization": f"Bearer {api_token}"} if api_token else {}

    async def list_sessions(self) -> list[ActiveSession]:
        start_time = time.time()
        async with httpx.AsyncClient(
            timeout=self._timeout, headers=self._headers
        ) as client:
            response = await client.get(f"{self.service_url}/sessions")
            response.raise_for_status()
            payload = response.json()

        # Accept both a bare list and {"sessions": [...]}
        if isinstance(payload, dict):
            payload = payload.get("sessions", [])
        sessions = [
            ActiveSession(
                session_id=item["sessionId"],
                connection_id=item.get("connectionId"),
            )
            for item in payload
        ]
        logfire.info(
            "Current active sessions",
            session_ids=[s.session_id for s in sessions],
            response_time_ms=(time.time() - start_time) * 1000,
        )
        return sessions

    async def provision(self) -> BrowserSession:
        async with httpx.AsyncClient(
            timeout=self._timeout, headers=self._headers
        ) as client:
            response = await client.post(f"{self.service_url}/sessions")
            response.raise_for_status()
            session_id = response.json()["sessionId"]

        logfire.info("Provisioned browser session", session_id=session_id)
        return await self.attach(session_id)

    async def attach(self, session_id: str) -> BrowserSession:
        driver = await async_playwright().start()
        try:
            browser = await driver.chromium.connect_over_cdp(
                self.cdp_endpoint(session_id),
                timeout=self._timeout * 1000,
                headers=self._headers or None,
            )
        except Exception:
            await driver.stop()
            raise

        logfire.info("Connected to browser session", session_id=session_id)
        return BrowserSession(
            id=session_id, connected=True, browser=browser, driver=driver
        )

    async def release(self, session: BrowserSession) -> None:
        if not session.connected:
            return
        session.connected = False
        try:
            if session.browser is not None:
                # For CDP connections close() only disconnects this client
                await session.browser.close()
        finally:
            if session.driver is not None:
                await session.driver.stop()
        logfire.info("Disconnected from browser session", session_id=session.id)

    def cdp_endpoint(self, session_id: str) -> str:
        """CDP websocket URL for a session, keeping any existing query params."""
        parts = urlsplit(self.ws_url)
        query = parse_qsl(parts.query, keep_blank_values=True)
        query.append(("sessionId", session_id))
        return urlunsplit(
            (parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment)
        )


async def acquire_session(pool: BrowserPool) -> BrowserSession:
    """
    Get a browser session for exclusive use by the caller.

    Picks a random session without an active connection and attaches to
    it. If there is none, or attaching fails (another caller may have won
    the race for it), a new session is provisioned instead.

    Args:
        pool: Browser pool to acquire from

    Returns:
        A connected BrowserSession, owned by the caller until released

    Raises:
        SessionUnavailableError: If listing or provisioning fails
    """
    try:
        sessions = await pool.list_sessions()
    except Exception as e:
        logfire.error(
            "Failed to list browser sessions",
            error=str(e),
            error_type=type(e).__name__,
        )
        raise SessionUnavailableError(f"Failed to list browser sessions: {e}") from e

    vacant_ids = [s.session_id for s in sessions if not s.is_connected]

    if vacant_ids:
        session_id = random.choice(vacant_ids)
        logfire.info(
            "Connecting to session",
            session_id=session_id,
            vacant_count=len(vacant_ids),
        )
        try:
            return await pool.attach(session_id)
        except Exception as e:
            logfire.warn(
                "Failed to connect to session, launching a new one",
                session_id=session_id,
                error=str(e),
                error_type=type(e).__name__,
            )
    else:
        logfire.info("No available sessions", known_count=len(sessions))

    logfire.info("Launching new browser session")
    try:
        return await pool.provision()
    except Exception as e:
        logfire.error(
            "Failed to launch browser session",
            error=str(e),
            error_type=type(e).__name__,
        )
        raise SessionUnavailableError(f"Failed to launch browser: {e}") from e


def get_browser_pool() -> RemoteBrowserPool:
    """Build the browser pool from settings."""
    settings = get_settings()
    return RemoteBrowserPool(
        service_url=settings.browser_service_url,
        ws_url=settings.resolved_browser_ws_url,
        api_token=settings.browser_api_token,
        timeout=settings.browser_request_timeout_seconds,
    )
