"""End-to-end scrape orchestration.

A scrape attempt runs strictly in sequence:
1. Canonicalize the URL and derive the storage key
2. Acquire a browser session (reuse a vacant one or provision)
3. Navigate to network idle and extract content
4. Store each artifact
5. Upsert the page metadata
6. Release the session

The session is released exactly once on every exit path. The orchestrator
never retries; one call is one attempt against one session.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

import logfire

from src.models.scrape_models import (
    BrowserSession,
    ScrapeOutcome,
    ScrapeRequest,
    StorageKey,
)
from src.services.artifact_store import ArtifactStore, SupabaseArtifactStore
from src.services.browser_pool import BrowserPool, acquire_session, get_browser_pool
from src.services.metadata_recorder import MetadataRecorder, SupabaseMetadataRecorder
from src.services.navigation import NavigationDriver, get_navigation_driver
from src.services.scrape_errors import (
    InvalidScrapeRequestError,
    StorageFailedError,
)
from src.services.storage_key import CanonicalURL, canonicalize_url, derive_storage_key


class ScrapeOrchestrator:
    """Compose session pool, navigation, artifact store and metadata recorder.

    All collaborators are injected so tests can substitute fakes for the
    remote browser pool and both stores.

    Example:
        >>> orchestrator = ScrapeOrchestrator(pool=get_browser_pool())
        >>> outcome = await orchestrator.scrape(ScrapeRequest(url="https://example.com"))
    """

    def __init__(
        self,
        pool: BrowserPool,
        driver: NavigationDriver | None = None,
        artifact_store: ArtifactStore | None = None,
        metadata_recorder: MetadataRecorder | None = None,
    ):
        self._pool = pool
        self._driver = driver or NavigationDriver()
        self._artifact_store = artifact_store or SupabaseArtifactStore()
        self._metadata_recorder = metadata_recorder or SupabaseMetadataRecorder()

    async def acquire(self) -> BrowserSession:
        """Acquire a session; the caller must hand it back to release()."""
        return await acquire_session(self._pool)

    @asynccontextmanager
    async def session_scope(self) -> AsyncIterator[BrowserSession]:
        """Acquire a session and guarantee its release when the block exits."""
        session = await self.acquire()
        try:
            yield session
        finally:
            await self.release(session)

    async def release(self, session: BrowserSession) -> None:
        """Release a session; failures are logged, never raised."""
        try:
            await self._pool.release(session)
        except Exception as e:
            logfire.warn(
                "Failed to release browser session",
                session_id=session.id,
                error=str(e),
                error_type=type(e).__name__,
            )

    async def scrape(self, request: ScrapeRequest) -> ScrapeOutcome:
        """
        Run one complete scrape attempt on its own session.

        Raises:
            ScrapeError: Subclass identifying the failed stage
        """
        target, key = self._prepare(request)
        async with self.session_scope() as session:
            return await self._run(request, target, key, session)

    async def scrape_with_session(
        self, request: ScrapeRequest, session: BrowserSession
    ) -> ScrapeOutcome:
        """
        Run a scrape attempt on a session owned by the caller.

        Used by the batch consumer, which shares one session across a batch
        and releases it itself.
        """
        target, key = self._prepare(request)
        return await self._run(request, target, key, session)

    def _prepare(self, request: ScrapeRequest) -> tuple[CanonicalURL, StorageKey]:
        try:
            target = canonicalize_url(request.url)
        except ValueError as e:
            raise InvalidScrapeRequestError(str(e)) from e
        return target, derive_storage_key(target.domain, target.url)

    async def _run(
        self,
        request: ScrapeRequest,
        target: CanonicalURL,
        key: StorageKey,
        session: BrowserSession,
    ) -> ScrapeOutcome:
        with logfire.span(
            "scrape {url}",
            url=target.url,
            storage_key=str(key),
            mode=request.mode.value,
            session_id=session.id,
        ):
            page = await self._driver.navigate(
                session,
                request.url,
                request.idle_window_ms,
                language=request.language,
            )
            try:
                content = await self._driver.extract(page, request.mode)
            finally:
                await page.close()

            persisted: list[str] = []
            for kind, data in content.artifacts():
                try:
                    result = await self._artifact_store.store(key, kind, data)
                except StorageFailedError as e:
                    if persisted:
                        # All-or-nothing: earlier artifacts stay without a metadata row
                        logfire.warn(
                            "Artifact stored without metadata",
                            url=target.url,
                            persisted=persisted,
                        )
                    e.persisted = persisted + e.persisted
                    raise
                persisted.append(result.path)

            await self._metadata_recorder.upsert(target.url, key, request.language)

        logfire.info(
            "Page scraped",
            url=target.url,
            storage_key=str(key),
            artifacts=persisted,
        )
        return ScrapeOutcome(
            url=target.url,
            storage_key=str(key),
            title=content.title,
            artifacts=persisted,
        )


_scrape_orchestrator: ScrapeOrchestrator | None = None


def get_scrape_orchestrator() -> ScrapeOrchestrator:
    """Get or create the global orchestrator wired to the remote services."""
    global _scrape_orchestrator
    if _scrape_orchestrator is None:
        _scrape_orchestrator = ScrapeOrchestrator(
            pool=get_browser_pool(),
            driver=get_navigation_driver(),
        )
    return _scrape_orchestrator


def reset_scrape_orchestrator() -> None:
    """Reset the global orchestrator (primarily for testing)."""
    global _scrape_orchestrator
    _scrape_orchestrator = None
