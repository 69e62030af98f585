"""In-memory fakes for the remote browser service and Supabase stores.

They implement the same Protocols as the real services so the orchestrator,
batch consumer and HTTP layer can be exercised without any network.
"""

from types import SimpleNamespace

from src.models.scrape_models import (
    ActiveSession,
    ArtifactKind,
    BrowserSession,
    PageMetadataRecord,
    StorageKey,
    StoreResult,
)
from src.services.scrape_errors import MetadataFailedError, StorageFailedError

SAMPLE_HTML = "<html><head><title>Example Domain</title></head><body>Hi</body></html>"
SAMPLE_PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


class FakePage:
    """Playwright page stand-in.

    goto() fires a request/requestfinished pair for the document, so the
    network goes idle right after navigation unless ``hang_requests`` is set.
    """

    def __init__(
        self,
        status: int | None = 200,
        html: str = SAMPLE_HTML,
        title: str = "Example Domain",
        screenshot: bytes = SAMPLE_PNG,
        goto_error: Exception | None = None,
        content_error: Exception | None = None,
        screenshot_error: Exception | None = None,
        hang_requests: bool = False,
    ):
        self.status = status
        self.html = html
        self._title = title
        self._screenshot = screenshot
        self.goto_error = goto_error
        self.content_error = content_error
        self.screenshot_error = screenshot_error
        self.hang_requests = hang_requests
        self.handlers: dict[str, list] = {}
        self.goto_calls: list[tuple[str, dict]] = []
        self.screenshot_calls: list[dict] = []

    def on(self, event, handler):
        self.handlers.setdefault(event, []).append(handler)

    def emit(self, event, request):
        for handler in self.handlers.get(event, []):
            handler(request)

    async def goto(self, url, **kwargs):
        self.goto_calls.append((url, kwargs))
        if self.goto_error is not None:
            raise self.goto_error
        document = object()
        self.emit("request", document)
        if self.hang_requests:
            self.emit("request", object())
        self.emit("requestfinished", document)
        if self.status is None:
            return None
        return SimpleNamespace(status=self.status)

    async def title(self):
        return self._title

    async def content(self):
        if self.content_error is not None:
            raise self.content_error
        return self.html

    async def screenshot(self, **kwargs):
        self.screenshot_calls.append(kwargs)
        if self.screenshot_error is not None:
            raise self.screenshot_error
        return self._screenshot


class FakeContext:
    def __init__(self, page: FakePage):
        self.page = page
        self.closed = False

    async def new_page(self):
        return self.page

    async def close(self):
        self.closed = True


class FakeBrowser:
    """Connected browser stand-in; each new_context() wraps a fresh FakePage."""

    def __init__(self, page_factory=FakePage):
        self.page_factory = page_factory
        self.contexts: list[FakeContext] = []
        self.context_kwargs: list[dict] = []
        self.closed = False

    async def new_context(self, **kwargs):
        self.context_kwargs.append(kwargs)
        context = FakeContext(self.page_factory())
        self.contexts.append(context)
        return context

    async def close(self):
        self.closed = True


class FakeBrowserPool:
    """In-memory BrowserPool that counts attach, provision and release calls."""

    def __init__(
        self,
        sessions: list[ActiveSession] | None = None,
        page_factory=FakePage,
        list_error: Exception | None = None,
        attach_error: Exception | None = None,
        provision_error: Exception | None = None,
    ):
        self.sessions = list(sessions or [])
        self.page_factory = page_factory
        self.list_error = list_error
        self.attach_error = attach_error
        self.provision_error = provision_error
        self.attached: list[str] = []
        self.provisioned: list[str] = []
        self.released: list[str] = []

    async def list_sessions(self):
        if self.list_error is not None:
            raise self.list_error
        return list(self.sessions)

    def _session(self, session_id: str) -> BrowserSession:
        return BrowserSession(
            id=session_id, browser=FakeBrowser(self.page_factory)
        )

    async def attach(self, session_id):
        if self.attach_error is not None:
            raise self.attach_error
        self.attached.append(session_id)
        return self._session(session_id)

    async def provision(self):
        if self.provision_error is not None:
            raise self.provision_error
        session_id = f"new-{len(self.provisioned) + 1}"
        self.provisioned.append(session_id)
        return self._session(session_id)

    async def release(self, session):
        self.released.append(session.id)
        session.connected = False

    @property
    def acquired(self) -> int:
        return len(self.attached) + len(self.provisioned)


class InMemoryArtifactStore:
    """ArtifactStore keeping objects in a dict keyed by (kind, path)."""

    def __init__(self, fail_on: set[ArtifactKind] | None = None):
        self.objects: dict[tuple[ArtifactKind, str], bytes] = {}
        self.fail_on = fail_on or set()
        self.writes = 0

    async def store(self, key: StorageKey, kind: ArtifactKind, data: bytes):
        path = key.with_suffix(kind.suffix)
        if kind in self.fail_on:
            raise StorageFailedError(f"Failed to save {kind.value} to {path}")
        self.writes += 1
        self.objects[(kind, path)] = data
        return StoreResult(path=path, size=len(data), accepted=True)


class InMemoryMetadataRecorder:
    """MetadataRecorder keeping one row per URL."""

    def __init__(self, fail: bool = False):
        self.rows: dict[str, PageMetadataRecord] = {}
        self.fail = fail
        self.upserts = 0

    async def upsert(self, canonical_url: str, key: StorageKey, language: str):
        if self.fail:
            raise MetadataFailedError(f"Failed to save page metadata for {canonical_url}")
        self.upserts += 1
        existing = self.rows.get(canonical_url)
        record = PageMetadataRecord(
            id=existing.id if existing else len(self.rows) + 1,
            url=canonical_url,
            storage_key=str(key),
            lang=language,
        )
        self.rows[canonical_url] = record
        return record

