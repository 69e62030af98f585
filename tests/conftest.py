"""Shared pytest fixtures and configuration.

Fixture Categories:
1. Infrastructure: mock_settings, mock_logfire, logfire_capture, respx_mock,
   mock_supabase_client, test_client
2. Orchestration: fake_pool, artifact_store, metadata_recorder and
   fake_orchestrator wiring the in-memory fakes from tests/fakes.py together
3. Queue: make_message building QueueMessage instances on a mock queue
"""

import os

os.environ.setdefault("LOGFIRE_IGNORE_NO_CONFIG", "1")

from contextlib import contextmanager
from unittest.mock import AsyncMock, MagicMock, Mock, patch

import logfire
import pytest
import respx

from src.models.scrape_models import ActiveSession
from src.services.navigation import NavigationDriver
from src.services.scrape_orchestrator import ScrapeOrchestrator
from src.services.scrape_queue import QueueMessage
from tests.fakes import FakeBrowserPool, InMemoryArtifactStore, InMemoryMetadataRecorder

# Modules that read settings through their own `get_settings` binding
_SETTINGS_CONSUMERS = [
    "src.config",
    "src.main",
    "src.worker",
    "src.logging_config",
    "src.api.scrape",
    "src.db.client",
    "src.db.repository",
    "src.services.browser_pool",
    "src.services.navigation",
    "src.services.artifact_store",
    "src.services.batch_consumer",
    "src.services.scrape_queue",
]


# =============================================================================
# Infrastructure
# =============================================================================


@pytest.fixture
def mock_settings(monkeypatch):
    """Mock application settings."""
    from src.config import Settings

    settings = Settings(
        api_token="test-api-token",
        supabase_url="https://test.supabase.co",
        supabase_service_key="test-service-key",
        browser_service_url="https://browser.test",
        env="local",
        logfire_token=None,
        sentry_dsn=None,
    )

    for module in _SETTINGS_CONSUMERS:
        monkeypatch.setattr(f"{module}.get_settings", lambda: settings)
    return settings


@pytest.fixture
def mock_logfire(monkeypatch):
    """
    Mock Logfire for testing without actual logging.

    Patches the attributes on the logfire module itself so every
    ``import logfire`` in src sees the mocks.
    """

    @contextmanager
    def mock_span(*args, **kwargs):
        yield {}

    mock_logfire_module = MagicMock()
    mock_logfire_module.info = Mock()
    mock_logfire_module.warn = Mock()
    mock_logfire_module.warning = Mock()
    mock_logfire_module.error = Mock()
    mock_logfire_module.span = mock_span
    mock_logfire_module.configure = Mock()
    mock_logfire_module.instrument_fastapi = Mock()
    mock_logfire_module.instrument_pydantic = Mock()

    for attr in [
        "info",
        "warn",
        "warning",
        "error",
        "span",
        "configure",
        "instrument_fastapi",
        "instrument_pydantic",
    ]:
        monkeypatch.setattr(logfire, attr, getattr(mock_logfire_module, attr))

    return mock_logfire_module


@pytest.fixture
def logfire_capture():
    """
    Capture Logfire logs for testing.

    Yields a list of (level, args, kwargs) tuples.
    """
    captured_logs = []

    def capture(level):
        def _capture(*args, **kwargs):
            captured_logs.append((level, args, kwargs))

        return _capture

    with (
        patch("logfire.info", side_effect=capture("info")),
        patch("logfire.warn", side_effect=capture("warn")),
        patch("logfire.error", side_effect=capture("error")),
    ):
        yield captured_logs


@pytest.fixture
def respx_mock():
    """Respx mock fixture for HTTP mocking."""
    with respx.mock(assert_all_called=False) as mock:
        yield mock


@pytest.fixture
def mock_supabase_client():
    """Mock Supabase client covering table, storage and queue RPC chains."""
    client = MagicMock()

    # Chain: table().upsert().execute() and table().select().eq().limit().execute()
    table_mock = MagicMock()
    upsert_execute = MagicMock()
    upsert_execute.data = []
    table_mock.upsert.return_value.execute.return_value = upsert_execute
    select_execute = MagicMock()
    select_execute.data = []
    table_mock.select.return_value.eq.return_value.limit.return_value.execute.return_value = (
        select_execute
    )
    client.table.return_value = table_mock

    # Chain: storage.from_(bucket).upload(...)
    bucket_mock = MagicMock()
    bucket_mock.upload.return_value = MagicMock(path="uploaded")
    client.storage.from_.return_value = bucket_mock

    # Chain: schema("pgmq_public").rpc(fn, params).execute()
    rpc_execute = MagicMock()
    rpc_execute.data = []
    client.schema.return_value.rpc.return_value.execute.return_value = rpc_execute

    return client


@pytest.fixture
def test_client(mock_settings, mock_logfire):
    """FastAPI TestClient for E2E tests."""
    from fastapi.testclient import TestClient
    from src.main import app

    return TestClient(app)


@pytest.fixture
def auth_headers(mock_settings):
    """Authorization header carrying the configured API token."""
    return {"Authorization": f"Bearer {mock_settings.api_token}"}


# =============================================================================
# Orchestration
# =============================================================================


@pytest.fixture
def fake_pool():
    """Browser pool with one vacant and one busy session."""
    return FakeBrowserPool(
        sessions=[
            ActiveSession(session_id="vacant-1"),
            ActiveSession(session_id="busy-1", connection_id="conn-1"),
        ]
    )


@pytest.fixture
def artifact_store():
    return InMemoryArtifactStore()


@pytest.fixture
def metadata_recorder():
    return InMemoryMetadataRecorder()


@pytest.fixture
def fake_orchestrator(mock_logfire, fake_pool, artifact_store, metadata_recorder):
    """ScrapeOrchestrator wired to in-memory fakes."""
    return ScrapeOrchestrator(
        pool=fake_pool,
        driver=NavigationDriver(idle_ceiling_ms=2000),
        artifact_store=artifact_store,
        metadata_recorder=metadata_recorder,
    )


# =============================================================================
# Queue
# =============================================================================


@pytest.fixture
def mock_queue():
    """Mock ScrapeQueue backing QueueMessage ack/dead-letter calls."""
    queue = MagicMock()
    queue.send = AsyncMock(return_value=1)
    queue.receive = AsyncMock(return_value=[])
    queue.delete = AsyncMock()
    queue.archive = AsyncMock()
    return queue


@pytest.fixture
def make_message(mock_queue):
    """Factory for QueueMessage instances on mock_queue."""

    def _make(message_id: int, body, attempts: int = 1) -> QueueMessage:
        return QueueMessage(
            message_id=message_id, attempts=attempts, body=body, queue=mock_queue
        )

    return _make
