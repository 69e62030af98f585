"""Tests for the queue worker loop."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.services.batch_consumer import BatchResult
from src.worker import main, poll_once, run_worker


class TestPollOnce:
    @pytest.mark.asyncio
    async def test_empty_queue_returns_none(self, mock_settings, mock_logfire, mock_queue):
        orchestrator = MagicMock()

        assert await poll_once(mock_queue, orchestrator) is None

        mock_queue.receive.assert_awaited_once_with(10, 300)

    @pytest.mark.asyncio
    async def test_batch_is_consumed(
        self, mock_settings, mock_logfire, mock_queue, make_message
    ):
        messages = [make_message(1, {"url": "https://example.com"})]
        mock_queue.receive.return_value = messages
        orchestrator = MagicMock()
        expected = BatchResult(acked=[1])

        with patch(
            "src.worker.consume_batch", new=AsyncMock(return_value=expected)
        ) as mock_consume:
            result = await poll_once(mock_queue, orchestrator)

        assert result is expected
        mock_consume.assert_awaited_once_with(messages, orchestrator)


class TestRunWorker:
    @pytest.mark.asyncio
    async def test_stops_when_shutdown_set(self, mock_settings, mock_logfire, mock_queue):
        mock_settings.queue_poll_interval_seconds = 0.01
        shutdown = asyncio.Event()

        async def receive(*args):
            shutdown.set()
            return []

        mock_queue.receive.side_effect = receive

        await asyncio.wait_for(
            run_worker(queue=mock_queue, orchestrator=MagicMock(), shutdown_event=shutdown),
            timeout=2,
        )

        mock_queue.receive.assert_awaited_once()
        mock_logfire.info.assert_any_call("Queue worker stopped")

    @pytest.mark.asyncio
    async def test_poll_failure_is_logged_and_loop_continues(
        self, mock_settings, mock_logfire, mock_queue
    ):
        mock_settings.queue_poll_interval_seconds = 0.01
        shutdown = asyncio.Event()
        calls = 0

        async def receive(*args):
            nonlocal calls
            calls += 1
            if calls == 1:
                raise RuntimeError("connection reset")
            shutdown.set()
            return []

        mock_queue.receive.side_effect = receive

        await asyncio.wait_for(
            run_worker(queue=mock_queue, orchestrator=MagicMock(), shutdown_event=shutdown),
            timeout=2,
        )

        assert calls == 2
        assert mock_logfire.error.call_args[0][0] == "Queue poll failed"
        assert mock_logfire.error.call_args[1]["error_type"] == "RuntimeError"


def test_main_initializes_observability(mock_settings, mock_logfire):
    mock_settings.sentry_dsn = "https://key@sentry.test/1"

    with (
        patch("src.worker.setup_logfire") as mock_setup,
        patch("src.worker.sentry_sdk.init") as mock_sentry,
        patch("src.worker.asyncio.run") as mock_run,
        patch("src.worker.run_worker", new=MagicMock(return_value="coro")),
    ):
        main()

    mock_setup.assert_called_once_with(service_name="webpage-scraper-worker")
    assert mock_sentry.call_args[1]["dsn"] == "https://key@sentry.test/1"
    mock_run.assert_called_once_with("coro")
