"""Queue worker: pulls scrape requests in batches and processes them.

Usage:
    python -m src.worker
"""

import asyncio
import signal

import logfire
import sentry_sdk

from src.config import get_settings
from src.logging_config import setup_logfire
from src.services.batch_consumer import BatchResult, consume_batch
from src.services.scrape_orchestrator import ScrapeOrchestrator, get_scrape_orchestrator
from src.services.scrape_queue import ScrapeQueue, get_scrape_queue


async def poll_once(queue: ScrapeQueue, orchestrator: ScrapeOrchestrator) -> BatchResult | None:
    """Receive one batch and consume it; None when the queue was empty."""
    settings = get_settings()
    messages = await queue.receive(
        settings.queue_max_batch_size, settings.queue_visibility_timeout_seconds
    )
    if not messages:
        return None
    return await consume_batch(messages, orchestrator)


async def run_worker(
    queue: ScrapeQueue | None = None,
    orchestrator: ScrapeOrchestrator | None = None,
    shutdown_event: asyncio.Event | None = None,
) -> None:
    """
    Consume batches until shutdown_event is set.

    SIGTERM/SIGINT set the event; the batch in progress finishes first.
    """
    settings = get_settings()
    queue = queue or get_scrape_queue()
    orchestrator = orchestrator or get_scrape_orchestrator()
    shutdown_event = shutdown_event or asyncio.Event()

    loop = asyncio.get_running_loop()

    def signal_handler(sig_name: str):
        logfire.info("Received shutdown signal, stopping after current batch", signal=sig_name)
        shutdown_event.set()

    try:
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, lambda s=sig: signal_handler(s.name))
    except (NotImplementedError, RuntimeError):
        # Windows, or not running in the main thread
        logfire.warning("Signal handlers not supported, graceful shutdown unavailable")

    logfire.info(
        "Queue worker started",
        queue=settings.scrape_queue_name,
        batch_size=settings.queue_max_batch_size,
    )

    while not shutdown_event.is_set():
        try:
            batch = await poll_once(queue, orchestrator)
        except Exception as e:
            logfire.error(
                "Queue poll failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            batch = None

        if batch is None:
            try:
                await asyncio.wait_for(
                    shutdown_event.wait(), timeout=settings.queue_poll_interval_seconds
                )
            except asyncio.TimeoutError:
                pass

    logfire.info("Queue worker stopped")


def main() -> None:
    """Configure observability and run the worker until signalled."""
    settings = get_settings()
    setup_logfire(service_name="webpage-scraper-worker")
    if settings.sentry_dsn:
        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            traces_sample_rate=settings.sentry_traces_sample_rate,
            environment=settings.env,
        )
    asyncio.run(run_worker())


if __name__ == "__main__":
    main()
