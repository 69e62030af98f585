"""Batch consumption of queued scrape requests.

One browser session is acquired for the whole batch and shared by every
message in it, then released once after the batch, whatever the per-message
outcomes. Each message is acknowledged on success and left for redelivery
on failure; redelivery timing belongs to the queue.
"""

from dataclasses import dataclass, field
from typing import Sequence

import logfire

from src.config import get_settings
from src.models.scrape_models import BrowserSession, ScrapeRequest
from src.services.scrape_errors import NavigationFailedError, ScrapeError
from src.services.scrape_orchestrator import ScrapeOrchestrator
from src.services.scrape_queue import QueueMessage


@dataclass
class BatchResult:
    """Message ids by outcome for one consumed batch."""

    acked: list[int] = field(default_factory=list)
    retried: list[int] = field(default_factory=list)
    dead_lettered: list[int] = field(default_factory=list)


async def _retry(message: QueueMessage, result: BatchResult) -> None:
    try:
        await message.retry()
    except Exception as e:
        logfire.warn(
            "Failed to signal retry",
            message_id=message.message_id,
            error=str(e),
        )
    result.retried.append(message.message_id)


async def _dead_letter(message: QueueMessage, result: BatchResult) -> None:
    try:
        await message.dead_letter()
    except Exception as e:
        # Still unarchived; it comes back after the visibility timeout
        logfire.error(
            "Failed to dead-letter message",
            message_id=message.message_id,
            error=str(e),
            error_type=type(e).__name__,
        )
        result.retried.append(message.message_id)
        return
    result.dead_lettered.append(message.message_id)


async def consume_batch(
    messages: Sequence[QueueMessage],
    orchestrator: ScrapeOrchestrator,
    *,
    max_retries: int | None = None,
    reacquire_on_navigation_failure: bool | None = None,
) -> BatchResult:
    """
    Scrape every message of a batch on one shared browser session.

    Args:
        messages: Received queue messages
        orchestrator: Orchestrator providing sessions and the scrape body
        max_retries: Redeliveries allowed before a message is dead-lettered
            (defaults to settings.queue_max_retries)
        reacquire_on_navigation_failure: Swap the shared session once after
            the first navigation failure in the batch
            (defaults to settings.batch_reacquire_on_navigation_failure)

    Returns:
        BatchResult with acknowledged, retried and dead-lettered message ids
    """
    settings = get_settings()
    if max_retries is None:
        max_retries = settings.queue_max_retries
    if reacquire_on_navigation_failure is None:
        reacquire_on_navigation_failure = settings.batch_reacquire_on_navigation_failure

    result = BatchResult()
    logfire.info("Consuming queue", batch_size=len(messages))

    pending: list[QueueMessage] = []
    for message in messages:
        if message.attempts > max_retries + 1:
            logfire.warn(
                "Message exceeded retries, dead-lettering",
                message_id=message.message_id,
                attempts=message.attempts,
                max_retries=max_retries,
            )
            await _dead_letter(message, result)
        else:
            pending.append(message)

    if not pending:
        return result

    try:
        session: BrowserSession | None = await orchestrator.acquire()
    except ScrapeError as e:
        logfire.error(
            "No browser session for batch",
            batch_size=len(pending),
            error=str(e),
        )
        for message in pending:
            await _retry(message, result)
        return result

    reacquired = False
    try:
        for index, message in enumerate(pending):
            if session is None:
                await _retry(message, result)
                continue

            try:
                request = ScrapeRequest.model_validate(message.body)
                outcome = await orchestrator.scrape_with_session(request, session)
            except Exception as e:
                logfire.warn(
                    "Failed to scrape page",
                    message_id=message.message_id,
                    attempts=message.attempts,
                    stage=getattr(e, "stage", "validation"),
                    error=str(e),
                    error_type=type(e).__name__,
                )
                await _retry(message, result)

                remaining = len(pending) - index - 1
                if (
                    reacquire_on_navigation_failure
                    and not reacquired
                    and remaining
                    and isinstance(e, NavigationFailedError)
                ):
                    reacquired = True
                    logfire.info(
                        "Replacing batch session after navigation failure",
                        session_id=session.id,
                    )
                    await orchestrator.release(session)
                    session = None
                    try:
                        session = await orchestrator.acquire()
                    except ScrapeError as acquire_error:
                        logfire.error(
                            "Failed to replace batch session",
                            error=str(acquire_error),
                        )
                continue

            try:
                await message.ack()
            except Exception as e:
                # Unacknowledged messages are redelivered; re-scraping is idempotent
                logfire.warn(
                    "Failed to acknowledge message",
                    message_id=message.message_id,
                    error=str(e),
                )
            result.acked.append(message.message_id)
            logfire.info(
                "Queued page scraped",
                message_id=message.message_id,
                storage_key=outcome.storage_key,
            )
    finally:
        if session is not None:
            await orchestrator.release(session)

    logfire.info(
        "Batch consumed",
        acked=len(result.acked),
        retried=len(result.retried),
        dead_lettered=len(result.dead_lettered),
    )
    return result
