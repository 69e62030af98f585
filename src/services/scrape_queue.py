"""Scrape request queue over Supabase Queues (pgmq).

Uses the ``pgmq_public`` RPC wrappers:
- send: enqueue a request
- read: receive a batch and hide it for a visibility timeout
- delete: acknowledge a processed message
- archive: move a message out of the queue for good (dead letter)

A message that is neither deleted nor archived becomes visible again once
its visibility timeout lapses; that is the queue's redelivery policy.
"""

import asyncio
from typing import Any, Protocol

import logfire

from src.config import get_settings
from src.constants import PGMQ_PUBLIC_SCHEMA
from src.db.client import get_supabase_client
from src.db.query_executor import timed_query
from src.models.scrape_models import ScrapeRequest


class QueueMessage:
    """A received message with acknowledge/retry signalling."""

    def __init__(
        self,
        message_id: int,
        attempts: int,
        body: Any,
        queue: "ScrapeQueue",
    ):
        self.message_id = message_id
        self.attempts = attempts
        self.body = body
        self._queue = queue

    def __repr__(self) -> str:
        return f"QueueMessage(message_id={self.message_id}, attempts={self.attempts})"

    async def ack(self) -> None:
        """Mark the message as processed."""
        await self._queue.delete(self.message_id)

    async def retry(self) -> None:
        """Leave the message for redelivery after its visibility timeout."""
        logfire.info(
            "Message left for redelivery",
            message_id=self.message_id,
            attempts=self.attempts,
        )

    async def dead_letter(self) -> None:
        """Move the message out of the queue without processing it again."""
        await self._queue.archive(self.message_id)


class ScrapeQueue(Protocol):
    """Protocol for the scrape request queue."""

    async def send(self, request: ScrapeRequest) -> int:
        """Enqueue a request and return its message id."""
        ...

    async def receive(
        self, max_messages: int, visibility_timeout_seconds: int
    ) -> list[QueueMessage]:
        """Receive up to max_messages, hiding them for the visibility timeout."""
        ...

    async def delete(self, message_id: int) -> None:
        ...

    async def archive(self, message_id: int) -> None:
        ...


class SupabaseScrapeQueue:
    """ScrapeQueue implementation on Supabase Queues."""

    def __init__(self, queue_name: str | None = None, client=None):
        self.queue_name = queue_name or get_settings().scrape_queue_name
        self._client = client

    def _rpc(self, function: str, params: dict[str, Any]) -> Any:
        client = self._client or get_supabase_client()
        with timed_query(f"queue_{function}", queue=self.queue_name):
            result = client.schema(PGMQ_PUBLIC_SCHEMA).rpc(function, params).execute()
        return result.data

    async def send(self, request: ScrapeRequest) -> int:
        data = await asyncio.to_thread(
            self._rpc,
            "send",
            {
                "queue_name": self.queue_name,
                "message": request.to_message(),
                "sleep_seconds": 0,
            },
        )
        message_id = data[0] if isinstance(data, list) else data
        logfire.info(
            "Scrape request enqueued",
            queue=self.queue_name,
            message_id=message_id,
            url=request.url,
        )
        return message_id

    async def receive(
        self, max_messages: int, visibility_timeout_seconds: int
    ) -> list[QueueMessage]:
        rows = await asyncio.to_thread(
            self._rpc,
            "read",
            {
                "queue_name": self.queue_name,
                "sleep_seconds": visibility_timeout_seconds,
                "n": max_messages,
            },
        )
        return [
            QueueMessage(
                message_id=row["msg_id"],
                attempts=row.get("read_ct", 1),
                body=row.get("message"),
                queue=self,
            )
            for row in rows or []
        ]

    async def delete(self, message_id: int) -> None:
        await asyncio.to_thread(
            self._rpc,
            "delete",
            {"queue_name": self.queue_name, "message_id": message_id},
        )

    async def archive(self, message_id: int) -> None:
        await asyncio.to_thread(
            self._rpc,
            "archive",
            {"queue_name": self.queue_name, "message_id": message_id},
        )


_scrape_queue: SupabaseScrapeQueue | None = None


def get_scrape_queue() -> SupabaseScrapeQueue:
    """Get or create the global scrape queue."""
    global _scrape_queue
    if _scrape_queue is None:
        _scrape_queue = SupabaseScrapeQueue()
    return _scrape_queue
