"""Page metadata recording.

The metadata upsert is the single write that makes repeated scrapes of the
same URL idempotent: one row per canonical URL, updated in place.
"""

import asyncio
from typing import Protocol

import logfire

from src.db.repository import upsert_page_metadata
from src.models.scrape_models import PageMetadataRecord, StorageKey
from src.services.scrape_errors import MetadataFailedError


class MetadataRecorder(Protocol):
    """Protocol for recording page metadata."""

    async def upsert(
        self, canonical_url: str, key: StorageKey, language: str
    ) -> PageMetadataRecord:
        """Insert or update the row for canonical_url.

        Raises:
            MetadataFailedError: If the upsert fails
        """
        ...


class SupabaseMetadataRecorder:
    """Record page metadata in the Supabase page_metadata table."""

    async def upsert(
        self, canonical_url: str, key: StorageKey, language: str
    ) -> PageMetadataRecord:
        try:
            record = await asyncio.to_thread(
                upsert_page_metadata, canonical_url, str(key), language
            )
        except Exception as e:
            raise MetadataFailedError(
                f"Failed to save page metadata for {canonical_url}: {e}"
            ) from e

        logfire.info(
            "Saved page metadata",
            url=canonical_url,
            storage_key=str(key),
            lang=language,
            record_id=record.id,
        )
        return record
