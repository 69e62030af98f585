"""Artifact persistence in Supabase Storage.

HTML and screenshots go to separate buckets, both under the page's storage
key with a kind-specific suffix and content type, e.g.
``<sha1(domain)>/<sha256(url)>.html`` in the raw-HTML bucket.
"""

import asyncio
from typing import Protocol

import logfire

from src.config import get_settings
from src.db.client import get_supabase_client
from src.db.query_executor import timed_query
from src.models.scrape_models import ArtifactKind, StorageKey, StoreResult
from src.services.scrape_errors import StorageFailedError


class ArtifactStore(Protocol):
    """Protocol for writing scraped artifacts."""

    async def store(
        self, key: StorageKey, kind: ArtifactKind, data: bytes
    ) -> StoreResult:
        """Write one artifact under key.

        Raises:
            StorageFailedError: If the write fails
        """
        ...


class SupabaseArtifactStore:
    """Write artifacts to Supabase Storage buckets, overwriting on re-scrape."""

    def __init__(
        self,
        html_bucket: str | None = None,
        screenshot_bucket: str | None = None,
        client=None,
    ):
        settings = get_settings()
        self._buckets = {
            ArtifactKind.HTML: html_bucket or settings.raw_html_bucket,
            ArtifactKind.SCREENSHOT: screenshot_bucket or settings.screenshot_bucket,
        }
        self._client = client

    def bucket_for(self, kind: ArtifactKind) -> str:
        return self._buckets[kind]

    def _upload(self, bucket: str, path: str, kind: ArtifactKind, data: bytes):
        client = self._client or get_supabase_client()
        with timed_query(
            "upload_artifact", bucket=bucket, path=path, size=len(data)
        ):
            return client.storage.from_(bucket).upload(
                path,
                data,
                file_options={
                    "content-type": kind.content_type,
                    "x-upsert": "true",
                },
            )

    async def store(
        self, key: StorageKey, kind: ArtifactKind, data: bytes
    ) -> StoreResult:
        bucket = self.bucket_for(kind)
        path = key.with_suffix(kind.suffix)
        try:
            # supabase-py storage is synchronous
            await asyncio.to_thread(self._upload, bucket, path, kind, data)
        except Exception as e:
            raise StorageFailedError(
                f"Failed to save {kind.value} to {bucket}/{path}: {e}"
            ) from e

        logfire.info(
            "Saved artifact",
            kind=kind.value,
            bucket=bucket,
            storage_key=str(key),
            path=path,
            size=len(data),
        )
        return StoreResult(path=path, size=len(data), accepted=True)
