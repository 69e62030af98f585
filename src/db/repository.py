"""Page metadata repository."""

from datetime import datetime, timezone
from typing import Optional

from src.config import get_settings
from src.db.client import get_supabase_client
from src.db.query_executor import timed_query
from src.models.scrape_models import PageMetadataRecord


def upsert_page_metadata(
    url: str,
    storage_key: str,
    lang: str,
    crawled_at: datetime | None = None,
) -> PageMetadataRecord:
    """
    Create or update the metadata row for a page (upsert on url).

    Only url, storage_key, lang and page_crawled_at are sent, so the
    markdown/embedding timestamps owned by downstream processors survive
    every re-scrape.

    Args:
        url: Canonical page URL (unique key)
        storage_key: Storage key the artifacts were written under
        lang: Language tag
        crawled_at: Crawl timestamp (defaults to now, UTC)

    Returns:
        The stored PageMetadataRecord

    Raises:
        ValueError: If the upsert returned no row
    """
    settings = get_settings()
    crawled_at = crawled_at or datetime.now(timezone.utc)
    data = {
        "url": url,
        "storage_key": storage_key,
        "lang": lang,
        "page_crawled_at": crawled_at.isoformat(),
    }

    with timed_query(
        "upsert_page_metadata", url=url, storage_key=storage_key, lang=lang
    ):
        client = get_supabase_client()
        result = (
            client.table(settings.page_metadata_table)
            .upsert(data, on_conflict="url")
            .execute()
        )
        if not result.data:
            raise ValueError(f"Failed to upsert page metadata for {url}")

    return PageMetadataRecord(**result.data[0])


def get_page_metadata(url: str) -> Optional[PageMetadataRecord]:
    """
    Get the metadata row for a canonical page URL.

    Returns:
        PageMetadataRecord if found, None otherwise
    """
    settings = get_settings()
    with timed_query("get_page_metadata", url=url):
        client = get_supabase_client()
        result = (
            client.table(settings.page_metadata_table)
            .select("*")
            .eq("url", url)
            .limit(1)
            .execute()
        )

    if not result.data:
        return None
    return PageMetadataRecord(**result.data[0])
