"""Database client and page metadata repository."""

from src.db.query_executor import timed_query
from src.db.repository import get_page_metadata, upsert_page_metadata

__all__ = [
    "timed_query",
    "get_page_metadata",
    "upsert_page_metadata",
]
