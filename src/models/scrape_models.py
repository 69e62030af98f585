"""Models for scrape requests, browser sessions, artifacts and page metadata."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Iterator
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.constants import (
    DEFAULT_IDLE_WINDOW_MS,
    DEFAULT_LANGUAGE,
    MAX_LANGUAGE_TAG_LENGTH,
    NETWORK_IDLE_CEILING_MS,
)


class ScrapeMode(str, Enum):
    """What to extract from the rendered page."""

    HTML = "html"
    SCREENSHOT = "screenshot"
    ALL = "all"

    @property
    def wants_html(self) -> bool:
        return self in (ScrapeMode.HTML, ScrapeMode.ALL)

    @property
    def wants_screenshot(self) -> bool:
        return self in (ScrapeMode.SCREENSHOT, ScrapeMode.ALL)


class ScrapeRequest(BaseModel):
    """A single scrape request as accepted over HTTP or from the queue.

    Field names on the wire are ``url``, ``idle``, ``lang`` and ``mode``;
    absent or empty optional fields are filled with their defaults here so
    nothing downstream has to re-check them.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    url: str = Field(..., description="Absolute http(s) URL to scrape")
    idle_window_ms: int = Field(
        default=DEFAULT_IDLE_WINDOW_MS,
        alias="idle",
        description="Quiet network period required before extraction (ms)",
    )
    language: str = Field(
        default=DEFAULT_LANGUAGE,
        alias="lang",
        max_length=MAX_LANGUAGE_TAG_LENGTH,
        description="Language tag recorded with the page metadata",
    )
    mode: ScrapeMode = Field(default=ScrapeMode.HTML, description="Extraction mode")

    @field_validator("url", mode="before")
    @classmethod
    def _require_absolute_url(cls, value: Any) -> str:
        if not isinstance(value, str) or not value.strip():
            raise ValueError("URL is required")
        value = value.strip()
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            raise ValueError(f"URL must be an absolute http(s) URL: {value}")
        return value

    @field_validator("idle_window_ms", mode="before")
    @classmethod
    def _default_idle_window(cls, value: Any) -> Any:
        # 0 and null both mean "use the default"
        if value is None or value == 0:
            return DEFAULT_IDLE_WINDOW_MS
        return value

    @field_validator("idle_window_ms")
    @classmethod
    def _bounded_idle_window(cls, value: int) -> int:
        if value < 0:
            raise ValueError("idle must be >= 0")
        # A window as long as the idle ceiling can never be satisfied
        if value >= NETWORK_IDLE_CEILING_MS:
            raise ValueError(f"idle must be < {NETWORK_IDLE_CEILING_MS}")
        return value

    @field_validator("language", mode="before")
    @classmethod
    def _default_language(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return DEFAULT_LANGUAGE
        return value.strip() if isinstance(value, str) else value

    @field_validator("mode", mode="before")
    @classmethod
    def _default_mode(cls, value: Any) -> Any:
        if value is None or value == "":
            return ScrapeMode.HTML
        if isinstance(value, str):
            return value.lower()
        return value

    def to_message(self) -> dict[str, Any]:
        """Wire shape used for queue messages and echoed API responses."""
        return {
            "url": self.url,
            "idle": self.idle_window_ms,
            "lang": self.language,
            "mode": self.mode.value,
        }


@dataclass(frozen=True)
class StorageKey:
    """Content-addressed location of a page's artifacts.

    ``domain_part`` groups every artifact of a host under one prefix;
    ``url_part`` identifies the page.
    """

    domain_part: str
    url_part: str

    def __str__(self) -> str:
        return f"{self.domain_part}/{self.url_part}"

    def with_suffix(self, suffix: str) -> str:
        return f"{self}{suffix}"


@dataclass(frozen=True)
class ActiveSession:
    """A session as reported by the remote browser pool listing."""

    session_id: str
    connection_id: str | None = None

    @property
    def is_connected(self) -> bool:
        """True when another holder is attached to this session."""
        return bool(self.connection_id)


@dataclass
class BrowserSession:
    """A browser session leased from the pool and owned by one caller."""

    id: str
    connected: bool = True
    browser: Any = field(default=None, repr=False)
    driver: Any = field(default=None, repr=False)


class ArtifactKind(str, Enum):
    """Kinds of persisted artifacts, each with its own suffix and content type."""

    HTML = "html"
    SCREENSHOT = "screenshot"

    @property
    def suffix(self) -> str:
        return ".html" if self is ArtifactKind.HTML else ".png"

    @property
    def content_type(self) -> str:
        return "text/html" if self is ArtifactKind.HTML else "image/png"


@dataclass
class ExtractedContent:
    """Content pulled from a rendered page."""

    html: str | None = None
    screenshot: bytes | None = None
    title: str | None = None

    def artifacts(self) -> Iterator[tuple[ArtifactKind, bytes]]:
        """Yield (kind, bytes) pairs, HTML first."""
        if self.html is not None:
            yield ArtifactKind.HTML, self.html.encode("utf-8")
        if self.screenshot is not None:
            yield ArtifactKind.SCREENSHOT, self.screenshot


@dataclass(frozen=True)
class StoreResult:
    """Outcome of a single artifact write."""

    path: str
    size: int
    accepted: bool


class ScrapeOutcome(BaseModel):
    """Successful result of one scrape attempt."""

    model_config = ConfigDict(populate_by_name=True)

    url: str = Field(..., description="Canonical URL that was scraped")
    storage_key: str = Field(..., alias="storageKey")
    title: str | None = None
    artifacts: list[str] = Field(default_factory=list)


class PageMetadataRecord(BaseModel):
    """Row of the page metadata table.

    ``markdown_created_at`` and ``embedding_created_at`` are written by
    downstream processors and never touched by the scraper.
    """

    id: int | None = None
    url: str
    storage_key: str
    lang: str = DEFAULT_LANGUAGE
    page_crawled_at: datetime | None = None
    markdown_created_at: datetime | None = None
    embedding_created_at: datetime | None = None
