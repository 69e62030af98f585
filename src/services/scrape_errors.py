"""Exceptions raised by the scrape pipeline.

Every stage of a scrape attempt has its own exception type. All of them
derive from ScrapeError and carry the stage name, which the HTTP layer
returns to synchronous callers and the batch consumer logs before asking
for redelivery.
"""


class ScrapeError(Exception):
    """Base exception for scrape pipeline errors."""

    stage = "scrape"


class InvalidScrapeRequestError(ScrapeError):
    """Raised when a request payload is missing a URL or is malformed."""

    stage = "validation"


class SessionUnavailableError(ScrapeError):
    """Raised when no browser session can be listed, attached or provisioned."""

    stage = "session"


class NavigationFailedError(ScrapeError):
    """Raised when navigation errors out or returns a non-success status."""

    stage = "navigation"

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class IdleTimeoutError(ScrapeError):
    """Raised when the network never goes quiet within the ceiling timeout."""

    stage = "idle_wait"


class ExtractionFailedError(ScrapeError):
    """Raised when HTML or screenshot extraction fails."""

    stage = "extraction"


class StorageFailedError(ScrapeError):
    """Raised when an artifact cannot be written to the blob store.

    ``persisted`` lists artifact paths already written in the same attempt.
    """

    stage = "storage"

    def __init__(self, message: str, persisted: list[str] | None = None):
        super().__init__(message)
        self.persisted = persisted or []


class MetadataFailedError(ScrapeError):
    """Raised when the page metadata upsert fails."""

    stage = "metadata"
