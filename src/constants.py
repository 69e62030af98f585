"""Application-wide constants.

This module centralizes all magic numbers and configuration constants
to ensure a single source of truth and easier maintenance.

Constants are organized by category. Values that can be overridden at
runtime are exposed again as Settings fields in src/config.py.
"""

# =============================================================================
# Scrape Request Defaults
# =============================================================================

# Idle window used when a request omits "idle" or sends 0 (milliseconds)
DEFAULT_IDLE_WINDOW_MS = 1000

# Language tag recorded when a request omits "lang"
DEFAULT_LANGUAGE = "en"

# Longest language tag the metadata table accepts (e.g. "zh-Hant")
MAX_LANGUAGE_TAG_LENGTH = 7

# =============================================================================
# Navigation
# =============================================================================

# Only this response status counts as a successful navigation
NAVIGATION_SUCCESS_STATUS = 200

# Absolute ceiling for the network-idle wait (milliseconds).
# Reaching it is a failure, never "idle achieved".
NETWORK_IDLE_CEILING_MS = 30000

# Timeout for page.goto() itself (seconds)
NAVIGATION_TIMEOUT_SECONDS = 30.0

# Fixed viewport so screenshots have reproducible dimensions
SCREENSHOT_VIEWPORT_WIDTH = 1280
SCREENSHOT_VIEWPORT_HEIGHT = 960
SCREENSHOT_DEVICE_SCALE_FACTOR = 2

# =============================================================================
# Remote Browser Service
# =============================================================================

# Timeout for session listing / provisioning calls (seconds)
BROWSER_REQUEST_TIMEOUT_SECONDS = 30.0

# CDP path appended to the browser service host when no explicit ws URL is set
BROWSER_CDP_PATH = "/devtools/browser"

# =============================================================================
# Storage
# =============================================================================

DEFAULT_RAW_HTML_BUCKET = "raw-html"
DEFAULT_SCREENSHOT_BUCKET = "screenshots"
DEFAULT_PAGE_METADATA_TABLE = "page_metadata"

# Remote store calls slower than this are logged as warnings (milliseconds)
SLOW_REMOTE_CALL_MS = 2000

# =============================================================================
# Queue (Supabase Queues / pgmq)
# =============================================================================

DEFAULT_SCRAPE_QUEUE_NAME = "scrape_requests"

# Messages pulled per batch
QUEUE_MAX_BATCH_SIZE = 10

# How long a received message stays invisible before it is redelivered (seconds)
QUEUE_VISIBILITY_TIMEOUT_SECONDS = 300

# Redeliveries allowed before a message is moved to the archive
QUEUE_MAX_RETRIES = 3

# Sleep between polls when the queue is empty (seconds)
QUEUE_POLL_INTERVAL_SECONDS = 5.0

# Postgres schema exposing the pgmq RPC wrappers
PGMQ_PUBLIC_SCHEMA = "pgmq_public"
