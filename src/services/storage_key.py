"""Deterministic storage keys for scraped artifacts.

Key format: ``sha1_hex(hostname)/sha256_hex(canonical_url)``.

The domain digest comes first so every artifact of a host can be listed
with a single prefix query. Existing artifacts are located by re-deriving
the key from (domain, url) alone, so the format must never change.
"""

import hashlib
from dataclasses import dataclass
from urllib.parse import urlsplit, urlunsplit

from src.models.scrape_models import StorageKey

_DEFAULT_PORTS = {"http": 80, "https": 443}


@dataclass(frozen=True)
class CanonicalURL:
    """A parsed target URL in the form used for keys and metadata."""

    url: str
    domain: str


def canonicalize_url(url: str) -> CanonicalURL:
    """
    Normalize an absolute URL for hashing and metadata lookup.

    Lower-cases scheme and host, drops the default port, turns an empty
    path into "/". Query string and fragment are kept as-is, so pages that
    route on the fragment get distinct keys.

    Raises:
        ValueError: If the URL has no scheme or host
    """
    parts = urlsplit(url.strip())
    scheme = parts.scheme.lower()
    host = parts.hostname
    if not scheme or not host:
        raise ValueError(f"Not an absolute URL: {url}")

    netloc = host
    if ":" in host:
        # IPv6 literal
        netloc = f"[{host}]"
    if parts.port is not None and parts.port != _DEFAULT_PORTS.get(scheme):
        netloc = f"{netloc}:{parts.port}"
    if parts.username is not None:
        userinfo = parts.username
        if parts.password is not None:
            userinfo = f"{userinfo}:{parts.password}"
        netloc = f"{userinfo}@{netloc}"

    path = parts.path or "/"
    return CanonicalURL(
        url=urlunsplit((scheme, netloc, path, parts.query, parts.fragment)),
        domain=host,
    )


def derive_storage_key(domain: str, canonical_url: str) -> StorageKey:
    """
    Derive the storage key for a page.

    Args:
        domain: Hostname of the page
        canonical_url: Output of canonicalize_url(...).url

    Returns:
        StorageKey whose domain part is the SHA-1 of the hostname and whose
        URL part is the SHA-256 of the canonical URL, both lower-case hex
    """
    domain_part = hashlib.sha1(domain.encode("utf-8")).hexdigest()
    url_part = hashlib.sha256(canonical_url.encode("utf-8")).hexdigest()
    return StorageKey(domain_part=domain_part, url_part=url_part)
