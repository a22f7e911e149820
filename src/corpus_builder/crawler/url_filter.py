"""URL canonicalization and cheap pre-fetch filtering.

``normalize_url`` is the deduplication key used by the crawl queue and the
visited set, so it must be idempotent: normalizing an already-normalized URL
returns it unchanged.
"""

from __future__ import annotations

import logging
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit


logger = logging.getLogger(__name__)

TRACKING_PARAMS: frozenset[str] = frozenset({"ref", "source", "campaign", "fbclid", "gclid"})
TRACKING_PARAM_PREFIXES: tuple[str, ...] = ("utm_",)

STATIC_PATH_SEGMENTS: tuple[str, ...] = (
    "/static/",
    "/assets/",
    "/dist/",
    "/build/",
    "/_next/",
    "/node_modules/",
)

ALLOWED_SCHEMES: frozenset[str] = frozenset({"http", "https"})


def _is_tracking_param(name: str) -> bool:
    lowered = name.lower()
    return lowered in TRACKING_PARAMS or lowered.startswith(TRACKING_PARAM_PREFIXES)


def _looks_like_file(path: str) -> bool:
    segments = [segment for segment in path.split("/") if segment]
    return bool(segments) and "." in segments[-1]


def normalize_url(url: str) -> str:
    """Canonicalize a URL for deduplication.

    Removes tracking query parameters and the fragment, lowercases scheme and
    host, and drops trailing slashes from paths that do not look like files.
    Malformed input is returned unchanged.

    Example:
        >>> normalize_url("https://x.com/p?utm_source=a&id=1")
        'https://x.com/p?id=1'
    """
    try:
        parts = urlsplit(url)
        if not parts.scheme or not parts.netloc:
            return url

        query = parts.query
        if query:
            pairs = parse_qsl(query, keep_blank_values=True)
            kept = [(key, value) for key, value in pairs if not _is_tracking_param(key)]
            # Only re-encode when something was removed so untouched queries keep their spelling
            if len(kept) != len(pairs):
                query = urlencode(kept)

        path = parts.path or "/"
        if path != "/" and not _looks_like_file(path):
            path = path.rstrip("/") or "/"

        netloc = parts.netloc if "@" in parts.netloc else parts.netloc.lower()
        return urlunsplit((parts.scheme.lower(), netloc, path, query, ""))
    except ValueError as exc:
        logger.debug(f"Failed to normalize URL {url}: {exc}")
        return url


def should_skip_url(url: str) -> bool:
    """Return True for URLs that are never worth fetching.

    Non-http(s) schemes, URLs without a host and paths under conventional
    static-asset directories are skipped. Unparseable URLs are skipped too.
    """
    try:
        parts = urlsplit(url)
    except ValueError:
        return True

    if parts.scheme.lower() not in ALLOWED_SCHEMES or not parts.netloc:
        return True

    return any(segment in parts.path for segment in STATIC_PATH_SEGMENTS)


def url_origin(url: str) -> str:
    """Return ``scheme://host[:port]`` for a URL, or an empty string if it has none."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return ""
    if not parts.scheme or not parts.netloc:
        return ""
    return f"{parts.scheme.lower()}://{parts.netloc.lower()}"


def is_http_url(url: str) -> bool:
    """True for absolute http(s) URLs with a host."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return False
    return parts.scheme.lower() in ALLOWED_SCHEMES and bool(parts.hostname)
