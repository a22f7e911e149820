"""Static link prioritization for best-first crawling.

Higher scores mean the link more likely leads to useful documentation-like
content. Scores start at 50, are adjusted additively and clamped to [0, 100].
"""

from __future__ import annotations

from urllib.parse import SplitResult, parse_qsl, urlsplit


BASE_SCORE = 50
INVALID_URL_SCORE = 10

DOC_PATH_PATTERNS: tuple[str, ...] = (
    "/docs",
    "/guide",
    "/reference",
    "/api",
    "/tutorial",
    "/learn",
    "/manual",
    "/handbook",
    "/help",
    "/faq",
    "/getting-started",
    "/quickstart",
)

LOW_VALUE_PATH_PATTERNS: tuple[str, ...] = (
    "/login",
    "/signup",
    "/auth",
    "/admin",
    "/cart",
    "/checkout",
    "/account",
    "/settings",
    "/profile",
    "/search",
    "/tag/",
    "/category/",
    "/author/",
    "/page/",
)

BINARY_EXTENSIONS: tuple[str, ...] = (
    ".zip",
    ".tar",
    ".gz",
    ".exe",
    ".dmg",
    ".pkg",
    ".deb",
    ".rpm",
    ".mp3",
    ".mp4",
    ".avi",
    ".mov",
    ".jpg",
    ".jpeg",
    ".png",
    ".gif",
    ".svg",
    ".ico",
)

DOCUMENT_EXTENSIONS: tuple[str, ...] = (".html", ".htm", ".md", ".txt")

MAX_URL_LENGTH = 200
MAX_QUERY_PARAMS = 3
MAX_SHALLOW_DEPTH = 3


def _parse_absolute(url: str) -> SplitResult:
    parts = urlsplit(url)
    if not parts.scheme or not parts.netloc:
        raise ValueError(f"Not an absolute URL: {url!r}")
    return parts


def _origin(parts: SplitResult) -> str:
    return f"{parts.scheme.lower()}://{parts.netloc.lower()}"


def score_link(link: str, source_url: str) -> int:
    """Score a candidate link found on ``source_url``.

    Args:
        link: Absolute candidate URL
        source_url: URL of the page the link was found on

    Returns:
        Integer priority in [0, 100]; unparseable input scores 10
    """
    score = BASE_SCORE

    try:
        link_parts = _parse_absolute(link)
        source_parts = _parse_absolute(source_url)
        link_path = link_parts.path or "/"
        source_path = source_parts.path or "/"
        lowered_path = link_path.lower()

        if _origin(link_parts) == _origin(source_parts):
            score += 20

        # Stay in the same section as the discovering page
        source_parent = "/".join(source_path.split("/")[:-1])
        if source_parent and link_path.startswith(source_parent):
            score += 10

        if any(pattern in lowered_path for pattern in DOC_PATH_PATTERNS):
            score += 15

        if any(pattern in lowered_path for pattern in LOW_VALUE_PATH_PATTERNS):
            score -= 30

        if link_path == source_path and link_parts.fragment:
            score -= 40

        if len(link) > MAX_URL_LENGTH:
            score -= 10

        if len(parse_qsl(link_parts.query, keep_blank_values=True)) > MAX_QUERY_PARAMS:
            score -= 15

        depth = len([segment for segment in link_path.split("/") if segment])
        if depth <= MAX_SHALLOW_DEPTH:
            score += 5

        if lowered_path.endswith(BINARY_EXTENSIONS):
            score -= 50

        if lowered_path.endswith(DOCUMENT_EXTENSIONS):
            score += 5
    except ValueError:
        score = INVALID_URL_SCORE

    return max(0, min(100, score))
