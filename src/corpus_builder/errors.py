"""Typed failures raised by loaders, the crawler and the corpus assembler."""

from __future__ import annotations

from typing import Any


class CorpusError(Exception):
    """Base error carrying a machine-readable code and structured details."""

    code = "CORPUS_ERROR"

    def __init__(self, message: str, *, code: str | None = None, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code
        self.details: dict[str, Any] = details or {}


class ConfigurationError(CorpusError):
    """Raised before any I/O when crawl or loader inputs are invalid."""

    code = "INVALID_CONFIG"


class LoadError(CorpusError):
    """Raised when a source cannot be turned into a LoadedSource."""

    code = "LOAD_ERROR"

    def __init__(self, source: str, reason: str) -> None:
        super().__init__(f"Failed to load source: {reason}", details={"source": source, "reason": reason})
        self.source = source
        self.reason = reason


class TokenLimitError(CorpusError):
    """Raised when content exceeds a token ceiling."""

    code = "TOKEN_LIMIT_EXCEEDED"

    def __init__(self, requested: int, limit: int) -> None:
        super().__init__(
            f"Token limit exceeded: {requested} > {limit}",
            details={"requested": requested, "limit": limit},
        )
        self.requested = requested
        self.limit = limit


class PageFetchError(CorpusError):
    """A single page could not be fetched (non-2xx, timeout, network error)."""

    code = "FETCH_ERROR"


class ExtractionError(CorpusError):
    """A fetched payload could not be turned into text."""

    code = "EXTRACTION_ERROR"
