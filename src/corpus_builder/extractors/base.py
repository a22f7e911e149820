"""Extractor contract and MIME-type registry.

Extractors turn a raw response body into text suitable for a corpus. The
registry is an ordered list: the first extractor whose declared MIME types
appear in the normalized content type wins, with a designated default for
anything unrecognized.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, ClassVar
from urllib.parse import urlsplit

from corpus_builder.errors import ExtractionError


@dataclass
class ExtractedContent:
    """Uniform extraction result regardless of source type."""

    text: str
    title: str | None = None
    links: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)


class ContentExtractor(ABC):
    """Base class for content extractors."""

    name: ClassVar[str]
    mime_types: ClassVar[tuple[str, ...]]

    @abstractmethod
    def extract(self, content: bytes, url: str) -> ExtractedContent:
        """Extract text from ``content`` fetched from ``url``.

        Raises:
            ExtractionError: when no usable text can be recovered
        """

    def handles(self, normalized_mime_type: str) -> bool:
        return any(mime_type in normalized_mime_type for mime_type in self.mime_types)


def normalize_mime_type(mime_type: str) -> str:
    """Strip parameters such as ``; charset=utf-8`` and lowercase."""
    return mime_type.split(";", 1)[0].strip().lower()


def last_path_segment(url: str) -> str | None:
    """Last non-empty path segment of a URL, if any."""
    try:
        path = urlsplit(url).path
    except ValueError:
        return None
    segments = [segment for segment in path.split("/") if segment]
    return segments[-1] if segments else None


def decode_text(content: bytes) -> str:
    return content.decode("utf-8", errors="replace")


class ExtractorRegistry:
    """Ordered lookup of extractors by MIME type with a default fallback."""

    def __init__(self) -> None:
        self._extractors: list[ContentExtractor] = []
        self._default: ContentExtractor | None = None

    def register(self, extractor: ContentExtractor) -> None:
        self._extractors.append(extractor)

    def set_default(self, extractor: ContentExtractor) -> None:
        self._default = extractor

    def find_for_mime_type(self, mime_type: str) -> ContentExtractor | None:
        """Return the first registered extractor handling ``mime_type``, or None."""
        normalized = normalize_mime_type(mime_type)
        if not normalized:
            return None
        for extractor in self._extractors:
            if extractor.handles(normalized):
                return extractor
        return None

    def get_default(self) -> ContentExtractor:
        if self._default is None:
            raise ExtractionError("No default extractor registered")
        return self._default

    def resolve(self, mime_type: str) -> ContentExtractor:
        """Extractor for ``mime_type``, falling back to the default."""
        return self.find_for_mime_type(mime_type) or self.get_default()

    def list(self) -> list[ContentExtractor]:
        return list(self._extractors)
