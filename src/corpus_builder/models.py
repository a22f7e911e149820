"""Pydantic models shared by every loader and the corpus assembler."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class FileInfo(BaseModel):
    """One fetched or loaded unit of content.

    Fields:
        path: URL for crawled pages, relative path or logical name otherwise
        content: Extracted text
        size: Byte length of the raw payload
        token_estimate: ``ceil(len(content) / chars_per_token)``
        mime_type: Declared or guessed MIME type
    """

    path: str = Field(description="URL or logical name")
    content: str = Field(description="Extracted text content")
    size: int = Field(ge=0, description="Byte length of the raw content")
    token_estimate: int = Field(ge=0, description="Approximate token count")
    mime_type: str | None = Field(default=None, description="MIME type if known")


class LoadedSource(BaseModel):
    """Output contract of the crawler and every loader.

    ``metadata`` is open-ended but always carries ``source`` (human-readable
    origin) and ``loaded_at``. Crawls add page counts, the error list and the
    stop flags; repository loads add git details.
    """

    content: str = Field(description="Final assembled text")
    total_tokens: int = Field(ge=0, description="Sum of per-file token estimates")
    file_count: int = Field(ge=0, description="Number of files contributing to content")
    files: list[FileInfo] = Field(default_factory=list, description="Per-file records, in assembly order")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Source metadata")

    @property
    def source(self) -> str:
        return str(self.metadata.get("source", ""))


class CrawlError(BaseModel):
    """Structured record of a per-page failure; never raised, only reported."""

    url: str
    error: str
    timestamp: datetime = Field(default_factory=utc_now)
