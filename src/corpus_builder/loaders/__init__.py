"""Source loaders and dispatch from a source string to the right one."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
import logging
from pathlib import Path
from typing import Any

from corpus_builder.assembler import combine_loaded_sources
from corpus_builder.config import Settings
from corpus_builder.crawler.url_filter import is_http_url
from corpus_builder.errors import ConfigurationError, LoadError
from corpus_builder.loaders.repo_loader import RepoLoader, is_git_repository_url, load_git_repository
from corpus_builder.loaders.source_loader import SourceLoader
from corpus_builder.loaders.url_adapter import UrlAdapter
from corpus_builder.models import LoadedSource


logger = logging.getLogger(__name__)


async def load_source(
    source: str,
    *,
    settings: Settings | None = None,
    max_tokens: int | None = None,
    **crawl_options: Any,
) -> LoadedSource:
    """Load one source string.

    Git-host repository URLs are shallow-cloned, other http(s) URLs are
    crawled, directories are loaded as repositories and anything else is
    treated as a single file.

    Args:
        source: URL or filesystem path
        settings: Settings for defaults; a fresh ``Settings()`` if omitted
        max_tokens: Token ceiling for file and repository loads
        **crawl_options: ``CrawlConfig`` overrides, only valid for crawled URLs
    """
    settings = settings or Settings()

    if is_git_repository_url(source):
        return await load_git_repository(source, max_tokens=max_tokens, settings=settings)
    if is_http_url(source):
        return await UrlAdapter(settings).load(source, **crawl_options)
    if crawl_options:
        raise ConfigurationError(f"Crawl options given for non-URL source: {source}")

    path = Path(source).expanduser()
    if path.is_dir():
        loader = RepoLoader(max_tokens, settings=settings)
        return await asyncio.to_thread(loader.load_directory, path)
    if path.is_file():
        return await asyncio.to_thread(SourceLoader(max_tokens, settings).load_file, path)
    raise LoadError(source, "Source is not a URL, file or directory")


async def load_sources(
    sources: Sequence[str],
    *,
    settings: Settings | None = None,
    max_tokens: int | None = None,
    strict: bool = False,
    **crawl_options: Any,
) -> LoadedSource:
    """Load several sources concurrently and combine them into one corpus.

    Each crawl owns its own queue, visited set and robots cache, so loads run
    side by side without shared state. A single source is returned as loaded.
    """
    if not sources:
        raise ConfigurationError("At least one source is required")
    settings = settings or Settings()

    loaded = await asyncio.gather(
        *(load_source(source, settings=settings, max_tokens=max_tokens, **crawl_options) for source in sources)
    )
    if len(loaded) == 1:
        return loaded[0]

    ceiling = max_tokens if max_tokens is not None else settings.max_tokens_per_corpus
    return combine_loaded_sources(loaded, list(sources), max_tokens=ceiling, strict=strict)


__all__ = [
    "RepoLoader",
    "SourceLoader",
    "UrlAdapter",
    "is_git_repository_url",
    "load_git_repository",
    "load_source",
    "load_sources",
]
