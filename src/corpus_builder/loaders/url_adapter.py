"""Load web content into a corpus by running one token-budgeted crawl."""

from __future__ import annotations

from collections.abc import Sequence
import logging
from typing import Any

import httpx

from corpus_builder.config import Settings
from corpus_builder.crawler.token_crawler import CrawlConfig, TokenTargetCrawler
from corpus_builder.crawler.url_filter import is_http_url
from corpus_builder.errors import CorpusError, LoadError
from corpus_builder.extractors import ExtractorRegistry, create_default_registry
from corpus_builder.models import LoadedSource


logger = logging.getLogger(__name__)


class UrlAdapter:
    """Resolves crawl defaults from settings and runs a crawl for one or more seeds."""

    name = "url"

    def __init__(
        self,
        settings: Settings | None = None,
        extractor_registry: ExtractorRegistry | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.settings = settings or Settings()
        self.extractor_registry = extractor_registry or create_default_registry()
        self.client = client

    def can_handle(self, source: str) -> bool:
        return is_http_url(source)

    async def load(self, source: str | Sequence[str], **options: Any) -> LoadedSource:
        """Crawl from ``source`` and return the assembled pages.

        Args:
            source: A seed URL or a sequence of seed URLs
            **options: ``CrawlConfig`` field overrides (``target_tokens``,
                ``max_subrequests``, ...); ``None`` values keep the settings default

        Raises:
            ConfigurationError: seeds or options are invalid (raised before any I/O)
            LoadError: the crawl failed for a reason other than a per-page error
        """
        seeds = [source] if isinstance(source, str) else list(source)
        config = CrawlConfig.from_settings(seeds, self.settings, **options)
        label = " + ".join(config.seed_urls)

        try:
            async with TokenTargetCrawler(
                config,
                self.extractor_registry,
                user_agent=self.settings.crawler_user_agent,
                client=self.client,
            ) as crawler:
                return await crawler.crawl()
        except CorpusError:
            raise
        except Exception as e:
            logger.error(f"Crawl of {label} failed: {e}", exc_info=True)
            raise LoadError(label, f"Crawl failed: {e}") from e
