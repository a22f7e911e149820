"""Token-budgeted best-first crawler.

Pops one URL at a time from a score-ordered queue and keeps going until the
accumulated token estimate reaches the target, the page cap is hit, the
optional subrequest cap is spent, or the queue runs dry. Per-page failures
(robots blocks, fetch errors, extraction errors) are recorded and skipped;
only invalid configuration raises.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from dataclasses import asdict, dataclass, field
import heapq
import itertools
import logging
from typing import Any
from urllib.parse import urljoin

import httpx

from corpus_builder.config import Settings
from corpus_builder.crawler.link_scorer import score_link
from corpus_builder.crawler.robots import RobotsChecker
from corpus_builder.crawler.url_filter import is_http_url, normalize_url, should_skip_url, url_origin
from corpus_builder.errors import ConfigurationError, CorpusError, ExtractionError, PageFetchError
from corpus_builder.extractors import ExtractorRegistry, create_default_registry
from corpus_builder.extractors.base import ExtractedContent, last_path_segment, normalize_mime_type
from corpus_builder.models import CrawlError, FileInfo, LoadedSource, utc_now
from corpus_builder.observability.context import begin_crawl_context
from corpus_builder.observability.tracing import create_span
from corpus_builder.utils.tokens import estimate_tokens


logger = logging.getLogger(__name__)

SEED_SCORE = 100
MIN_LINK_SCORE = 20
DEFAULT_USER_AGENT = "CorpusBuilder/0.1 (context-loader)"

STOP_TARGET_REACHED = "target_reached"
STOP_MAX_PAGES = "max_pages"
STOP_MAX_SUBREQUESTS = "max_subrequests"
STOP_QUEUE_EXHAUSTED = "queue_exhausted"


@dataclass(frozen=True)
class CrawlConfig:
    """Fully resolved crawl configuration."""

    seed_urls: tuple[str, ...]
    target_tokens: int = 100_000
    min_tokens_per_page: int = 500
    max_pages: int = 50
    same_domain_only: bool = True
    delay_ms: int = 100
    respect_robots_txt: bool = True
    max_subrequests: int | None = None  # None = no cap
    fetch_timeout: float = 30.0
    robots_timeout: float = 5.0

    @classmethod
    def from_settings(
        cls, seed_urls: Iterable[str] | str, settings: Settings | None = None, **overrides: Any
    ) -> CrawlConfig:
        """Build a config from ``Settings`` defaults, then apply non-None overrides.

        Args:
            seed_urls: Iterable of seed URLs (a single string is accepted too)
            settings: Settings to take defaults from; a fresh ``Settings()`` if omitted
            **overrides: Field values that win over settings; ``None`` means "use default"

        Returns:
            A validated CrawlConfig
        """
        settings = settings or Settings()
        if isinstance(seed_urls, str):
            seed_urls = (seed_urls,)

        values: dict[str, Any] = {
            "target_tokens": settings.crawl_target_tokens,
            "min_tokens_per_page": settings.crawl_min_tokens_per_page,
            "max_pages": settings.crawl_max_pages,
            "same_domain_only": settings.crawl_same_domain_only,
            "delay_ms": settings.crawl_delay_ms,
            "respect_robots_txt": settings.crawl_respect_robots_txt,
            "max_subrequests": settings.crawl_max_subrequests,
            "fetch_timeout": settings.http_timeout,
            "robots_timeout": settings.robots_timeout,
        }
        for key, value in overrides.items():
            if key not in values:
                raise ConfigurationError(f"Unknown crawl option: {key}")
            if value is not None:
                values[key] = value

        config = cls(seed_urls=tuple(seed_urls), **values)
        config.validate()
        return config

    def validate(self) -> None:
        """Raise ConfigurationError when the configuration cannot drive a crawl."""
        if not self.seed_urls:
            raise ConfigurationError("At least one seed URL is required")
        for url in self.seed_urls:
            if not isinstance(url, str) or not is_http_url(url):
                raise ConfigurationError(f"Invalid seed URL: {url!r}", details={"url": url})
        if self.target_tokens < 1:
            raise ConfigurationError("target_tokens must be at least 1")
        if self.max_pages < 1:
            raise ConfigurationError("max_pages must be at least 1")
        if self.min_tokens_per_page < 0:
            raise ConfigurationError("min_tokens_per_page cannot be negative")
        if self.delay_ms < 0:
            raise ConfigurationError("delay_ms cannot be negative")
        if self.max_subrequests is not None and self.max_subrequests < 1:
            raise ConfigurationError("max_subrequests must be at least 1 when set")
        if self.fetch_timeout <= 0 or self.robots_timeout <= 0:
            raise ConfigurationError("Timeouts must be positive")

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["seed_urls"] = list(self.seed_urls)
        return data


@dataclass
class PrioritizedUrl:
    """A queued crawl candidate."""

    url: str
    score: int
    depth: int
    referrer: str | None = None


@dataclass
class _Page:
    file: FileInfo
    title: str
    depth: int
    links: list[str] = field(default_factory=list)


class TokenTargetCrawler:
    """Best-first crawler that stops once it has gathered enough tokens.

    Usage:
        async with TokenTargetCrawler(config) as crawler:
            source = await crawler.crawl()

    A caller-supplied ``httpx.AsyncClient`` is used as-is and left open;
    otherwise the crawler owns its client for the duration of the context.
    """

    def __init__(
        self,
        config: CrawlConfig,
        extractor_registry: ExtractorRegistry | None = None,
        *,
        user_agent: str = DEFAULT_USER_AGENT,
        client: httpx.AsyncClient | None = None,
    ):
        config.validate()
        self.config = config
        self.extractor_registry = extractor_registry or create_default_registry()
        self.user_agent = user_agent

        self.client: httpx.AsyncClient | None = client
        self._owns_client = client is None

        self._reset_state()

    def _reset_state(self) -> None:
        self._queue: list[tuple[int, int, PrioritizedUrl]] = []
        self._queued: set[str] = set()
        self._sequence = itertools.count()
        self.visited: set[str] = set()
        self.pages: list[_Page] = []
        self.errors: list[CrawlError] = []
        self.current_tokens = 0
        self.subrequest_count = 0
        # One robots.txt checker per origin, never shared between crawls
        self._robots: dict[str, RobotsChecker] = {}

    async def __aenter__(self) -> TokenTargetCrawler:
        if self.client is None:
            self.client = httpx.AsyncClient(
                headers={"User-Agent": self.user_agent},
                timeout=httpx.Timeout(self.config.fetch_timeout, connect=10.0),
                follow_redirects=True,
            )
            self._owns_client = True
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._owns_client and self.client is not None:
            await self.client.aclose()
            self.client = None

    @property
    def queue_size(self) -> int:
        return len(self._queue)

    async def crawl(self) -> LoadedSource:
        """Run one crawl and return the assembled source.

        Returns:
            LoadedSource whose metadata reports page counts, errors and why
            the crawl stopped
        """
        if self.client is None:
            raise RuntimeError("Crawler must be used as async context manager")

        self._reset_state()
        crawl_id = begin_crawl_context()

        with create_span(
            "crawl",
            attributes={
                "crawl.id": crawl_id,
                "crawl.seed_count": len(self.config.seed_urls),
                "crawl.target_tokens": self.config.target_tokens,
                "crawl.max_subrequests": self.config.max_subrequests,
            },
        ) as span:
            for seed in self.config.seed_urls:
                self._push(PrioritizedUrl(url=normalize_url(seed), score=SEED_SCORE, depth=0))

            logger.info(
                f"Starting crawl of {len(self.config.seed_urls)} seed URL(s), "
                f"target {self.config.target_tokens} tokens"
            )

            while self._stop_reason() is None:
                entry = self._pop()
                if entry.url in self.visited:
                    continue
                # Mark before any I/O so nothing re-queues this URL
                self.visited.add(entry.url)

                if self.config.respect_robots_txt and not await self._is_allowed(entry.url):
                    logger.info(f"Blocked by robots.txt: {entry.url}")
                    self._record_error(entry.url, "Blocked by robots.txt")
                    continue

                try:
                    page = await self._load_page(entry)
                except CorpusError as e:
                    logger.warning(f"Failed to load {entry.url}: {e}")
                    self._record_error(entry.url, str(e))
                else:
                    self._accept_or_discard(page)

                await self._politeness_delay()

            stop_reason = self._stop_reason() or STOP_QUEUE_EXHAUSTED
            result = self._build_result(stop_reason)

            span.set_attribute("crawl.pages_loaded", len(self.pages))
            span.set_attribute("crawl.tokens", self.current_tokens)
            span.set_attribute("crawl.subrequests", self.subrequest_count)
            span.set_attribute("crawl.stop_reason", stop_reason)

        logger.info(
            f"Crawl finished ({stop_reason}): {len(self.pages)} pages, "
            f"{self.current_tokens} tokens, {self.subrequest_count} requests, {len(self.errors)} errors"
        )
        return result

    def _stop_reason(self) -> str | None:
        if self.current_tokens >= self.config.target_tokens:
            return STOP_TARGET_REACHED
        if len(self.pages) >= self.config.max_pages:
            return STOP_MAX_PAGES
        if self.config.max_subrequests is not None and self.subrequest_count >= self.config.max_subrequests:
            return STOP_MAX_SUBREQUESTS
        if not self._queue:
            return STOP_QUEUE_EXHAUSTED
        return None

    def _push(self, entry: PrioritizedUrl) -> None:
        if entry.url in self._queued or entry.url in self.visited:
            return
        self._queued.add(entry.url)
        # Negated score for a max-heap; the sequence keeps equal scores FIFO
        heapq.heappush(self._queue, (-entry.score, next(self._sequence), entry))

    def _pop(self) -> PrioritizedUrl:
        _, _, entry = heapq.heappop(self._queue)
        self._queued.discard(entry.url)
        return entry

    async def _is_allowed(self, url: str) -> bool:
        origin = url_origin(url)
        checker = self._robots.get(origin)
        if checker is None:
            assert self.client is not None
            checker = RobotsChecker(origin, self.user_agent, self.client, timeout=self.config.robots_timeout)
            self._robots[origin] = checker
            await checker.load()
        return checker.is_allowed(url)

    async def _load_page(self, entry: PrioritizedUrl) -> _Page:
        """Fetch and extract one page.

        Every call that reaches the network counts as a subrequest, whether
        or not it succeeds.

        Raises:
            PageFetchError: non-2xx status, timeout or transport failure
            ExtractionError: the extractor could not produce text
        """
        assert self.client is not None
        url = entry.url
        # Counted before the request, not on success: failed, timed-out and
        # non-2xx fetches use up the subrequest budget too
        self.subrequest_count += 1

        with create_span("crawl.page", attributes={"url.full": url, "crawl.depth": entry.depth}) as span:
            try:
                response = await self.client.get(
                    url,
                    headers={"User-Agent": self.user_agent},
                    timeout=self.config.fetch_timeout,
                    follow_redirects=True,
                )
            except httpx.TimeoutException as e:
                raise PageFetchError(f"Timeout after {self.config.fetch_timeout}s", details={"url": url}) from e
            except httpx.HTTPError as e:
                raise PageFetchError(f"Request failed: {e}", details={"url": url}) from e

            span.set_attribute("http.response.status_code", response.status_code)
            if not response.is_success:
                raise PageFetchError(
                    f"HTTP {response.status_code}: {response.reason_phrase}",
                    details={"url": url, "status_code": response.status_code},
                )

            content_type = response.headers.get("content-type", "")
            extractor = self.extractor_registry.resolve(content_type)
            final_url = str(response.url)
            try:
                extracted = extractor.extract(response.content, final_url)
            except ExtractionError:
                raise
            except Exception as e:
                raise ExtractionError(f"{extractor.name} extraction failed: {e}", details={"url": url}) from e

        return self._to_page(entry, extracted, content_type, len(response.content), final_url)

    def _to_page(
        self,
        entry: PrioritizedUrl,
        extracted: ExtractedContent,
        content_type: str,
        size: int,
        final_url: str,
    ) -> _Page:
        text = extracted.text
        file = FileInfo(
            path=entry.url,
            content=text,
            size=size,
            token_estimate=estimate_tokens(text),
            mime_type=normalize_mime_type(content_type) or None,
        )
        title = extracted.title or last_path_segment(entry.url) or entry.url
        links = [urljoin(final_url, link) for link in extracted.links]
        return _Page(file=file, title=title, depth=entry.depth, links=links)

    def _accept_or_discard(self, page: _Page) -> None:
        tokens = page.file.token_estimate
        if tokens < self.config.min_tokens_per_page:
            # Discarded pages contribute neither content nor links
            logger.debug(
                f"Discarding {page.file.path}: {tokens} tokens < {self.config.min_tokens_per_page} minimum"
            )
            return

        self.pages.append(page)
        self.current_tokens += tokens
        logger.debug(f"Accepted {page.file.path} ({tokens} tokens, total {self.current_tokens})")
        self._enqueue_links(page)

    def _enqueue_links(self, page: _Page) -> None:
        page_url = page.file.path
        page_origin = url_origin(page_url)

        for link in page.links:
            if should_skip_url(link):
                continue
            candidate = normalize_url(link)
            if candidate in self.visited or candidate in self._queued:
                continue
            if self.config.same_domain_only and url_origin(candidate) != page_origin:
                logger.debug(f"Skipping off-origin link {candidate}")
                continue
            score = score_link(candidate, page_url)
            if score < MIN_LINK_SCORE:
                logger.debug(f"Skipping low-score link {candidate} ({score})")
                continue
            self._push(PrioritizedUrl(url=candidate, score=score, depth=page.depth + 1, referrer=page_url))

    async def _politeness_delay(self) -> None:
        if self.config.delay_ms > 0 and self._stop_reason() is None:
            await asyncio.sleep(self.config.delay_ms / 1000)

    def _record_error(self, url: str, error: str) -> None:
        self.errors.append(CrawlError(url=url, error=error))

    def _build_result(self, stop_reason: str) -> LoadedSource:
        sections = [
            f"# {page.title}\nSource: {page.file.path}\n\n{page.file.content}\n\n---\n" for page in self.pages
        ]
        metadata: dict[str, Any] = {
            "source": " + ".join(self.config.seed_urls),
            "loaded_at": utc_now().isoformat(),
            "pages_loaded": len(self.pages),
            "pages_skipped": len(self.visited) - len(self.pages),
            "pages_in_queue": len(self._queue),
            "errors": [error.model_dump(mode="json") for error in self.errors],
            "target_tokens": self.config.target_tokens,
            "actual_tokens": self.current_tokens,
            "subrequests_used": self.subrequest_count,
            "stopped_by_subrequest_limit": stop_reason == STOP_MAX_SUBREQUESTS,
            "stopped_by_page_limit": stop_reason == STOP_MAX_PAGES,
            "stop_reason": stop_reason,
            "crawl_config": self.config.to_dict(),
        }
        return LoadedSource(
            content="\n".join(sections),
            total_tokens=self.current_tokens,
            file_count=len(self.pages),
            files=[page.file for page in self.pages],
            metadata=metadata,
        )
