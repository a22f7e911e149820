"""Unit tests for the token-budgeted crawler."""

from unittest.mock import AsyncMock, patch

import httpx
import pytest

from corpus_builder.crawler.token_crawler import CrawlConfig, TokenTargetCrawler
from corpus_builder.errors import ConfigurationError
from corpus_builder.extractors import ContentExtractor, ExtractedContent, ExtractorRegistry, create_default_registry


pytestmark = pytest.mark.unit

SITE = "https://site.test"
LINKS_MIME = "text/x-links"


class LinkListExtractor(ContentExtractor):
    """Test format: ``link: <href>`` lines are links, everything else is text."""

    name = "links"
    mime_types = (LINKS_MIME,)

    def extract(self, content: bytes, url: str) -> ExtractedContent:
        text_lines, links = [], []
        for line in content.decode().splitlines():
            if line.startswith("link: "):
                links.append(line[len("link: ") :])
            else:
                text_lines.append(line)
        return ExtractedContent(text="\n".join(text_lines), title=f"Title of {url}", links=links)


class ExplodingExtractor(ContentExtractor):
    name = "exploding"
    mime_types = ("application/x-explode",)

    def extract(self, content: bytes, url: str) -> ExtractedContent:
        raise ValueError("corrupt payload")


def _registry() -> ExtractorRegistry:
    registry = create_default_registry()
    default = registry.get_default()
    fresh = ExtractorRegistry()
    fresh.register(LinkListExtractor())
    fresh.register(ExplodingExtractor())
    for extractor in registry.list():
        fresh.register(extractor)
    fresh.set_default(default)
    return fresh


def _page(tokens: int, *links: str) -> str:
    """Body whose text estimates to exactly ``tokens`` tokens."""
    return "\n".join(["x" * (tokens * 4), *(f"link: {link}" for link in links)])


def _config(*seeds: str, **overrides) -> CrawlConfig:
    values = {
        "target_tokens": 100_000,
        "min_tokens_per_page": 0,
        "max_pages": 50,
        "delay_ms": 0,
    }
    values.update(overrides)
    return CrawlConfig(seed_urls=seeds or (f"{SITE}/",), **values)


async def _crawl(config: CrawlConfig, client: httpx.AsyncClient, registry: ExtractorRegistry | None = None):
    async with TokenTargetCrawler(config, registry or _registry(), client=client) as crawler:
        result = await crawler.crawl()
    return crawler, result


class TestCrawlConfig:
    """Validation happens before any I/O."""

    def test_requires_seed(self):
        with pytest.raises(ConfigurationError, match="seed URL"):
            CrawlConfig(seed_urls=()).validate()

    @pytest.mark.parametrize("seed", ["not a url", "ftp://site.test/", "/docs", "https://"])
    def test_rejects_malformed_seed(self, seed):
        with pytest.raises(ConfigurationError, match="Invalid seed URL"):
            TokenTargetCrawler(CrawlConfig(seed_urls=(seed,)))

    @pytest.mark.parametrize(
        "overrides",
        [
            {"target_tokens": 0},
            {"max_pages": 0},
            {"min_tokens_per_page": -1},
            {"delay_ms": -5},
            {"max_subrequests": 0},
            {"fetch_timeout": 0},
        ],
    )
    def test_rejects_invalid_numbers(self, overrides):
        with pytest.raises(ConfigurationError):
            _config(**overrides).validate()

    def test_from_settings_applies_defaults_and_overrides(self, settings):
        config = CrawlConfig.from_settings(f"{SITE}/", settings, max_pages=3, delay_ms=None)

        assert config.seed_urls == (f"{SITE}/",)
        assert config.max_pages == 3
        assert config.delay_ms == settings.crawl_delay_ms
        assert config.target_tokens == settings.crawl_target_tokens
        assert config.max_subrequests is None
        assert config.fetch_timeout == settings.http_timeout

    def test_from_settings_rejects_unknown_option(self, settings):
        with pytest.raises(ConfigurationError, match="Unknown crawl option"):
            CrawlConfig.from_settings([f"{SITE}/"], settings, max_depth=3)

    def test_to_dict(self):
        data = _config(f"{SITE}/a", f"{SITE}/b").to_dict()
        assert data["seed_urls"] == [f"{SITE}/a", f"{SITE}/b"]
        assert data["max_subrequests"] is None

    async def test_crawl_outside_context_manager_raises(self):
        crawler = TokenTargetCrawler(_config())
        with pytest.raises(RuntimeError, match="async context manager"):
            await crawler.crawl()


class TestBudgets:
    """Token target, page cap and subrequest cap."""

    async def test_stops_once_token_target_is_reached(self, fake_web, http_client):
        fake_web.add(f"{SITE}/", _page(60, "/docs/p1", "/docs/p2", "/docs/p3"), LINKS_MIME)
        for name in ("p1", "p2", "p3"):
            fake_web.add(f"{SITE}/docs/{name}", _page(60), LINKS_MIME)

        crawler, result = await _crawl(_config(target_tokens=100), http_client)

        assert result.file_count == 2
        assert result.total_tokens == 120
        assert result.metadata["stop_reason"] == "target_reached"
        assert result.metadata["stopped_by_subrequest_limit"] is False
        assert result.metadata["pages_in_queue"] == 2
        assert crawler.queue_size == 2
        assert result.metadata["target_tokens"] == 100
        assert result.metadata["actual_tokens"] == 120

    async def test_subrequest_cap_is_flagged(self, fake_web, http_client):
        fake_web.add(f"{SITE}/", _page(10, "/docs/a", "/docs/b", "/docs/c"), LINKS_MIME)
        for name in ("a", "b", "c"):
            fake_web.add(f"{SITE}/docs/{name}", _page(10), LINKS_MIME)

        _, result = await _crawl(_config(max_subrequests=1), http_client)

        assert result.metadata["stopped_by_subrequest_limit"] is True
        assert result.metadata["stop_reason"] == "max_subrequests"
        assert result.metadata["subrequests_used"] == 1
        assert result.file_count <= 1
        assert fake_web.page_requests() == [f"{SITE}/"]

    async def test_failed_fetches_count_as_subrequests(self, fake_web, http_client):
        fake_web.add(f"{SITE}/", _page(10, "/docs/missing", "/docs/ok"), LINKS_MIME)
        fake_web.add(f"{SITE}/docs/ok", _page(10), LINKS_MIME)

        _, result = await _crawl(_config(max_subrequests=2), http_client)

        # Seed, then the missing page (same score, queued first) exhausts the cap
        assert fake_web.page_requests() == [f"{SITE}/", f"{SITE}/docs/missing"]
        assert result.metadata["stopped_by_subrequest_limit"] is True
        assert result.file_count == 1

    async def test_page_cap(self, fake_web, http_client):
        fake_web.add(f"{SITE}/", _page(10, "/docs/a", "/docs/b"), LINKS_MIME)
        fake_web.add(f"{SITE}/docs/a", _page(10), LINKS_MIME)
        fake_web.add(f"{SITE}/docs/b", _page(10), LINKS_MIME)

        _, result = await _crawl(_config(max_pages=2), http_client)

        assert result.file_count == 2
        assert result.metadata["stop_reason"] == "max_pages"
        assert result.metadata["stopped_by_page_limit"] is True
        assert result.metadata["stopped_by_subrequest_limit"] is False

    async def test_queue_exhausted(self, fake_web, http_client):
        fake_web.add(f"{SITE}/", _page(10), LINKS_MIME)

        _, result = await _crawl(_config(), http_client)

        assert result.file_count == 1
        assert result.metadata["stop_reason"] == "queue_exhausted"
        assert result.metadata["pages_in_queue"] == 0


class TestPageHandling:
    """Acceptance, discarding, errors and robots."""

    async def test_small_pages_are_discarded_without_following_links(self, fake_web, http_client):
        fake_web.add(f"{SITE}/", _page(5, "/docs/a"), LINKS_MIME)
        fake_web.add(f"{SITE}/docs/a", _page(50), LINKS_MIME)

        _, result = await _crawl(_config(min_tokens_per_page=10), http_client)

        assert result.file_count == 0
        assert result.total_tokens == 0
        assert result.metadata["pages_skipped"] == 1
        assert fake_web.page_requests() == [f"{SITE}/"]

    async def test_robots_block_is_recorded_not_raised(self, fake_web, http_client):
        fake_web.add(f"{SITE}/robots.txt", "User-agent: *\nDisallow: /", "text/plain")
        fake_web.add(f"{SITE}/", _page(10), LINKS_MIME)

        crawler, result = await _crawl(_config(), http_client)

        assert result.file_count == 0
        assert [error["error"] for error in result.metadata["errors"]] == ["Blocked by robots.txt"]
        assert result.metadata["errors"][0]["url"] == f"{SITE}/"
        assert result.metadata["subrequests_used"] == 0
        assert fake_web.page_requests() == []
        assert crawler.subrequest_count == 0

    async def test_robots_fetched_once_per_origin(self, fake_web, http_client):
        fake_web.add(f"{SITE}/", _page(10, "/docs/a", "/docs/b"), LINKS_MIME)
        fake_web.add(f"{SITE}/docs/a", _page(10), LINKS_MIME)
        fake_web.add(f"{SITE}/docs/b", _page(10), LINKS_MIME)

        await _crawl(_config(), http_client)

        assert fake_web.requests.count(f"{SITE}/robots.txt") == 1

    async def test_robots_ignored_when_disabled(self, fake_web, http_client):
        fake_web.add(f"{SITE}/robots.txt", "User-agent: *\nDisallow: /", "text/plain")
        fake_web.add(f"{SITE}/", _page(10), LINKS_MIME)

        _, result = await _crawl(_config(respect_robots_txt=False), http_client)

        assert result.file_count == 1
        assert f"{SITE}/robots.txt" not in fake_web.requests

    async def test_fetch_failures_are_isolated(self, fake_web, http_client):
        fake_web.add(f"{SITE}/", _page(10, "/docs/missing", "/docs/slow", "/docs/ok"), LINKS_MIME)
        fake_web.add(f"{SITE}/docs/ok", _page(10), LINKS_MIME)

        def slow(request):
            raise httpx.ReadTimeout("timed out", request=request)

        fake_web.add_handler(f"{SITE}/docs/slow", slow)

        _, result = await _crawl(_config(), http_client)

        errors = {error["url"]: error["error"] for error in result.metadata["errors"]}
        assert errors == {
            f"{SITE}/docs/missing": "HTTP 404: Not Found",
            f"{SITE}/docs/slow": "Timeout after 30.0s",
        }
        assert result.file_count == 2
        assert result.metadata["subrequests_used"] == 4
        assert result.metadata["pages_skipped"] == 2

    async def test_network_errors_are_isolated(self, fake_web, http_client):
        fake_web.add(f"{SITE}/", _page(10, "/docs/down"), LINKS_MIME)

        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        fake_web.add_handler(f"{SITE}/docs/down", refuse)

        _, result = await _crawl(_config(), http_client)

        assert result.file_count == 1
        assert result.metadata["errors"][0]["error"].startswith("Request failed:")

    async def test_extraction_failures_are_isolated(self, fake_web, http_client):
        fake_web.add(f"{SITE}/", _page(10, "/docs/bad"), LINKS_MIME)
        fake_web.add(f"{SITE}/docs/bad", b"\x00\x01", "application/x-explode")

        _, result = await _crawl(_config(), http_client)

        assert result.file_count == 1
        assert result.metadata["errors"][0]["url"] == f"{SITE}/docs/bad"
        assert "exploding extraction failed: corrupt payload" in result.metadata["errors"][0]["error"]

    async def test_content_layout_and_file_records(self, fake_web, http_client):
        fake_web.add(f"{SITE}/", _page(2), f"{LINKS_MIME}; charset=utf-8")

        _, result = await _crawl(_config(), http_client)

        assert result.content == f"# Title of {SITE}/\nSource: {SITE}/\n\nxxxxxxxx\n\n---\n"
        file = result.files[0]
        assert file.path == f"{SITE}/"
        assert file.token_estimate == 2
        assert file.mime_type == LINKS_MIME
        assert file.size == len(_page(2))
        assert result.metadata["source"] == f"{SITE}/"
        assert result.metadata["crawl_config"]["target_tokens"] == 100_000
        assert "loaded_at" in result.metadata


class TestLinkFollowing:
    """Queueing, ordering and deduplication."""

    async def test_best_first_order(self, fake_web, http_client):
        fake_web.add(f"{SITE}/", _page(10, "/login", "/about", "/docs/x"), LINKS_MIME)
        for path in ("/login", "/about", "/docs/x"):
            fake_web.add(f"{SITE}{path}", _page(10), LINKS_MIME)

        await _crawl(_config(), http_client)

        assert fake_web.page_requests() == [f"{SITE}/", f"{SITE}/docs/x", f"{SITE}/about", f"{SITE}/login"]

    async def test_each_url_fetched_once(self, fake_web, http_client):
        fake_web.add(
            f"{SITE}/",
            _page(10, "/docs/a", "/docs/a?utm_source=nav", "/docs/a#part", "/docs/a/", "/"),
            LINKS_MIME,
        )
        fake_web.add(f"{SITE}/docs/a", _page(10, "/", "/docs/a"), LINKS_MIME)

        _, result = await _crawl(_config(f"{SITE}/", f"{SITE}"), http_client)

        assert fake_web.page_requests() == [f"{SITE}/", f"{SITE}/docs/a"]
        paths = [file.path for file in result.files]
        assert len(paths) == len(set(paths)) == 2

    async def test_static_assets_and_low_scores_are_not_queued(self, fake_web, http_client):
        fake_web.add(
            f"{SITE}/",
            _page(10, "/static/app.css", "https://other.test/file.zip", "mailto:a@b.test"),
            LINKS_MIME,
        )

        _, result = await _crawl(_config(same_domain_only=False), http_client)

        assert fake_web.page_requests() == [f"{SITE}/"]
        assert result.metadata["pages_in_queue"] == 0

    async def test_depth_and_referrer_are_tracked(self, fake_web, http_client):
        fake_web.add(f"{SITE}/", _page(10, "/docs/a"), LINKS_MIME)
        fake_web.add(f"{SITE}/docs/a", _page(10, "/docs/b"), LINKS_MIME)
        fake_web.add(f"{SITE}/docs/b", _page(10), LINKS_MIME)

        crawler, _ = await _crawl(_config(max_pages=2), http_client)

        (entry,) = [item for _, _, item in crawler._queue]
        assert entry.url == f"{SITE}/docs/b"
        assert entry.depth == 2
        assert entry.referrer == f"{SITE}/docs/a"

    async def test_same_domain_scenario_with_html(self, fake_web, http_client):
        fake_web.add(
            f"{SITE}/",
            """
            <html><head><title>Home</title></head><body>
              <p>Welcome to the documentation home page.</p>
              <a href="/docs/getting-started">Start</a>
              <a href="/docs/reference">Reference</a>
              <a href="https://elsewhere.test/docs">Elsewhere</a>
            </body></html>
            """,
        )
        fake_web.add(
            f"{SITE}/docs/getting-started",
            "<html><head><title>Start</title></head><body><p>Install the tool.</p></body></html>",
        )
        fake_web.add(
            f"{SITE}/docs/reference",
            "<html><head><title>Reference</title></head><body><p>Every option.</p></body></html>",
        )

        enqueued = []
        original_push = TokenTargetCrawler._push

        def recording_push(self, entry):
            enqueued.append(entry.url)
            original_push(self, entry)

        with patch.object(TokenTargetCrawler, "_push", recording_push):
            _, result = await _crawl(_config(same_domain_only=True), http_client)

        assert enqueued == [f"{SITE}/", f"{SITE}/docs/getting-started", f"{SITE}/docs/reference"]
        assert not any("elsewhere.test" in url for url in fake_web.requests)
        assert result.file_count == 3
        assert sorted(file.path for file in result.files) == sorted(enqueued)

    async def test_external_links_followed_when_allowed(self, fake_web, http_client):
        fake_web.add(f"{SITE}/", _page(10, "https://elsewhere.test/docs"), LINKS_MIME)
        fake_web.add("https://elsewhere.test/docs", _page(10), LINKS_MIME)

        _, result = await _crawl(_config(same_domain_only=False), http_client)

        assert "https://elsewhere.test/docs" in fake_web.page_requests()
        assert result.file_count == 2


class TestPoliteness:
    async def test_delay_between_requests_but_not_after_last(self, fake_web, http_client):
        fake_web.add(f"{SITE}/", _page(10, "/docs/a"), LINKS_MIME)
        fake_web.add(f"{SITE}/docs/a", _page(10), LINKS_MIME)

        with patch("asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            await _crawl(_config(delay_ms=250), http_client)

        mock_sleep.assert_awaited_once_with(0.25)

    async def test_no_delay_after_robots_block(self, fake_web, http_client):
        fake_web.add(f"{SITE}/robots.txt", "User-agent: *\nDisallow: /private", "text/plain")
        fake_web.add(f"{SITE}/", _page(10, "/private/a", "/private/b"), LINKS_MIME)

        with patch("asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            _, result = await _crawl(_config(delay_ms=100), http_client)

        # Only after the seed fetch; the two blocked URLs never reach the network
        mock_sleep.assert_awaited_once_with(0.1)
        assert len(result.metadata["errors"]) == 2


class TestClientOwnership:
    async def test_owns_client_when_none_given(self):
        crawler = TokenTargetCrawler(_config())
        async with crawler:
            client = crawler.client
            assert isinstance(client, httpx.AsyncClient)
        assert crawler.client is None
        assert client.is_closed

    async def test_injected_client_left_open(self, http_client):
        async with TokenTargetCrawler(_config(), client=http_client):
            pass
        assert not http_client.is_closed

    async def test_crawls_do_not_share_state(self, fake_web, http_client):
        fake_web.add(f"{SITE}/", _page(10), LINKS_MIME)

        async with TokenTargetCrawler(_config(), _registry(), client=http_client) as crawler:
            first = await crawler.crawl()
            second = await crawler.crawl()

        assert first.file_count == second.file_count == 1
        assert fake_web.requests.count(f"{SITE}/robots.txt") == 2
