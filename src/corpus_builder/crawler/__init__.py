"""Token-budgeted web crawling."""

from corpus_builder.crawler.link_scorer import score_link
from corpus_builder.crawler.robots import RobotsChecker, RobotsRuleGroup, parse_robots_txt
from corpus_builder.crawler.token_crawler import CrawlConfig, PrioritizedUrl, TokenTargetCrawler
from corpus_builder.crawler.url_filter import normalize_url, should_skip_url, url_origin


__all__ = [
    "CrawlConfig",
    "PrioritizedUrl",
    "RobotsChecker",
    "RobotsRuleGroup",
    "TokenTargetCrawler",
    "normalize_url",
    "parse_robots_txt",
    "score_link",
    "should_skip_url",
    "url_origin",
]
