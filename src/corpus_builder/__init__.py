"""Build bounded-size text corpora from web crawls, documents and repositories."""

from corpus_builder.assembler import combine_loaded_sources
from corpus_builder.crawler import CrawlConfig, TokenTargetCrawler, normalize_url, score_link
from corpus_builder.errors import (
    ConfigurationError,
    CorpusError,
    ExtractionError,
    LoadError,
    PageFetchError,
    TokenLimitError,
)
from corpus_builder.extractors import ExtractorRegistry, create_default_registry
from corpus_builder.loaders import RepoLoader, SourceLoader, UrlAdapter, load_source, load_sources
from corpus_builder.models import CrawlError, FileInfo, LoadedSource


__version__ = "0.1.0"

__all__ = [
    "ConfigurationError",
    "CorpusError",
    "CrawlConfig",
    "CrawlError",
    "ExtractionError",
    "ExtractorRegistry",
    "FileInfo",
    "LoadError",
    "LoadedSource",
    "PageFetchError",
    "RepoLoader",
    "SourceLoader",
    "TokenLimitError",
    "TokenTargetCrawler",
    "UrlAdapter",
    "combine_loaded_sources",
    "create_default_registry",
    "load_source",
    "load_sources",
    "normalize_url",
    "score_link",
]
