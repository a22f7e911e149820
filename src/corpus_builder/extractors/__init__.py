"""Content extractors keyed by MIME type."""

from corpus_builder.extractors.base import (
    ContentExtractor,
    ExtractedContent,
    ExtractorRegistry,
    normalize_mime_type,
)
from corpus_builder.extractors.html import HtmlExtractor, extract_links
from corpus_builder.extractors.json_extractor import JsonExtractor
from corpus_builder.extractors.pdf import PdfExtractor
from corpus_builder.extractors.text import TextExtractor


def create_default_registry() -> ExtractorRegistry:
    """HTML, PDF, JSON and text extractors, with text as the fallback."""
    registry = ExtractorRegistry()
    text = TextExtractor()
    registry.register(HtmlExtractor())
    registry.register(PdfExtractor())
    registry.register(JsonExtractor())
    registry.register(text)
    registry.set_default(text)
    return registry


__all__ = [
    "ContentExtractor",
    "ExtractedContent",
    "ExtractorRegistry",
    "HtmlExtractor",
    "JsonExtractor",
    "PdfExtractor",
    "TextExtractor",
    "create_default_registry",
    "extract_links",
    "normalize_mime_type",
]
