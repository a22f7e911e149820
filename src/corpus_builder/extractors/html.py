"""HTML extraction: readable main content first, tag stripping as fallback.

trafilatura locates the main content region and drops boilerplate. Pages
where that yields too little text (navigation hubs, landing pages, tiny
documents) fall back to BeautifulSoup: remove scripts, chrome and known
boilerplate classes, then take the remaining body text.
"""

from __future__ import annotations

import logging
import re
from urllib.parse import urljoin

from bs4 import BeautifulSoup
import trafilatura

from corpus_builder.extractors.base import ContentExtractor, ExtractedContent, decode_text


logger = logging.getLogger(__name__)

MIN_READABLE_LENGTH = 100

STRIP_TAGS = ("script", "style", "nav", "header", "footer", "aside", "iframe", "noscript", "svg")
STRIP_ROLES = ("navigation", "banner", "contentinfo")
BOILERPLATE_CLASSES = (
    "nav",
    "navigation",
    "menu",
    "sidebar",
    "footer",
    "header",
    "ad",
    "ads",
    "advertisement",
)
SKIPPED_HREF_PREFIXES = ("#", "javascript:", "mailto:")


class HtmlExtractor(ContentExtractor):
    """Extracts readable text and outbound links from HTML pages."""

    name = "html"
    mime_types = ("text/html", "application/xhtml+xml")

    def extract(self, content: bytes, url: str) -> ExtractedContent:
        html = decode_text(content)
        links = extract_links(html, url)

        readable = self._extract_readable(html, url)
        if readable is not None and len(readable.text) > MIN_READABLE_LENGTH:
            readable.links = links
            return readable

        fallback = self._extract_stripped(html)
        fallback.links = links
        return fallback

    def _extract_readable(self, html: str, url: str) -> ExtractedContent | None:
        try:
            text = trafilatura.extract(
                html,
                url=url,
                include_comments=False,
                include_tables=True,
                favor_precision=True,
            )
        except Exception as e:
            # trafilatura raises a wide range of parser errors on hostile markup
            logger.debug(f"Readable extraction failed for {url}: {e}")
            return None

        if not text:
            return None

        metadata: dict[str, object] = {"extraction_method": "readable"}
        title = None
        try:
            document = trafilatura.extract_metadata(html, default_url=url)
        except Exception as e:
            logger.debug(f"Metadata extraction failed for {url}: {e}")
            document = None
        if document is not None:
            title = document.title or None
            for key, value in (
                ("author", document.author),
                ("description", document.description),
                ("site_name", document.sitename),
                ("published_date", document.date),
            ):
                if value:
                    metadata[key] = value

        return ExtractedContent(text=text.strip(), title=title, metadata=metadata)

    def _extract_stripped(self, html: str) -> ExtractedContent:
        soup = BeautifulSoup(html, "html.parser")

        title_tag = soup.find("title")
        title = title_tag.get_text(strip=True) if title_tag else ""
        if not title:
            h1 = soup.find("h1")
            title = h1.get_text(strip=True) if h1 else ""

        metadata: dict[str, object] = {"extraction_method": "stripped"}
        for key, attrs in (
            ("description", {"name": "description"}),
            ("author", {"name": "author"}),
            ("published_date", {"property": "article:published_time"}),
        ):
            tag = soup.find("meta", attrs=attrs)
            value = tag.get("content") if tag else None
            if isinstance(value, str) and value.strip():
                metadata[key] = value.strip()

        for element in soup.find_all(STRIP_TAGS):
            element.decompose()
        for element in soup.find_all(attrs={"role": list(STRIP_ROLES)}):
            element.decompose()
        for element in soup.find_all(class_=list(BOILERPLATE_CLASSES)):
            element.decompose()

        root = soup.body or soup
        # Drop the <head> remnants (title text) when the document has no <body>
        if soup.body is None and soup.head is not None:
            soup.head.decompose()
        text = re.sub(r"\s+", " ", root.get_text(" ")).strip()

        return ExtractedContent(text=text, title=title or None, metadata=metadata)


def extract_links(html: str, base_url: str) -> list[str]:
    """Absolute, deduplicated ``<a href>`` targets in document order.

    Fragment-only anchors, ``javascript:`` and ``mailto:`` links are dropped,
    as is anything that does not resolve to http(s).
    """
    try:
        soup = BeautifulSoup(html, "html.parser")
    except Exception as e:
        logger.debug(f"Failed to extract links from {base_url}: {e}")
        return []

    links: list[str] = []
    seen: set[str] = set()
    for anchor in soup.find_all("a", href=True):
        href = anchor["href"]
        # BeautifulSoup can return list for attribute values, ensure it's a string
        if isinstance(href, list):
            href = href[0] if href else ""
        href = href.strip()
        if not href or href.lower().startswith(SKIPPED_HREF_PREFIXES):
            continue
        try:
            resolved = urljoin(base_url, href)
        except ValueError:
            continue
        if not resolved.startswith(("http://", "https://")) or resolved in seen:
            continue
        seen.add(resolved)
        links.append(resolved)
    return links
