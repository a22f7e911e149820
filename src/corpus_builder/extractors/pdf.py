"""PDF text extraction using PyMuPDF."""

from __future__ import annotations

import logging

import pymupdf

from corpus_builder.errors import ExtractionError
from corpus_builder.extractors.base import ContentExtractor, ExtractedContent, last_path_segment


logger = logging.getLogger(__name__)


class PdfExtractor(ContentExtractor):
    """Concatenates per-page text with ``--- Page N ---`` separators."""

    name = "pdf"
    mime_types = ("application/pdf",)

    def extract(self, content: bytes, url: str) -> ExtractedContent:
        try:
            document = pymupdf.open(stream=content, filetype="pdf")
        except Exception as e:
            raise ExtractionError(f"Failed to open PDF: {e}", details={"url": url}) from e

        try:
            page_count = document.page_count
            pages: list[str] = []
            for index, page in enumerate(document, start=1):
                text = page.get_text().strip()
                if text:
                    pages.append(f"--- Page {index} ---\n{text}")
            info = document.metadata or {}
        finally:
            document.close()

        if not pages:
            # Image-only or scanned documents
            raise ExtractionError("No extractable text in PDF", details={"url": url, "page_count": page_count})

        metadata: dict[str, object] = {"page_count": page_count}
        for key in ("author", "subject", "creator"):
            if info.get(key):
                metadata[key] = info[key]

        title = info.get("title") or last_path_segment(url)
        logger.debug(f"Extracted {len(pages)}/{page_count} pages of text from {url}")
        return ExtractedContent(text="\n\n".join(pages), title=title or None, metadata=metadata)
