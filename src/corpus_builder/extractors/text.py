"""Plain-text passthrough; also the registry default."""

from corpus_builder.extractors.base import ContentExtractor, ExtractedContent, decode_text, last_path_segment


class TextExtractor(ContentExtractor):
    name = "text"
    mime_types = ("text/plain", "text/markdown", "text/csv", "text/xml")

    def extract(self, content: bytes, url: str) -> ExtractedContent:
        text = decode_text(content)
        return ExtractedContent(
            text=text,
            title=last_path_segment(url),
            metadata={"char_count": len(text), "line_count": len(text.splitlines())},
        )
