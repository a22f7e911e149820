"""JSON extraction: a shallow structure summary followed by pretty-printed content."""

from __future__ import annotations

from typing import Any

import orjson

from corpus_builder.extractors.base import ContentExtractor, ExtractedContent, decode_text, last_path_segment


MAX_SUMMARY_DEPTH = 2
MAX_SUMMARY_KEYS = 5
INVALID_JSON_MARKER = "[Invalid JSON]"


def _type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    return "object"


def summarize_structure(value: Any, depth: int = 0) -> str:
    """Describe the shape of a JSON value, at most ``MAX_SUMMARY_DEPTH`` levels deep.

    Example:
        >>> print(summarize_structure({"title": "T", "items": [1, 2, 3]}))
        {
          title: string
          items: Array[3] of number
        }
    """
    if depth >= MAX_SUMMARY_DEPTH:
        if isinstance(value, list):
            return f"Array[{len(value)}]"
        if isinstance(value, dict):
            return "{...}"
        return _type_name(value)

    if isinstance(value, list):
        if not value:
            return "Array[0]"
        return f"Array[{len(value)}] of {summarize_structure(value[0], depth + 1)}"

    if isinstance(value, dict):
        if not value:
            return "{}"
        indent = "  " * (depth + 1)
        keys = list(value)
        lines = [f"{indent}{key}: {summarize_structure(value[key], depth + 1)}" for key in keys[:MAX_SUMMARY_KEYS]]
        if len(keys) > MAX_SUMMARY_KEYS:
            lines.append(f"{indent}... +{len(keys) - MAX_SUMMARY_KEYS} more keys")
        closing = "  " * depth
        return "{\n" + "\n".join(lines) + f"\n{closing}}}"

    return _type_name(value)


def _title_from(data: Any) -> str | None:
    if not isinstance(data, dict):
        return None
    for key in ("title", "name"):
        if isinstance(data.get(key), str) and data[key]:
            return data[key]
    if data.get("id") is not None:
        return f"ID: {data['id']}"
    return None


class JsonExtractor(ContentExtractor):
    """Summarizes JSON documents; invalid JSON is passed through with a marker."""

    name = "json"
    mime_types = ("application/json", "text/json")

    def extract(self, content: bytes, url: str) -> ExtractedContent:
        try:
            data = orjson.loads(content)
        except orjson.JSONDecodeError as e:
            return ExtractedContent(
                text=f"{INVALID_JSON_MARKER}\n{decode_text(content)}",
                title=last_path_segment(url),
                metadata={"type": "invalid", "error": str(e)},
            )

        pretty = orjson.dumps(data, option=orjson.OPT_INDENT_2).decode("utf-8")
        text = (
            "## JSON Structure Summary\n\n"
            f"{summarize_structure(data)}\n\n"
            "## Content\n\n"
            f"```json\n{pretty}\n```"
        )

        metadata: dict[str, Any]
        if isinstance(data, list):
            metadata = {"type": "array", "array_length": len(data)}
        elif isinstance(data, dict):
            metadata = {"type": "object", "top_level_keys": list(data)}
        else:
            metadata = {"type": "scalar"}

        return ExtractedContent(text=text, title=_title_from(data) or last_path_segment(url), metadata=metadata)
