"""Combine several loaded sources into one corpus."""

from __future__ import annotations

from collections.abc import Sequence
import logging

from corpus_builder.errors import ConfigurationError, TokenLimitError
from corpus_builder.models import LoadedSource, utc_now


logger = logging.getLogger(__name__)


def combine_loaded_sources(
    sources: Sequence[LoadedSource],
    labels: Sequence[str] | None = None,
    *,
    max_tokens: int | None = None,
    strict: bool = False,
) -> LoadedSource:
    """Concatenate ``sources`` under a generated header, one section per source.

    Token totals and file counts are summed. Exceeding ``max_tokens`` never
    truncates: the result is flagged ``over_budget`` in its metadata, or with
    ``strict=True`` a ``TokenLimitError`` is raised instead.

    Args:
        sources: Loaded sources, in output order
        labels: Human-readable label per source; defaults to each source's ``source`` metadata
        max_tokens: Optional token ceiling for the combined corpus
        strict: Raise instead of flagging when the ceiling is exceeded

    Returns:
        The combined LoadedSource
    """
    if not sources:
        raise ConfigurationError("At least one source is required to build a corpus")
    if labels is None:
        labels = [source.source or f"source {index}" for index, source in enumerate(sources, start=1)]
    if len(labels) != len(sources):
        raise ConfigurationError(
            f"Got {len(labels)} labels for {len(sources)} sources",
            details={"labels": len(labels), "sources": len(sources)},
        )

    total_tokens = sum(source.total_tokens for source in sources)
    file_count = sum(source.file_count for source in sources)

    lines = [
        "# Combined Context",
        f"# Sources: {', '.join(labels)}",
        f"# Total Files: {file_count}",
        f"# Generated: {utc_now().isoformat()}",
        "",
    ]
    for index, (source, label) in enumerate(zip(sources, labels), start=1):
        lines.extend([f"## Source {index}: {label}", "", source.content, ""])

    metadata: dict[str, object] = {
        "source": " + ".join(labels),
        "loaded_at": utc_now().isoformat(),
        "source_count": len(sources),
    }
    if max_tokens is not None:
        metadata["max_tokens"] = max_tokens
        metadata["over_budget"] = total_tokens > max_tokens
        if total_tokens > max_tokens:
            if strict:
                raise TokenLimitError(total_tokens, max_tokens)
            logger.warning(f"Combined corpus has {total_tokens} tokens, over the {max_tokens} token ceiling")

    return LoadedSource(
        content="\n".join(lines),
        total_tokens=total_tokens,
        file_count=file_count,
        files=[file for source in sources for file in source.files],
        metadata=metadata,
    )
