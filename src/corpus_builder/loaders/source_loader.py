"""Load individual documents, document collections and in-memory strings."""

from __future__ import annotations

from collections.abc import Iterable
import logging
from pathlib import Path

from corpus_builder.config import Settings
from corpus_builder.errors import ExtractionError, LoadError, TokenLimitError
from corpus_builder.extractors.pdf import PdfExtractor
from corpus_builder.models import FileInfo, LoadedSource, utc_now
from corpus_builder.utils.tokens import estimate_tokens


logger = logging.getLogger(__name__)

DOCUMENT_EXTENSIONS = frozenset({".md", ".mdx", ".txt", ".rst", ".pdf"})
SKIPPED_DIRECTORIES = frozenset({"node_modules", ".git", "dist", "build"})

MIME_TYPES = {
    ".md": "text/markdown",
    ".mdx": "text/markdown",
    ".txt": "text/plain",
    ".rst": "text/x-rst",
    ".pdf": "application/pdf",
    ".json": "application/json",
}


def mime_type_for(path: Path) -> str:
    return MIME_TYPES.get(path.suffix.lower(), "text/plain")


class SourceLoader:
    """Loads documents from disk with a token ceiling.

    A single file over the ceiling raises ``TokenLimitError``; multi-file loads
    skip whatever would push the running total over it.
    """

    def __init__(self, max_tokens: int | None = None, settings: Settings | None = None):
        if max_tokens is None:
            max_tokens = (settings or Settings()).max_tokens_per_corpus
        self.max_tokens = max_tokens
        self._pdf = PdfExtractor()

    def load_file(self, file_path: str | Path) -> LoadedSource:
        """Load one file. PDFs go through the PDF extractor; everything else is read as UTF-8."""
        path = Path(file_path)
        if not path.exists():
            raise LoadError(str(path), "File not found")
        if not path.is_file():
            raise LoadError(str(path), "Path is not a file")

        file = self._read_file(path, name=path.name)
        if file.token_estimate > self.max_tokens:
            raise TokenLimitError(file.token_estimate, self.max_tokens)

        content = f"# {file.path}\n# Tokens: ~{file.token_estimate}\n\n{file.content}"
        return LoadedSource(
            content=content,
            total_tokens=file.token_estimate,
            file_count=1,
            files=[file],
            metadata={"source": str(path), "loaded_at": utc_now().isoformat()},
        )

    def load_files(self, file_paths: Iterable[str | Path]) -> LoadedSource:
        """Load several files, skipping unreadable ones and any that would exceed the ceiling."""
        paths = [Path(p) for p in file_paths]
        files = self._collect(paths, name_for=lambda path: path.name)
        if not files:
            raise LoadError(", ".join(str(p) for p in paths), "No files could be loaded")
        return self._collection(files, source=f"{len(files)} files")

    def load_directory(self, dir_path: str | Path, recursive: bool = True) -> LoadedSource:
        """Load every markdown, text, reStructuredText and PDF document under ``dir_path``."""
        root = Path(dir_path)
        if not root.exists():
            raise LoadError(str(root), "Directory not found")
        if not root.is_dir():
            raise LoadError(str(root), "Path is not a directory")

        files = self._collect(self._document_paths(root, recursive), name_for=str)
        if not files:
            raise LoadError(str(root), "No document files found")
        return self._collection(files, source=str(root))

    def load_string(self, content: str, name: str = "content") -> LoadedSource:
        tokens = estimate_tokens(content)
        if tokens > self.max_tokens:
            raise TokenLimitError(tokens, self.max_tokens)

        file = FileInfo(
            path=name,
            content=content,
            size=len(content.encode("utf-8")),
            token_estimate=tokens,
            mime_type="text/plain",
        )
        return LoadedSource(
            content=content,
            total_tokens=tokens,
            file_count=1,
            files=[file],
            metadata={"source": name, "loaded_at": utc_now().isoformat()},
        )

    def _document_paths(self, root: Path, recursive: bool) -> list[Path]:
        found: list[Path] = []
        for entry in sorted(root.iterdir()):
            if entry.is_dir():
                if recursive and entry.name not in SKIPPED_DIRECTORIES:
                    found.extend(self._document_paths(entry, recursive))
            elif entry.is_file() and entry.suffix.lower() in DOCUMENT_EXTENSIONS:
                found.append(entry)
        return found

    def _collect(self, paths: Iterable[Path], name_for) -> list[FileInfo]:
        files: list[FileInfo] = []
        total = 0
        for path in paths:
            if not path.is_file():
                logger.warning(f"Skipping {path}: not a file")
                continue
            try:
                file = self._read_file(path, name=name_for(path))
            except LoadError as e:
                logger.warning(f"Skipping {path}: {e.reason}")
                continue

            if total + file.token_estimate > self.max_tokens:
                logger.warning(f"Skipping {path}: would exceed token limit of {self.max_tokens}")
                continue

            files.append(file)
            total += file.token_estimate
        return files

    def _read_file(self, path: Path, name: str) -> FileInfo:
        try:
            if path.suffix.lower() == ".pdf":
                content = self._pdf.extract(path.read_bytes(), path.name).text
            else:
                content = path.read_text(encoding="utf-8")
            size = path.stat().st_size
        except ExtractionError as e:
            raise LoadError(str(path), f"Failed to parse PDF: {e}") from e
        except (OSError, UnicodeDecodeError) as e:
            raise LoadError(str(path), f"Failed to read: {e}") from e

        return FileInfo(
            path=name,
            content=content,
            size=size,
            token_estimate=estimate_tokens(content),
            mime_type=mime_type_for(path),
        )

    def _collection(self, files: list[FileInfo], source: str) -> LoadedSource:
        total = sum(f.token_estimate for f in files)
        lines = [
            "# Document Collection",
            f"# Files: {len(files)}",
            f"# Total tokens: ~{total}",
            f"# Generated: {utc_now().isoformat()}",
            "",
            "## Contents",
            *(f"- {f.path}" for f in files),
            "",
        ]
        for f in files:
            lines.extend(["---", f"## {f.path}", "", f.content, ""])

        return LoadedSource(
            content="\n".join(lines),
            total_tokens=total,
            file_count=len(files),
            files=files,
            metadata={"source": source, "loaded_at": utc_now().isoformat()},
        )
