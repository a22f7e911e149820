"""Load a source repository snapshot, local or shallow-cloned, into one corpus."""

from __future__ import annotations

import asyncio
from asyncio.subprocess import PIPE
from collections.abc import Iterable
from fnmatch import fnmatchcase
import logging
import os
from pathlib import Path
import re
import shutil
import tempfile
from urllib.parse import urlsplit

from corpus_builder.config import Settings
from corpus_builder.errors import LoadError, TokenLimitError
from corpus_builder.models import FileInfo, LoadedSource, utc_now
from corpus_builder.utils.tokens import CODE_CHARS_PER_TOKEN, estimate_tokens


logger = logging.getLogger(__name__)

DEFAULT_INCLUDE_EXTENSIONS = frozenset(
    {
        # Code
        ".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs",
        ".py", ".pyi",
        ".go",
        ".rs",
        ".java", ".kt", ".scala",
        ".c", ".cpp", ".h", ".hpp",
        ".rb",
        ".php",
        ".swift",
        ".cs",
        ".vue", ".svelte",
        # Config
        ".json", ".jsonc", ".yaml", ".yml", ".toml", ".ini", ".cfg",
        # Docs
        ".md", ".mdx", ".txt", ".rst",
        # Web
        ".html", ".css", ".scss", ".sass", ".less",
        # Data
        ".sql", ".graphql", ".prisma",
        # Shell
        ".sh", ".bash", ".zsh",
        # Other
        ".xml", ".svg",
    }
)  # fmt: skip
INCLUDE_FILENAMES = frozenset({"Dockerfile", "Makefile"})

ALWAYS_EXCLUDE = (
    "node_modules/",
    ".git/",
    "dist/",
    "build/",
    ".next/",
    ".nuxt/",
    ".output/",
    "coverage/",
    "__pycache__/",
    ".pytest_cache/",
    ".mypy_cache/",
    "venv/",
    ".venv/",
    "vendor/",
    ".idea/",
    ".vscode/",
    "*.lock",
    "package-lock.json",
    "pnpm-lock.yaml",
    "*.min.js",
    "*.min.css",
    "*.map",
    "*.d.ts",
    "*.pyc",
    ".DS_Store",
    "Thumbs.db",
)
IGNORE_FILES = (".gitignore", ".corpusignore")

MIME_TYPES = {
    ".ts": "text/typescript",
    ".tsx": "text/typescript",
    ".js": "text/javascript",
    ".jsx": "text/javascript",
    ".json": "application/json",
    ".md": "text/markdown",
    ".py": "text/x-python",
    ".go": "text/x-go",
    ".rs": "text/x-rust",
    ".html": "text/html",
    ".css": "text/css",
    ".yaml": "text/yaml",
    ".yml": "text/yaml",
    ".sql": "text/x-sql",
}

GIT_HOSTS = frozenset({"github.com", "www.github.com", "gitlab.com", "bitbucket.org"})


class IgnoreRules:
    """Ordered gitignore-style patterns; the last matching rule wins.

    Supported: ``#`` comments, ``!`` negation, trailing ``/`` for
    directory-only rules and patterns containing ``/`` anchored at the root.
    Unanchored patterns match against the entry name.
    """

    def __init__(self, patterns: Iterable[str] = ()):
        self._rules: list[tuple[str, bool, bool, bool]] = []
        self.add(patterns)

    def add(self, patterns: Iterable[str]) -> None:
        for raw in patterns:
            line = raw.strip()
            if not line or line.startswith("#"):
                continue
            negated = line.startswith("!")
            if negated:
                line = line[1:]
            dir_only = line.endswith("/")
            line = line.rstrip("/")
            anchored = "/" in line
            line = line.lstrip("/")
            if line:
                self._rules.append((line, negated, dir_only, anchored))

    def ignores(self, relative_path: str, is_dir: bool = False) -> bool:
        name = relative_path.rsplit("/", 1)[-1]
        ignored = False
        for pattern, negated, dir_only, anchored in self._rules:
            if dir_only and not is_dir:
                continue
            target = relative_path if anchored else name
            if fnmatchcase(target, pattern):
                ignored = not negated
        return ignored


def read_git_info(repo_path: Path) -> dict[str, str]:
    """Commit and branch from ``.git/HEAD`` without invoking git."""
    git_dir = repo_path / ".git"
    try:
        head = (git_dir / "HEAD").read_text(encoding="utf-8").strip()
    except OSError:
        return {}

    if not head.startswith("ref: "):
        return {"git_commit": head}

    ref = head[len("ref: ") :].strip()
    info = {"branch": ref.removeprefix("refs/heads/")}
    try:
        info["git_commit"] = (git_dir / ref).read_text(encoding="utf-8").strip()
    except OSError:
        # Refs may live in packed-refs after gc or a shallow clone
        try:
            for line in (git_dir / "packed-refs").read_text(encoding="utf-8").splitlines():
                sha, _, name = line.partition(" ")
                if name.strip() == ref:
                    info["git_commit"] = sha
                    break
        except OSError:
            pass
    return info


class RepoLoader:
    """Walks a repository directory and renders it as a single corpus.

    Output is a file-structure listing followed by each file in a fenced
    block, sorted by path. Tokens are estimated at the denser code ratio.
    """

    def __init__(
        self,
        max_tokens: int | None = None,
        *,
        max_file_bytes: int | None = None,
        settings: Settings | None = None,
    ):
        settings = settings or Settings()
        self.max_tokens = max_tokens if max_tokens is not None else settings.max_tokens_per_corpus
        self.max_file_bytes = max_file_bytes if max_file_bytes is not None else settings.max_repo_file_bytes

    def load_directory(
        self,
        dir_path: str | Path,
        *,
        include_patterns: Iterable[str] | None = None,
        exclude_patterns: Iterable[str] | None = None,
    ) -> LoadedSource:
        """Load a repository directory.

        Args:
            dir_path: Repository root
            include_patterns: Glob patterns (matched against relative paths) that
                replace the default extension allow-list
            exclude_patterns: Extra gitignore-style patterns

        Raises:
            LoadError: path is missing or not a directory
            TokenLimitError: the included files exceed ``max_tokens``
        """
        root = Path(dir_path)
        if not root.exists():
            raise LoadError(str(root), "Directory not found")
        if not root.is_dir():
            raise LoadError(str(root), "Path is not a directory")

        rules = IgnoreRules(ALWAYS_EXCLUDE)
        for ignore_file in IGNORE_FILES:
            try:
                rules.add((root / ignore_file).read_text(encoding="utf-8").splitlines())
            except OSError:
                continue
        if exclude_patterns:
            rules.add(exclude_patterns)

        includes = list(include_patterns) if include_patterns else None
        files = sorted(self._walk(root, root, rules, includes), key=lambda f: f.path)

        total_tokens = sum(f.token_estimate for f in files)
        if total_tokens > self.max_tokens:
            raise TokenLimitError(total_tokens, self.max_tokens)

        metadata: dict[str, object] = {"source": str(root), "loaded_at": utc_now().isoformat()}
        metadata.update(read_git_info(root))
        logger.info(f"Loaded {len(files)} files ({total_tokens} tokens) from {root}")

        return LoadedSource(
            content=self._render(files, str(root)),
            total_tokens=total_tokens,
            file_count=len(files),
            files=files,
            metadata=metadata,
        )

    def _walk(self, root: Path, current: Path, rules: IgnoreRules, includes: list[str] | None) -> list[FileInfo]:
        files: list[FileInfo] = []
        try:
            entries = sorted(current.iterdir())
        except OSError as e:
            logger.warning(f"Cannot list {current}: {e}")
            return files

        for entry in entries:
            relative = entry.relative_to(root).as_posix()
            is_dir = entry.is_dir()
            if rules.ignores(relative, is_dir=is_dir):
                continue
            if is_dir:
                files.extend(self._walk(root, entry, rules, includes))
            elif entry.is_file() and self._should_include(entry, relative, includes):
                file = self._read(entry, relative)
                if file is not None:
                    files.append(file)
        return files

    def _should_include(self, path: Path, relative: str, includes: list[str] | None) -> bool:
        if includes is not None:
            return any(fnmatchcase(relative, pattern) for pattern in includes)
        return path.suffix.lower() in DEFAULT_INCLUDE_EXTENSIONS or path.name in INCLUDE_FILENAMES

    def _read(self, path: Path, relative: str) -> FileInfo | None:
        try:
            size = path.stat().st_size
            if size > self.max_file_bytes:
                logger.debug(f"Skipping {relative}: {size} bytes exceeds {self.max_file_bytes}")
                return None
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.debug(f"Skipping unreadable file {relative}: {e}")
            return None

        if "\0" in content:
            logger.debug(f"Skipping binary file {relative}")
            return None

        return FileInfo(
            path=relative,
            content=content,
            size=size,
            token_estimate=estimate_tokens(content, CODE_CHARS_PER_TOKEN),
            mime_type=MIME_TYPES.get(path.suffix.lower(), "text/plain"),
        )

    def _render(self, files: list[FileInfo], source: str) -> str:
        lines = [
            "# Repository Context",
            f"# Source: {source}",
            f"# Files: {len(files)}",
            f"# Generated: {utc_now().isoformat()}",
            "",
            "## File Structure",
            "```",
            *(f.path for f in files),
            "```",
            "",
            "## File Contents",
            "",
        ]
        for f in files:
            fence_lang = Path(f.path).suffix.lstrip(".") or "txt"
            lines.extend([f"### {f.path}", f"```{fence_lang}", f.content, "```", ""])
        return "\n".join(lines)


def is_git_repository_url(source: str) -> bool:
    """True for ``owner/repo`` URLs on a known git host, or any http(s) URL ending in ``.git``."""
    try:
        parts = urlsplit(source)
    except ValueError:
        return False
    if parts.scheme not in ("http", "https") or not parts.hostname:
        return False
    if parts.path.endswith(".git"):
        return True
    return parts.hostname.lower() in GIT_HOSTS and re.match(r"^/[^/]+/[^/]+", parts.path) is not None


def _repository_slug(repo_url: str) -> str:
    segments = [s for s in urlsplit(repo_url).path.split("/") if s]
    if len(segments) >= 2:
        owner, repo = segments[0], segments[1]
        return f"{owner}/{repo.removesuffix('.git')}"
    return segments[-1].removesuffix(".git") if segments else "repository"


async def _run_git(*args: str, cwd: Path, source: str, env: dict[str, str] | None = None) -> str:
    cmd = ["git", *args]
    try:
        process = await asyncio.create_subprocess_exec(*cmd, cwd=str(cwd), env=env, stdout=PIPE, stderr=PIPE)
    except FileNotFoundError as err:
        raise LoadError(source, "git executable not found") from err

    stdout, stderr = await process.communicate()
    if process.returncode != 0:
        detail = stderr.decode().strip() or stdout.decode().strip() or "unknown error"
        raise LoadError(source, f"Git {args[0]} failed: {detail}")
    return stdout.decode()


def _git_env(work_dir: Path, token_env: str | None) -> dict[str, str]:
    env = os.environ.copy()
    env["GIT_TERMINAL_PROMPT"] = "0"
    if not token_env:
        return env
    token = os.environ.get(token_env)
    if not token:
        raise LoadError(token_env, f"Environment variable '{token_env}' is not set but a git auth token was requested")
    askpass = work_dir / ".git-askpass.sh"
    askpass.write_text('#!/bin/sh\nprintf "%s" "$CORPUS_GIT_TOKEN"\n', encoding="utf-8")
    askpass.chmod(0o700)
    env["GIT_ASKPASS"] = str(askpass)
    env["CORPUS_GIT_TOKEN"] = token
    return env


async def load_git_repository(
    repo_url: str,
    *,
    max_tokens: int | None = None,
    settings: Settings | None = None,
    include_patterns: Iterable[str] | None = None,
    exclude_patterns: Iterable[str] | None = None,
) -> LoadedSource:
    """Shallow-clone ``repo_url`` into a temporary directory and load it.

    The temporary directory is always removed, whether or not loading succeeds.
    """
    if not is_git_repository_url(repo_url):
        raise LoadError(repo_url, "Invalid git repository URL")

    settings = settings or Settings()
    slug = _repository_slug(repo_url)
    work_dir = Path(tempfile.mkdtemp(prefix=f"corpus-{slug.rsplit('/', 1)[-1]}-"))
    checkout = work_dir / "repo"

    try:
        env = _git_env(work_dir, settings.git_auth_token_env)
        logger.info(f"Cloning {repo_url} (depth 1)")
        await _run_git("clone", "--depth", "1", repo_url, str(checkout), cwd=work_dir, source=repo_url, env=env)

        loader = RepoLoader(max_tokens, settings=settings)
        result = await asyncio.to_thread(
            loader.load_directory,
            checkout,
            include_patterns=include_patterns,
            exclude_patterns=exclude_patterns,
        )
    finally:
        shutil.rmtree(work_dir, ignore_errors=True)

    result.metadata.update({"source": repo_url, "original_source": repo_url, "cloned_from": slug})
    return result
