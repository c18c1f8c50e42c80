"""Utility for walking a project and loading its readable source files."""

import logging
import os
import re
from functools import lru_cache
from pathlib import Path, PurePosixPath
from typing import Iterable, Iterator

from .config import ScanConfig, is_path_ignored
from .models import SourceFile

logger = logging.getLogger(__name__)


SKIP_DIRS = {
    "node_modules", ".git", "venv", ".venv", "__pycache__", "dist", "build",
    ".next", ".nuxt", "coverage", ".coverage", "vendor", "target",
    ".pytest_cache", ".mypy_cache", ".tox", ".eggs", "bower_components",
    ".terraform", ".serverless", ".vlayer",
}

BINARY_EXTENSIONS = {
    ".png", ".jpg", ".jpeg", ".gif", ".ico", ".webp", ".bmp",
    ".pdf", ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx",
    ".zip", ".tar", ".gz", ".tgz", ".rar", ".7z", ".jar",
    ".exe", ".dll", ".so", ".dylib", ".bin",
    ".woff", ".woff2", ".ttf", ".eot",
    ".mp3", ".mp4", ".avi", ".mov", ".wav",
    ".pyc", ".pyo", ".class", ".o",
}

# Files that are clearly test-only
TEST_INDICATORS = {"/tests/", "/test/", "/__tests__/", "test_", "_test.", ".test.", ".spec."}


def is_test_file(relative_path: str) -> bool:
    """Check if a file path indicates it's a test file."""
    path_lower = "/" + relative_path.lower()
    return any(ind in path_lower for ind in TEST_INDICATORS)


def file_extension(name: str) -> str:
    """Lowercased extension; dotfiles such as '.env' are their own extension."""
    if name.startswith(".") and name.count(".") == 1:
        return name.lower()
    return PurePosixPath(name).suffix.lower()


def _translate_glob(pattern: str, dot: bool) -> str:
    """Regex body for a '/'-separated glob: '*' and '?' stay inside one segment, '**' spans any depth."""
    lead = "" if dot else r"(?!\.)"
    out: list[str] = []
    i, n = 0, len(pattern)
    while i < n:
        c = pattern[i]
        at_segment_start = i == 0 or pattern[i - 1] == "/"

        if c == "/" and pattern[i + 1:] == "**":
            out.append(rf"(?:/{lead}[^/]*)*")
            break
        if pattern.startswith("**", i) and at_segment_start:
            rest = pattern[i + 2:]
            if rest.startswith("/"):
                out.append(rf"(?:{lead}[^/]*/)*")
                i += 3
                continue
            if not rest:
                out.append(rf"{lead}[^/]*(?:/{lead}[^/]*)*")
                break

        if c == "*":
            while i + 1 < n and pattern[i + 1] == "*":
                i += 1
            out.append((lead if at_segment_start else "") + "[^/]*")
        elif c == "?":
            out.append((lead if at_segment_start else "") + "[^/]")
        elif c == "[" and "]" in pattern[i + 2:]:
            end = pattern.index("]", i + 2)
            body = pattern[i + 1:end].replace("\\", "\\\\")
            if body[0] in "!^":
                body = "^/" + body[1:]
            out.append(f"[{body}]")
            i = end
        elif c == "{" and "}" in pattern[i:]:
            end = pattern.index("}", i)
            options = pattern[i + 1:end].split(",")
            if len(options) > 1:
                out.append("(?:" + "|".join(_translate_glob(o, dot) for o in options) + ")")
                i = end
            else:
                out.append(re.escape(c))
        else:
            out.append(re.escape(c))
        i += 1
    return "".join(out)


@lru_cache(maxsize=512)
def compile_glob(pattern: str, dot: bool = True) -> re.Pattern:
    return re.compile(_translate_glob(pattern, dot))


def matches_glob(relative_path: str, pattern: str, dot: bool = True) -> bool:
    """
    Match a project-relative POSIX path against a glob.

    '*' and '?' never cross a '/', '**' as a whole segment matches any
    number of directories, and '{a,b}' alternates. With ``dot=False``
    wildcards skip segments that start with '.'.
    """
    return compile_glob(pattern, dot).fullmatch(relative_path) is not None


def make_source_file(path: str, relative_path: str, content: str) -> SourceFile:
    """Build a SourceFile with derived metadata."""
    relative = relative_path.replace(os.sep, "/")
    name = PurePosixPath(relative).name
    return SourceFile(
        path=path,
        relative_path=relative,
        content=content,
        extension=file_extension(name),
        name=name,
        is_test=is_test_file(relative),
    )


def decode_text(raw: bytes) -> str | None:
    """Decode file bytes as UTF-8, returning None for binary or non-UTF-8 data."""
    if b"\x00" in raw[:8192]:
        return None
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        return None


def _is_excluded(relative_path: str, config: ScanConfig) -> bool:
    if any(matches_glob(relative_path, pattern) for pattern in config.exclude):
        return True
    return is_path_ignored(relative_path, config)


def iter_candidate_files(root: Path, config: ScanConfig) -> Iterator[tuple[Path, str]]:
    """Yield (path, relative POSIX path) for every non-binary, non-excluded file."""
    for dirpath, dirs, filenames in os.walk(root):
        dirs[:] = sorted(d for d in dirs if d not in SKIP_DIRS)

        for name in sorted(filenames):
            filepath = Path(dirpath) / name
            relative = filepath.relative_to(root).as_posix()

            if file_extension(name) in BINARY_EXTENSIONS or _is_excluded(relative, config):
                continue
            yield filepath, relative


def walk_repo(repo_path: str | Path, config: ScanConfig | None = None) -> list[SourceFile]:
    """
    Walk a project and return every readable UTF-8 source file.

    Unreadable, binary, oversized or non-UTF-8 files are skipped silently;
    a single bad file never aborts the walk. Results are sorted by relative
    path so repeated scans see the same corpus order.
    """
    config = config or ScanConfig()
    root = Path(repo_path)
    files: list[SourceFile] = []

    if not root.is_dir():
        logger.warning(f"Scan root {root} is not a directory")
        return files

    for filepath, relative in iter_candidate_files(root, config):
        try:
            if filepath.stat().st_size > config.max_file_size:
                logger.debug(f"Skipping oversized file {relative}")
                continue
            raw = filepath.read_bytes()
        except OSError as e:
            logger.debug(f"Skipping unreadable file {relative}: {e}")
            continue

        content = decode_text(raw)
        if content is None:
            logger.debug(f"Skipping binary or non-UTF-8 file {relative}")
            continue

        files.append(make_source_file(str(filepath), relative, content))

    files.sort(key=lambda f: f.relative_path)
    return files


def corpus_from_pairs(
    pairs: Iterable[tuple[str, str | bytes]],
    config: ScanConfig | None = None,
) -> list[SourceFile]:
    """Build a corpus from (path, content) pairs supplied by the caller.

    Byte contents that are not valid UTF-8 are skipped, as are excluded paths.
    """
    config = config or ScanConfig()
    files: list[SourceFile] = []

    for path, content in pairs:
        relative = str(path).replace(os.sep, "/").lstrip("/")
        if _is_excluded(relative, config):
            continue
        if isinstance(content, bytes):
            decoded = decode_text(content)
            if decoded is None:
                logger.debug(f"Skipping non-UTF-8 content for {relative}")
                continue
            content = decoded
        files.append(make_source_file(str(path), relative, content))

    files.sort(key=lambda f: f.relative_path)
    return files
