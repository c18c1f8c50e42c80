"""Rule descriptors shared by every scanner pack.

A rule is an immutable value describing what to look for and how to
suppress false positives. Three variants exist, one per detection scope:

- LineRule: evaluated on each non-blank, non-comment line of a file
- FileRule: evaluated once per file, emits at most one finding
- RepositoryRule: evaluated once per corpus, emits at most one finding
  located at the repository sentinel

The scanner driver only ever calls ``rule.evaluate(...)``; it never
special-cases rule ids.
"""

import re
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import Callable, ClassVar, Optional

from ..config import ScanConfig, is_safe_http_url
from ..models import (
    ComplianceCategory,
    Confidence,
    ContextLine,
    Finding,
    Granularity,
    REPOSITORY_SENTINEL,
    Severity,
    SourceFile,
)

MAX_WINDOW = 20

# '#' starts a comment only in these languages
HASH_COMMENT_EXTENSIONS = frozenset({
    ".py", ".rb", ".sh", ".bash", ".zsh", ".pl", ".r", ".tf",
    ".yaml", ".yml", ".toml", ".ini", ".cfg", ".conf", ".env", ".properties",
    ".php",
})
# Languages without C-style block comments
NO_BLOCK_COMMENT_EXTENSIONS = HASH_COMMENT_EXTENSIONS - {".php"}


class NegativeScope(str, Enum):
    """Where a rule's negative patterns are searched."""

    window = "window"
    line = "line"
    file = "file"
    path = "path"


@lru_cache(maxsize=1024)
def compile_pattern(source: str, flags: int = re.IGNORECASE) -> re.Pattern:
    """Compile a pattern once per (source, flags) pair."""
    return re.compile(source, flags)


def comment_mask(lines: list[str], extension: str = "") -> list[bool]:
    """Flag the lines that are entirely comment.

    Lines starting with '//' or '/*' are comments. A line starting with '*'
    only counts while inside a '/*' block, and '#' only in languages that
    use hash comments. A block is only tracked when '/*' opens a line.
    """
    hash_comments = extension in HASH_COMMENT_EXTENSIONS
    block_comments = extension not in NO_BLOCK_COMMENT_EXTENSIONS
    mask: list[bool] = []
    in_block = False

    for line in lines:
        stripped = line.lstrip()
        if in_block:
            mask.append(True)
            in_block = "*/" not in stripped
        elif block_comments and stripped.startswith("/*"):
            mask.append(True)
            in_block = "*/" not in stripped[2:]
        else:
            mask.append(stripped.startswith("//") or (hash_comments and stripped.startswith("#")))
    return mask


def split_lines(content: str) -> list[str]:
    """Split content the same way the fixer does, so line numbers agree."""
    return content.split("\n")


def get_context_lines(lines: list[str], index: int, size: int = 2) -> list[ContextLine]:
    """Return up to ``size`` lines either side of the 0-indexed match line."""
    start = max(0, index - size)
    end = min(len(lines) - 1, index + size)
    return [
        ContextLine(line_number=i + 1, content=lines[i], is_match=i == index)
        for i in range(start, end + 1)
    ]


def context_window(lines: list[str], comments: list[bool], index: int, before: int, after: int) -> str:
    """Window text around a match line with comment-only lines removed."""
    start = max(0, index - before)
    end = min(len(lines), index + after + 1)
    return "\n".join(lines[i] for i in range(start, end) if not comments[i])


def make_finding_id(rule_id: str, file: str, line: Optional[int]) -> str:
    return f"{rule_id}:{file}:{line or 0}"


@dataclass(frozen=True, kw_only=True)
class Rule:
    """Fields common to every rule variant."""

    id: str
    title: str
    description: str
    category: ComplianceCategory
    severity: Severity
    recommendation: str
    regulatory_reference: str
    confidence: Confidence = Confidence.high
    fix_type: Optional[str] = None
    extensions: tuple[str, ...] = ()
    skip_test_files: bool = False
    file_filter: Optional[Callable[[SourceFile], bool]] = None

    granularity: ClassVar[Granularity]

    def applies_to(self, source: SourceFile) -> bool:
        """Whether the rule should look at this file at all."""
        if self.extensions and source.extension not in self.extensions:
            return False
        if self.skip_test_files and source.is_test:
            return False
        if self.file_filter is not None and not self.file_filter(source):
            return False
        return True

    def build_finding(
        self,
        file: str,
        line: Optional[int],
        *,
        description: Optional[str] = None,
        context: Optional[list[ContextLine]] = None,
        pattern: Optional[str] = None,
        pattern_flags: int = 0,
    ) -> Finding:
        return Finding(
            id=make_finding_id(self.id, file, line),
            rule_id=self.id,
            category=self.category,
            severity=self.severity,
            confidence=self.confidence,
            title=self.title,
            description=description or self.description,
            file=file,
            line=line,
            recommendation=self.recommendation,
            regulatory_reference=self.regulatory_reference,
            fix_type=self.fix_type,
            pattern=pattern,
            pattern_flags=pattern_flags,
            context=context or [],
        )


@dataclass(frozen=True, kw_only=True)
class LineRule(Rule):
    """A rule matched line by line with contextual false-positive checks.

    ``negative_patterns`` are searched in ``negative_scope``;
    ``window_negative_patterns`` are always searched in the context window.
    ``requires_context`` must match somewhere in the window for the finding
    to be kept. ``match_check`` receives the primary match and the raw line
    and returns False to discard the match.
    """

    patterns: tuple[str, ...]
    flags: int = re.IGNORECASE
    negative_patterns: tuple[str, ...] = ()
    negative_scope: NegativeScope = NegativeScope.window
    window_negative_patterns: tuple[str, ...] = ()
    context_before: int = 2
    context_after: int = 2
    requires_context: Optional[str] = None
    match_check: Optional[Callable[[re.Match, str], bool]] = None
    skip_safe_http_domains: bool = False

    granularity: ClassVar[Granularity] = Granularity.line

    def __post_init__(self):
        if not self.patterns:
            raise ValueError(f"Line rule {self.id} needs at least one pattern")
        if not (0 <= self.context_before <= MAX_WINDOW and 0 <= self.context_after <= MAX_WINDOW):
            raise ValueError(f"Line rule {self.id} window must be within 0..{MAX_WINDOW}")

    def first_match(self, line: str) -> Optional[tuple[str, re.Match]]:
        for source in self.patterns:
            match = compile_pattern(source, self.flags).search(line)
            if match:
                return source, match
        return None

    def _negated(self, source: SourceFile, lines: list[str], index: int, window: str) -> bool:
        if self.window_negative_patterns and any(
            compile_pattern(p, self.flags).search(window) for p in self.window_negative_patterns
        ):
            return True
        if not self.negative_patterns:
            return False

        if self.negative_scope == NegativeScope.line:
            haystack = lines[index]
        elif self.negative_scope == NegativeScope.file:
            haystack = source.content
        elif self.negative_scope == NegativeScope.path:
            haystack = source.relative_path
        else:
            haystack = window
        return any(compile_pattern(p, self.flags).search(haystack) for p in self.negative_patterns)

    def evaluate(self, source: SourceFile, config: ScanConfig) -> list[Finding]:
        if not self.applies_to(source):
            return []

        lines = split_lines(source.content)
        comments = comment_mask(lines, source.extension)
        findings: list[Finding] = []

        for index, line in enumerate(lines):
            if not line.strip() or comments[index]:
                continue

            hit = self.first_match(line)
            if hit is None:
                continue
            pattern, match = hit

            if self.match_check is not None and not self.match_check(match, line):
                continue
            if self.skip_safe_http_domains and is_safe_http_url(line, config):
                continue

            window = context_window(lines, comments, index, self.context_before, self.context_after)
            if self.requires_context and not compile_pattern(self.requires_context, self.flags).search(window):
                continue
            if self._negated(source, lines, index, window):
                continue

            findings.append(self.build_finding(
                source.relative_path,
                index + 1,
                context=get_context_lines(lines, index, config.context_lines),
                pattern=pattern,
                pattern_flags=self.flags,
            ))

        return findings


@dataclass(frozen=True, kw_only=True)
class FileRule(Rule):
    """A rule evaluated once per file.

    ``check`` returns the 0-indexed line to report plus an optional
    description override, or None when the file is compliant.
    """

    check: Callable[[SourceFile, list[str]], Optional[tuple[int, Optional[str]]]]

    granularity: ClassVar[Granularity] = Granularity.file

    def evaluate(self, source: SourceFile, config: ScanConfig) -> list[Finding]:
        if not self.applies_to(source):
            return []

        lines = split_lines(source.content)
        result = self.check(source, lines)
        if result is None:
            return []

        index, description = result
        return [self.build_finding(
            source.relative_path,
            index + 1,
            description=description,
            context=get_context_lines(lines, index, config.context_lines),
        )]


@dataclass(frozen=True, kw_only=True)
class RepositoryRule(Rule):
    """A rule evaluated once over the whole corpus.

    ``check`` returns a description for the single synthetic finding, or
    None when the corpus is compliant.
    """

    check: Callable[[list[SourceFile]], Optional[str]]

    granularity: ClassVar[Granularity] = Granularity.repository

    def evaluate(self, corpus: list[SourceFile], config: ScanConfig) -> list[Finding]:
        description = self.check(corpus)
        if description is None:
            return []
        return [self.build_finding(REPOSITORY_SENTINEL, None, description=description)]


# File extension groups used by the packs
JS_EXTENSIONS = (".ts", ".js", ".tsx", ".jsx", ".mjs", ".cjs")
CODE_EXTENSIONS = JS_EXTENSIONS + (".py", ".java", ".go", ".rb", ".php")
CONFIG_EXTENSIONS = (".env", ".yaml", ".yml", ".json", ".xml")
