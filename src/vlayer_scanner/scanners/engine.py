"""File-parallel, rule-sequential scanner driver."""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

from ..config import ScanConfig
from ..models import Finding, Granularity, SkippedFile, SourceFile
from .rules import Rule

logger = logging.getLogger(__name__)


@dataclass
class RuleRun:
    """Raw findings of one pass over a corpus plus the files that could not be evaluated."""

    findings: list[Finding] = field(default_factory=list)
    skipped: list[SkippedFile] = field(default_factory=list)


class FindingCollector:
    """Append-only store for per-file results, merged back in input order."""

    def __init__(self):
        self._lock = threading.Lock()
        self._by_index: dict[int, list[Finding]] = {}
        self._skipped: dict[int, SkippedFile] = {}
        self._tail: list[Finding] = []

    def add(self, index: int, findings: list[Finding]) -> None:
        with self._lock:
            self._by_index[index] = findings

    def skip(self, index: int, skipped: SkippedFile) -> None:
        with self._lock:
            self._skipped[index] = skipped

    def add_tail(self, findings: list[Finding]) -> None:
        with self._lock:
            self._tail.extend(findings)

    def merged(self) -> list[Finding]:
        with self._lock:
            ordered = [f for i in sorted(self._by_index) for f in self._by_index[i]]
            return ordered + list(self._tail)

    def skipped(self) -> list[SkippedFile]:
        with self._lock:
            return [self._skipped[i] for i in sorted(self._skipped)]


def run_rules(corpus: list[SourceFile], rules: list[Rule], config: ScanConfig) -> RuleRun:
    """Evaluate every rule against the corpus.

    Line and file rules run per file on a bounded worker pool; repository
    rules run once over the whole corpus after the files are done. A file
    whose evaluation raises contributes no findings and is reported as
    skipped; the rest of the corpus is still scanned.
    """
    per_file = [r for r in rules if r.granularity != Granularity.repository]
    per_corpus = [r for r in rules if r.granularity == Granularity.repository]
    collector = FindingCollector()

    def work(item: tuple[int, SourceFile]) -> None:
        index, source = item
        findings: list[Finding] = []
        for rule in per_file:
            try:
                findings.extend(rule.evaluate(source, config))
            except Exception as e:
                logger.warning(f"Skipping {source.relative_path}: rule {rule.id} failed: {e}")
                collector.skip(index, SkippedFile(
                    file=source.relative_path,
                    rule_id=rule.id,
                    reason=f"{type(e).__name__}: {e}",
                ))
                return
        collector.add(index, findings)

    workers = max(1, min(config.max_workers, len(corpus) or 1))
    with ThreadPoolExecutor(max_workers=workers) as executor:
        list(executor.map(work, enumerate(corpus)))

    for rule in per_corpus:
        collector.add_tail(rule.evaluate(corpus, config))

    run = RuleRun(findings=collector.merged(), skipped=collector.skipped())
    logger.debug(
        f"Evaluated {len(rules)} rules over {len(corpus)} files: "
        f"{len(run.findings)} raw findings, {len(run.skipped)} files skipped"
    )
    return run
