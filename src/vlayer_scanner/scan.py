"""Scan orchestration: corpus -> rules -> aggregation, plus fix and baseline entry points."""

import logging
import time
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional

from .aggregator import aggregate
from .baseline import baseline_path, create_baseline, load_baseline, save_baseline
from .config import ScanConfig, load_config
from .fixer.engine import apply_fixes
from .history import record_scan
from .models import Baseline, FixReport, ScanResult, SourceFile
from .file_walker import corpus_from_pairs, walk_repo
from .scanners import build_rule_set, builtin_rule_ids
from .scanners.custom import CustomRuleSet, load_custom_rules
from .scanners.engine import run_rules
from .stack import detect_stack
from .timestamps import utc_now

logger = logging.getLogger(__name__)


def compile_config_rules(config: ScanConfig) -> CustomRuleSet:
    return load_custom_rules(config.custom_rules, source="config", reserved_ids=builtin_rule_ids())


def scan_files(
    corpus: list[SourceFile],
    config: ScanConfig,
    baseline: Optional[Baseline] = None,
    now: Optional[datetime] = None,
) -> ScanResult:
    """Run every enabled rule over an already-built corpus."""
    now = now or utc_now()
    started = time.monotonic()

    custom = compile_config_rules(config)
    rules = build_rule_set(config, custom.rules)
    logger.info(f"Scanning {len(corpus)} files with {len(rules)} rules")

    run = run_rules(corpus, rules, config)
    duration_ms = int((time.monotonic() - started) * 1000)

    result = aggregate(
        run.findings,
        {source.relative_path: source.content for source in corpus},
        baseline=baseline,
        acknowledgments=config.acknowledged_findings,
        min_confidence=config.min_confidence,
        now=now,
        scanned_files=len(corpus),
        scan_duration=duration_ms,
        rule_errors=custom.errors,
    )
    result.skipped_files = run.skipped
    result.stack = detect_stack(corpus)

    score = result.compliance_score
    logger.info(
        f"Scan complete in {duration_ms}ms: {len(result.active_findings)} active findings, "
        f"score {score.score} ({score.grade})"
    )
    return result


def scan(
    path: str | Path,
    config: Optional[ScanConfig] = None,
    *,
    baseline: Optional[Baseline] = None,
    use_baseline: bool = False,
    record_history: bool = False,
    now: Optional[datetime] = None,
) -> ScanResult:
    """Scan a project directory.

    Args:
        path: Project root.
        config: Scan configuration; loaded from ``.vlayerrc.json`` when omitted.
        baseline: Known findings to flag as baseline.
        use_baseline: Load ``.vlayer/baseline.json`` when no baseline is given.
        record_history: Append this run to the project's scan history.

    Raises:
        ConfigError: If the project configuration is invalid.
    """
    config = config or load_config(path)
    if baseline is None and use_baseline:
        baseline = load_baseline(baseline_path(path))

    result = scan_files(walk_repo(path, config), config, baseline, now)

    if record_history:
        record_scan(path, result, limit=config.history_limit, now=now)
    return result


def scan_corpus(
    pairs: Iterable[tuple[str, str | bytes]],
    config: Optional[ScanConfig] = None,
    *,
    baseline: Optional[Baseline] = None,
    now: Optional[datetime] = None,
) -> ScanResult:
    """Scan (path, content) pairs without touching the filesystem."""
    config = config or ScanConfig()
    return scan_files(corpus_from_pairs(pairs, config), config, baseline, now)


def fix_project(
    path: str | Path,
    result: Optional[ScanResult] = None,
    config: Optional[ScanConfig] = None,
    *,
    dry_run: bool = False,
    now: Optional[datetime] = None,
) -> FixReport:
    """Apply fixes for a scan's active findings, scanning first if needed."""
    config = config or load_config(path)
    if result is None:
        result = scan(path, config, now=now)

    return apply_fixes(
        result.active_findings,
        path,
        scanned_files=result.scanned_files,
        scan_duration=result.scan_duration,
        custom_fixes=compile_config_rules(config).fixes,
        dry_run=dry_run,
        max_workers=config.max_workers,
        now=now,
    )


def write_baseline(path: str | Path, result: ScanResult, now: Optional[datetime] = None) -> Baseline:
    """Capture a scan's findings as the project baseline."""
    baseline = create_baseline(result.findings, now)
    save_baseline(baseline, baseline_path(path))
    return baseline
