"""Scan history stored as an append-only JSON-lines log.

Each scan appends one compact HistoryEntry to
``<project>/.vlayer/history/scans.jsonl``. When the log grows past the
retention cap the oldest lines are dropped.
"""

import json
import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from .config import vlayer_dir
from .models import (
    Finding,
    HistoryEntry,
    HistoryTrend,
    ScanComparison,
    ScanResult,
    Severity,
    SeverityCounts,
)
from .storage import atomic_write_text
from .timestamps import to_iso, utc_now

logger = logging.getLogger(__name__)

HISTORY_FILENAME = "scans.jsonl"

_write_lock = threading.Lock()


def history_path(project_path: str | Path) -> Path:
    return vlayer_dir(project_path) / "history" / HISTORY_FILENAME


def _history_date(now: datetime) -> str:
    return now.strftime("%Y-%m-%d-%H%M%S")


def _counted(findings: list[Finding]) -> list[Finding]:
    return [f for f in findings if not f.is_baseline and not f.suppressed and not f.acknowledged]


def severity_counts(findings: list[Finding]) -> SeverityCounts:
    counts = SeverityCounts()
    for finding in findings:
        if finding.severity == Severity.info:
            continue
        setattr(counts, finding.severity.value, getattr(counts, finding.severity.value) + 1)
    return counts


def failed_rule_ids(findings: list[Finding]) -> list[str]:
    """Distinct rule ids in first-seen order."""
    return list(dict.fromkeys(f.rule_id for f in findings))


def build_entry(result: ScanResult, now: Optional[datetime] = None) -> HistoryEntry:
    now = now or utc_now()
    findings = _counted(result.active_findings)
    return HistoryEntry(
        timestamp=to_iso(now),
        date=_history_date(now),
        score=result.compliance_score.score if result.compliance_score else 100,
        severity_counts=severity_counts(findings),
        failed_rule_ids=failed_rule_ids(findings),
        files_scanned=result.scanned_files,
    )


def _read_lines(path: Path) -> list[str]:
    try:
        return [line for line in path.read_text(encoding="utf-8").split("\n") if line.strip()]
    except FileNotFoundError:
        return []


def append_entry(path: str | Path, entry: HistoryEntry, limit: Optional[int] = None) -> None:
    """Append one entry, then drop the oldest lines beyond ``limit``."""
    path = Path(path)
    line = json.dumps(entry.model_dump(mode="json"), sort_keys=True)

    with _write_lock:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "a", encoding="utf-8") as f:
            f.write(line + "\n")

        if limit is not None and limit > 0:
            lines = _read_lines(path)
            if len(lines) > limit:
                atomic_write_text(path, "\n".join(lines[-limit:]) + "\n")
                logger.debug(f"Trimmed history {path} to {limit} entries")


def load_history(path: str | Path) -> list[HistoryEntry]:
    """All retained entries, newest first. Corrupt lines are skipped."""
    path = Path(path)
    entries: list[HistoryEntry] = []
    for number, line in enumerate(_read_lines(path), start=1):
        try:
            entries.append(HistoryEntry.model_validate(json.loads(line)))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.debug(f"Skipping corrupt history line {number} in {path}: {e}")
    entries.reverse()
    return entries


def get_most_recent(path: str | Path) -> Optional[HistoryEntry]:
    entries = load_history(path)
    return entries[0] if entries else None


def get_trend(path: str | Path, limit: Optional[int] = None) -> HistoryTrend:
    """Trend over retained history; ``limit`` only shortens the returned list.

    trend is the latest score minus the oldest retained score; best and
    worst span the whole retained log.
    """
    entries = load_history(path)
    if not entries:
        return HistoryTrend()

    scores = [e.score for e in entries]
    shown = entries[:limit] if limit is not None else entries
    return HistoryTrend(
        entries=shown,
        count=len(entries),
        trend=entries[0].score - entries[-1].score,
        best=max(scores),
        worst=min(scores),
    )


def compare_scan(result: ScanResult, previous: Optional[HistoryEntry]) -> ScanComparison:
    """Score change, severity deltas and appeared/disappeared rule ids."""
    if previous is None:
        return ScanComparison()

    findings = _counted(result.active_findings)
    current = severity_counts(findings)
    current_ids = failed_rule_ids(findings)
    previous_ids = set(previous.failed_rule_ids)
    score = result.compliance_score.score if result.compliance_score else 100

    return ScanComparison(
        previous_scan=previous,
        score_change=score - previous.score,
        severity_changes=SeverityCounts(
            critical=current.critical - previous.severity_counts.critical,
            high=current.high - previous.severity_counts.high,
            medium=current.medium - previous.severity_counts.medium,
            low=current.low - previous.severity_counts.low,
        ),
        new_issues=[rule_id for rule_id in current_ids if rule_id not in previous_ids],
        resolved_issues=[rule_id for rule_id in previous.failed_rule_ids if rule_id not in set(current_ids)],
    )


def record_scan(
    project_path: str | Path,
    result: ScanResult,
    limit: Optional[int] = 100,
    now: Optional[datetime] = None,
) -> tuple[HistoryEntry, ScanComparison]:
    """Compare against the previous run, then append this run to the log."""
    path = history_path(project_path)
    previous = get_most_recent(path)
    comparison = compare_scan(result, previous)
    entry = build_entry(result, now)
    append_entry(path, entry, limit)
    logger.info(f"Recorded scan history: score {entry.score} ({comparison.score_change:+d})")
    return entry, comparison
