"""Baseline snapshots of known findings.

A baseline is a projection of a scan's findings onto (rule_id, file)
signatures. Line numbers are recorded for reporting but not matched, so
several same-rule findings in one file share a single signature.
"""

import hashlib
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from .config import vlayer_dir
from .models import Baseline, BaselineEntry, BaselineStats, Finding
from .storage import atomic_write_text
from .timestamps import to_iso, utc_now

logger = logging.getLogger(__name__)

BASELINE_FILENAME = "baseline.json"


def baseline_path(project_path: str | Path) -> Path:
    return vlayer_dir(project_path) / BASELINE_FILENAME


def finding_signature(rule_id: str, file: str) -> str:
    """Stable 16-hex-digit signature of a (rule_id, file) pair."""
    return hashlib.sha256(f"{rule_id}:{file}".encode("utf-8")).hexdigest()[:16]


def create_baseline(findings: list[Finding], now: Optional[datetime] = None) -> Baseline:
    """Project findings onto a baseline; suppressed findings are left out."""
    entries: list[BaselineEntry] = []
    seen: set[str] = set()

    for finding in findings:
        if finding.suppressed:
            continue
        signature = finding_signature(finding.rule_id, finding.file)
        if signature in seen:
            continue
        seen.add(signature)
        entries.append(BaselineEntry(
            hash=signature,
            rule_id=finding.rule_id,
            file=finding.file,
            line=finding.line,
            title=finding.title,
            severity=finding.severity,
            category=finding.category,
        ))

    return Baseline(created_at=to_iso(now or utc_now()), findings=entries)


def save_baseline(baseline: Baseline, path: str | Path) -> Path:
    path = Path(path)
    atomic_write_text(path, json.dumps(baseline.model_dump(mode="json"), indent=2))
    logger.info(f"Saved baseline with {len(baseline.findings)} signatures to {path}")
    return path


def load_baseline(path: str | Path) -> Optional[Baseline]:
    """Load a baseline, returning None when it is missing or unreadable."""
    path = Path(path)
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
        return Baseline.model_validate(raw)
    except FileNotFoundError:
        return None
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        logger.warning(f"Ignoring unreadable baseline {path}: {e}")
        return None


def apply_baseline(findings: list[Finding], baseline: Optional[Baseline]) -> list[Finding]:
    """Flag findings whose (rule_id, file) signature is in the baseline."""
    if baseline is None:
        return findings

    known = {entry.hash for entry in baseline.findings}
    return [
        f.model_copy(update={"is_baseline": True})
        if finding_signature(f.rule_id, f.file) in known else f
        for f in findings
    ]


def baseline_stats(findings: list[Finding]) -> BaselineStats:
    total = len(findings)
    known = sum(1 for f in findings if f.is_baseline)
    return BaselineStats(total=total, baseline=known, new=total - known)
