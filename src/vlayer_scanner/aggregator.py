"""Aggregation of raw findings into a ScanResult.

Pipeline, in order:
1. inline ``vlayer-ignore`` suppression
2. acknowledgments (expired ones reverted)
3. baseline flagging by (rule_id, file)
4. confidence filtering of the active set
5. deterministic ordering
6. grouping by (rule_id, normalized title)

The active set is every confidence-passing finding that is neither
suppressed nor in the baseline. Scoring, fixing and the exit code only
ever look at the active set.
"""

import logging
import re
from datetime import datetime
from typing import Optional

from .baseline import apply_baseline, baseline_stats
from .config import AcknowledgedFinding
from .models import (
    CONFIDENCE_RANK,
    SEVERITY_ORDER,
    Baseline,
    Confidence,
    Finding,
    GroupedFinding,
    RuleLoadError,
    ScanResult,
    Severity,
)
from .scorer import calculate_compliance_score
from .suppression import apply_acknowledgments, apply_inline_suppressions
from .timestamps import utc_now

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")
_DIGITS_RE = re.compile(r"\d+")


def normalize_title(title: str) -> str:
    """Lowercase, drop digits and collapse whitespace."""
    return _WHITESPACE_RE.sub(" ", _DIGITS_RE.sub("", title.lower())).strip()


def sort_key(finding: Finding) -> tuple:
    return (SEVERITY_ORDER[finding.severity], finding.file, finding.line or 0, finding.rule_id)


def meets_confidence(finding: Finding, min_confidence: Confidence) -> bool:
    return CONFIDENCE_RANK[finding.confidence] >= CONFIDENCE_RANK[min_confidence]


def is_active(finding: Finding, min_confidence: Confidence) -> bool:
    return (
        meets_confidence(finding, min_confidence)
        and not finding.suppressed
        and not finding.is_baseline
    )


def group_findings(findings: list[Finding]) -> list[GroupedFinding]:
    """Collapse findings sharing (rule_id, normalized title).

    Counts are computed from the member list every time; groups come out in
    the order their first member appears.
    """
    groups: dict[tuple[str, str], list[Finding]] = {}
    for finding in findings:
        groups.setdefault((finding.rule_id, normalize_title(finding.title)), []).append(finding)

    grouped = []
    for members in groups.values():
        representative = members[0]
        files = sorted({m.file for m in members})
        grouped.append(GroupedFinding(
            rule_id=representative.rule_id,
            title=representative.title,
            category=representative.category,
            severity=representative.severity,
            occurrence_count=len(members),
            file_count=len(files),
            files=files,
            finding_ids=[m.id for m in members],
            representative=representative,
        ))
    return grouped


def aggregate(
    raw_findings: list[Finding],
    contents: dict[str, str],
    *,
    baseline: Optional[Baseline] = None,
    acknowledgments: Optional[list[AcknowledgedFinding]] = None,
    min_confidence: Confidence = Confidence.low,
    now: Optional[datetime] = None,
    scanned_files: int = 0,
    scan_duration: int = 0,
    rule_errors: Optional[list[RuleLoadError]] = None,
) -> ScanResult:
    """Turn one run's raw findings into a ScanResult.

    Args:
        raw_findings: Findings exactly as the scanners produced them.
        contents: Map of project-relative path to file text, for inline suppressions.
        baseline: Known-findings snapshot; matching findings are flagged, not dropped.
        acknowledgments: Accepted-risk registry from the configuration.
        min_confidence: Findings below this stay in ``findings`` but leave the active set.
        now: Reference time for acknowledgment expiry.
    """
    now = now or utc_now()

    findings = apply_inline_suppressions(raw_findings, contents)
    findings = apply_acknowledgments(findings, acknowledgments or [], now)
    findings = apply_baseline(findings, baseline)
    findings = sorted(findings, key=sort_key)

    confident = [f for f in findings if meets_confidence(f, min_confidence)]
    active = [f for f in confident if not f.suppressed and not f.is_baseline]
    considered = [f for f in confident if not f.suppressed]

    result = ScanResult(
        findings=findings,
        active_findings=active,
        grouped_findings=group_findings(findings),
        raw_findings_count=len(raw_findings),
        filtered_count=len(findings) - len(confident),
        scanned_files=scanned_files,
        scan_duration=scan_duration,
        compliance_score=calculate_compliance_score(active),
        baseline_stats=baseline_stats(considered),
        rule_errors=list(rule_errors or []),
    )
    logger.debug(
        f"Aggregated {len(raw_findings)} raw findings: {len(active)} active, "
        f"{result.filtered_count} below confidence, {result.baseline_stats.baseline} in baseline"
    )
    return result


def exit_code(result: ScanResult, fail_on: Severity = Severity.high) -> int:
    """1 if any active finding is at or above ``fail_on``, else 0."""
    threshold = SEVERITY_ORDER[fail_on]
    return int(any(SEVERITY_ORDER[f.severity] <= threshold for f in result.active_findings))
