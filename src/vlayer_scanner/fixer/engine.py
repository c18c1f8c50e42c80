"""Apply automated fixes and record them in the audit trail.

Fixable findings are grouped by file. Each file is handled by one worker
under a per-path lock: edits go bottom-up so earlier line numbers stay
valid, every line is re-matched against the finding's pattern before it
is touched, and the file is written once at the end. Anything that cannot
be fixed becomes a manual review item.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional

from ..audit.evidence import create_evidence
from ..audit.review import create_review_item, is_open
from ..audit.trail import create_audit_trail, finalize_audit_trail, load_audit_trail, save_audit_trail
from ..errors import FixWriteError
from ..models import AuditEvidence, Finding, FixReport, FixResult, FixStatus
from ..scanners.custom import CustomRuleFix
from ..scanners.rules import compile_pattern
from ..storage import atomic_write_text
from ..timestamps import to_iso, utc_now
from .strategies import apply_fix_strategy

logger = logging.getLogger(__name__)

_locks_guard = threading.Lock()
_path_locks: dict[str, threading.Lock] = {}

_REVIEW_REASONS = {
    FixStatus.stale: "Source line changed since the scan; fix not applied",
    FixStatus.failed: "Automated fix could not transform this line",
    FixStatus.unchanged: "Automated fix produced no change",
    FixStatus.write_error: "Fixed file could not be written",
}


def path_lock(path: Path) -> threading.Lock:
    """One lock per resolved file path, shared across fixer runs."""
    key = str(path.resolve())
    with _locks_guard:
        lock = _path_locks.get(key)
        if lock is None:
            lock = _path_locks[key] = threading.Lock()
        return lock


@dataclass
class FileGroup:
    file: str
    findings: list[Finding]


@dataclass
class FileOutcome:
    results: list[FixResult] = field(default_factory=list)
    evidence: list[AuditEvidence] = field(default_factory=list)
    reviews: list[tuple[Finding, str]] = field(default_factory=list)


def is_fixable(finding: Finding) -> bool:
    return bool(finding.fix_type) and finding.line is not None


def group_by_file(findings: list[Finding]) -> list[FileGroup]:
    """Fixable findings per file, files in first-seen order, lines descending."""
    groups: dict[str, list[Finding]] = {}
    for finding in findings:
        if is_fixable(finding):
            groups.setdefault(finding.file, []).append(finding)
    return [
        FileGroup(file, sorted(members, key=lambda f: (-(f.line or 0), f.rule_id)))
        for file, members in groups.items()
    ]


def _result(finding: Finding, status: FixStatus, original: str = "", fixed: str = "", message: str = "") -> FixResult:
    return FixResult(
        finding=finding,
        fixed=status == FixStatus.fixed,
        status=status,
        fix_type=finding.fix_type or "",
        original_line=original,
        fixed_line=fixed,
        message=message,
    )


def _write_file(path: Path, content: str) -> None:
    try:
        atomic_write_text(path, content)
    except OSError as e:
        raise FixWriteError(f"Could not write {path}: {e}", {"path": str(path)}) from e


def fix_file(
    group: FileGroup,
    project_root: Path,
    custom_fixes: dict[str, CustomRuleFix],
    dry_run: bool = False,
    now: Optional[datetime] = None,
) -> FileOutcome:
    """Apply every fix for one file and write it back once."""
    outcome = FileOutcome()
    path = project_root / group.file

    with path_lock(path):
        try:
            with open(path, encoding="utf-8", newline="") as f:
                content = f.read()
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Cannot read {path} for fixing: {e}")
            for finding in group.findings:
                outcome.results.append(_result(finding, FixStatus.failed, message=f"Unreadable file: {e}"))
                outcome.reviews.append((finding, _REVIEW_REASONS[FixStatus.failed]))
            return outcome

        lines = content.split("\n")
        for finding in group.findings:
            index = finding.line - 1
            if not 0 <= index < len(lines):
                outcome.results.append(_result(finding, FixStatus.stale, message="Line no longer exists"))
                outcome.reviews.append((finding, _REVIEW_REASONS[FixStatus.stale]))
                continue

            original = lines[index]
            if finding.pattern and not compile_pattern(finding.pattern, finding.pattern_flags).search(original):
                outcome.results.append(_result(finding, FixStatus.stale, original, original, "Pattern no longer matches"))
                outcome.reviews.append((finding, _REVIEW_REASONS[FixStatus.stale]))
                continue

            fixed = apply_fix_strategy(
                original,
                finding.fix_type,
                group.file,
                custom_fixes=custom_fixes,
                pattern=finding.pattern,
                flags=finding.pattern_flags,
            )
            if fixed is None or fixed == original:
                status = FixStatus.failed if fixed is None else FixStatus.unchanged
                outcome.results.append(_result(finding, status, original, original))
                outcome.reviews.append((finding, _REVIEW_REASONS[status]))
                continue

            before = "\n".join(lines)
            lines[index] = fixed
            after = "\n".join(lines)
            outcome.evidence.append(create_evidence(finding, group.file, before, after, index, finding.fix_type, now))
            outcome.results.append(_result(finding, FixStatus.fixed, original, fixed))

        if not outcome.evidence or dry_run:
            return outcome

        try:
            _write_file(path, "\n".join(lines))
        except FixWriteError as e:
            logger.warning(f"{e.message}; routing {len(outcome.evidence)} fix(es) to manual review")
            results = []
            for result in outcome.results:
                if result.status == FixStatus.fixed:
                    result = result.model_copy(update={
                        "fixed": False,
                        "status": FixStatus.write_error,
                        "message": e.message,
                    })
                    outcome.reviews.append((result.finding, _REVIEW_REASONS[FixStatus.write_error]))
                results.append(result)
            outcome.results = results
            outcome.evidence = []

    return outcome


def apply_fixes(
    findings: list[Finding],
    project_root: str | Path,
    scanned_files: int = 0,
    scan_duration: int = 0,
    *,
    custom_fixes: Optional[dict[str, CustomRuleFix]] = None,
    dry_run: bool = False,
    max_workers: int = 8,
    now: Optional[datetime] = None,
) -> FixReport:
    """Fix what can be fixed and queue the rest for manual review.

    Args:
        findings: Active findings from a scan. Findings are never mutated.
        project_root: Directory the findings' relative paths resolve against.
        custom_fixes: Fixes for custom rules, keyed by their fix type.
        dry_run: Compute the report without touching source files or the trail.

    Returns:
        FixReport with per-finding results and the updated audit trail.

    Raises:
        AuditIntegrityError: If the existing audit trail fails verification.
    """
    project_root = Path(project_root)
    now = now or utc_now()
    custom_fixes = custom_fixes or {}

    trail = load_audit_trail(project_root, verify=True) or create_audit_trail(project_root, now)

    groups = group_by_file(findings)
    workers = max(1, min(max_workers, len(groups) or 1))
    with ThreadPoolExecutor(max_workers=workers) as executor:
        outcomes = list(executor.map(
            lambda g: fix_file(g, project_root, custom_fixes, dry_run, now), groups
        ))

    results: list[FixResult] = []
    evidence: list[AuditEvidence] = []
    to_review: list[tuple[Finding, str]] = [(f, "No automated fix available") for f in findings if not is_fixable(f)]
    for outcome in outcomes:
        results.extend(outcome.results)
        evidence.extend(outcome.evidence)
        to_review.extend(outcome.reviews)

    # One open review per finding
    open_ids = {r.finding_id for r in trail.manual_reviews if is_open(r)}
    new_reviews = []
    for finding, reason in to_review:
        if finding.id in open_ids:
            continue
        open_ids.add(finding.id)
        new_reviews.append(create_review_item(finding, reason, now))

    trail = finalize_audit_trail(trail.model_copy(update={
        "evidence": list(trail.evidence) + evidence,
        "manual_reviews": list(trail.manual_reviews) + new_reviews,
        "updated_at": to_iso(now),
        "scan_duration": scan_duration,
        "scanned_files": scanned_files,
        "total_findings": len(findings),
    }))

    trail_path = None
    if not dry_run:
        trail_path = str(save_audit_trail(trail, project_root))

    fixed_count = sum(1 for r in results if r.fixed)
    logger.info(
        f"Applied {fixed_count} fix(es) across {len(groups)} file(s), "
        f"{len(new_reviews)} new manual review(s){' (dry run)' if dry_run else ''}"
    )

    return FixReport(
        total_findings=len(findings),
        fixed_count=fixed_count,
        skipped_count=len(findings) - fixed_count,
        fixes=results,
        audit_trail=trail,
        audit_trail_path=trail_path,
    )
