"""Evidence records for automated fixes and the audit trail report hash.

The report hash covers evidence and manual reviews serialized in an
explicit canonical form: every record is emitted as a JSON array of its
fields in a fixed order, with compact separators and no key sorting, so
the digest does not depend on model field order or serializer defaults.
"""

import hashlib
import json
import uuid
from datetime import datetime
from typing import Any, Optional

from ..models import (
    Acknowledgment,
    AuditEvidence,
    CodeSnapshot,
    ContextLine,
    Finding,
    ManualReviewItem,
    Suppression,
)
from ..timestamps import to_iso, utc_now

EVIDENCE_CONTEXT_LINES = 3
DEFAULT_REGULATORY_REFERENCE = "General HIPAA Security Rule"


def hash_content(content: str) -> str:
    """SHA-256 hex digest of UTF-8 text."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def extract_code_snapshot(lines: list[str], index: int, context_size: int = EVIDENCE_CONTEXT_LINES) -> CodeSnapshot:
    """Snapshot of the 0-indexed line with ``context_size`` lines either side."""
    start = max(0, index - context_size)
    end = min(len(lines) - 1, index + context_size)
    context = [
        ContextLine(line_number=i + 1, content=lines[i], is_match=i == index)
        for i in range(start, end + 1)
    ]
    return CodeSnapshot(
        content=lines[index] if 0 <= index < len(lines) else "",
        line_number=index + 1,
        context=context,
    )


def create_evidence(
    finding: Finding,
    file_path: str,
    content_before: str,
    content_after: str,
    index: int,
    fix_type: str,
    now: Optional[datetime] = None,
) -> AuditEvidence:
    """Record one applied fix with file hashes taken around that single edit."""
    before = extract_code_snapshot(content_before.split("\n"), index)
    after = extract_code_snapshot(content_after.split("\n"), index)

    return AuditEvidence(
        id=str(uuid.uuid4()),
        finding_id=finding.id,
        rule_id=finding.rule_id,
        description=f"Auto-fixed: {finding.title}",
        file_path=file_path,
        line=index + 1,
        before=before,
        after=after,
        timestamp=to_iso(now or utc_now()),
        file_hash_before=hash_content(content_before),
        file_hash_after=hash_content(content_after),
        fix_type=fix_type,
        regulatory_reference=finding.regulatory_reference or DEFAULT_REGULATORY_REFERENCE,
    )


# --- Canonical serialization ---


def _canonical_context(lines: list[ContextLine]) -> list[list[Any]]:
    return [[c.line_number, c.content, c.is_match] for c in lines]


def _canonical_snapshot(snapshot: CodeSnapshot) -> list[Any]:
    return [snapshot.content, snapshot.line_number, _canonical_context(snapshot.context)]


def canonical_evidence(evidence: AuditEvidence) -> list[Any]:
    return [
        evidence.id,
        evidence.finding_id,
        evidence.rule_id,
        evidence.description,
        evidence.file_path,
        evidence.line,
        _canonical_snapshot(evidence.before),
        _canonical_snapshot(evidence.after),
        evidence.timestamp,
        evidence.file_hash_before,
        evidence.file_hash_after,
        evidence.fix_type,
        evidence.regulatory_reference,
    ]


def _canonical_suppression(suppression: Optional[Suppression]) -> Optional[list[Any]]:
    if suppression is None:
        return None
    return [suppression.reason, suppression.comment]


def _canonical_acknowledgment(ack: Optional[Acknowledgment]) -> Optional[list[Any]]:
    if ack is None:
        return None
    return [ack.reason, ack.acknowledged_by, ack.acknowledged_at, ack.ticket_url, ack.expires_at, ack.expired]


def _canonical_finding(finding: Finding) -> list[Any]:
    return [
        finding.id,
        finding.rule_id,
        finding.category.value,
        finding.severity.value,
        finding.confidence.value,
        finding.title,
        finding.description,
        finding.file,
        finding.line,
        finding.recommendation,
        finding.regulatory_reference,
        finding.fix_type,
        finding.pattern,
        finding.pattern_flags,
        _canonical_context(finding.context),
        finding.suppressed,
        _canonical_suppression(finding.suppression),
        finding.acknowledged,
        _canonical_acknowledgment(finding.acknowledgment),
        finding.is_baseline,
    ]


def canonical_review(review: ManualReviewItem) -> list[Any]:
    return [
        review.id,
        review.finding_id,
        _canonical_finding(review.finding),
        review.status.value,
        review.reason,
        review.suggested_deadline,
        review.created_at,
        review.updated_at,
        review.assigned_to,
        review.notes,
    ]


def canonical_form(evidence: list[AuditEvidence], reviews: list[ManualReviewItem]) -> str:
    payload = [
        [canonical_evidence(e) for e in evidence],
        [canonical_review(r) for r in reviews],
    ]
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


def compute_report_hash(evidence: list[AuditEvidence], reviews: list[ManualReviewItem]) -> str:
    return hash_content(canonical_form(evidence, reviews))
