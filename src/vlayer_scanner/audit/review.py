"""Manual review queue: item creation, status transitions and queries."""

import uuid
from datetime import datetime, timedelta
from typing import Optional

from ..errors import InvalidTransitionError
from ..models import (
    TERMINAL_REVIEW_STATUSES,
    AuditSummary,
    AuditTrail,
    Finding,
    ManualReviewItem,
    ManualReviewStatus,
    Severity,
)
from ..timestamps import parse_iso, to_iso, utc_now

DEFAULT_REVIEW_REASON = "No automated fix available"

# Days until a review is considered overdue
REVIEW_DEADLINE_DAYS = {
    Severity.critical: 7,
    Severity.high: 14,
    Severity.medium: 30,
    Severity.low: 60,
    Severity.info: 60,
}

_TERMINAL = set(TERMINAL_REVIEW_STATUSES)

ALLOWED_TRANSITIONS: dict[ManualReviewStatus, set[ManualReviewStatus]] = {
    ManualReviewStatus.pending_review: {ManualReviewStatus.assigned} | _TERMINAL,
    ManualReviewStatus.assigned: {ManualReviewStatus.assigned, ManualReviewStatus.in_progress} | _TERMINAL,
    ManualReviewStatus.in_progress: set(_TERMINAL),
    ManualReviewStatus.resolved: set(),
    ManualReviewStatus.accepted_risk: set(),
}


def suggested_deadline(severity: Severity, created_at: datetime) -> datetime:
    return created_at + timedelta(days=REVIEW_DEADLINE_DAYS[severity])


def create_review_item(
    finding: Finding,
    reason: str = DEFAULT_REVIEW_REASON,
    now: Optional[datetime] = None,
) -> ManualReviewItem:
    now = now or utc_now()
    return ManualReviewItem(
        id=str(uuid.uuid4()),
        finding_id=finding.id,
        finding=finding,
        reason=reason,
        suggested_deadline=to_iso(suggested_deadline(finding.severity, now)),
        created_at=to_iso(now),
        updated_at=to_iso(now),
    )


def is_open(item: ManualReviewItem) -> bool:
    return item.status not in TERMINAL_REVIEW_STATUSES


def can_transition(current: ManualReviewStatus, target: ManualReviewStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def transition(
    item: ManualReviewItem,
    status: ManualReviewStatus,
    assigned_to: Optional[str] = None,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> ManualReviewItem:
    """Return a copy of ``item`` moved to ``status``.

    Raises:
        InvalidTransitionError: If the move is not allowed from the current
            status, or an assignment names nobody.
    """
    if not can_transition(item.status, status):
        raise InvalidTransitionError(
            f"Cannot move review {item.id} from {item.status.value} to {status.value}",
            {"review_id": item.id, "from": item.status.value, "to": status.value},
        )
    if status == ManualReviewStatus.assigned and not assigned_to:
        raise InvalidTransitionError(
            f"Assigning review {item.id} requires an assignee",
            {"review_id": item.id},
        )

    update = {"status": status, "updated_at": to_iso(now or utc_now())}
    if assigned_to:
        update["assigned_to"] = assigned_to
    if notes:
        update["notes"] = notes
    return item.model_copy(update=update)


def is_overdue(item: ManualReviewItem, now: Optional[datetime] = None) -> bool:
    return is_open(item) and (now or utc_now()) > parse_iso(item.suggested_deadline)


# --- Queries ---


def reviews_by_status(trail: AuditTrail, status: ManualReviewStatus) -> list[ManualReviewItem]:
    return [r for r in trail.manual_reviews if r.status == status]


def reviews_by_severity(trail: AuditTrail, severity: Severity) -> list[ManualReviewItem]:
    return [r for r in trail.manual_reviews if r.finding.severity == severity]


def open_reviews(trail: AuditTrail) -> list[ManualReviewItem]:
    return [r for r in trail.manual_reviews if is_open(r)]


def overdue_reviews(trail: AuditTrail, now: Optional[datetime] = None) -> list[ManualReviewItem]:
    now = now or utc_now()
    return [r for r in trail.manual_reviews if is_overdue(r, now)]


def get_audit_summary(trail: AuditTrail, now: Optional[datetime] = None) -> AuditSummary:
    by_status: dict[str, int] = {}
    by_severity: dict[str, int] = {}
    for review in trail.manual_reviews:
        by_status[review.status.value] = by_status.get(review.status.value, 0) + 1
        severity = review.finding.severity.value
        by_severity[severity] = by_severity.get(severity, 0) + 1

    return AuditSummary(
        total_findings=trail.total_findings,
        auto_fixed=trail.auto_fixed_count,
        pending_manual_review=len(open_reviews(trail)),
        reviews_by_status=by_status,
        reviews_by_severity=by_severity,
        overdue_count=len(overdue_reviews(trail, now)),
        report_hash=trail.report_hash,
    )
